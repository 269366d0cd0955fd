"""Browser configuration models."""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fetchify.config import (
    CONFIG,
    DEFAULT_DEBUG_PORT,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
)

WaitUntil = Literal['load', 'domcontentloaded', 'networkidle']

# Fields where an explicit None is a real value, by name and alias.
NULLABLE_OVERRIDES = frozenset({'viewport', 'user_agent', 'userAgent'})


class ViewportSize(BaseModel):
    """Viewport size configuration."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(ge=0)
    height: int = Field(ge=0)

    def __getitem__(self, key: str) -> int:
        return dict(self)[key]


class BrowserConfig(BaseModel):
    """Settings for one browser instance.

    Immutable once constructed. Caller overrides are merged over the defaults
    at construction time; ``from_env`` additionally layers environment
    overrides between the two.
    """

    model_config = ConfigDict(
        extra='ignore',
        frozen=True,
        validate_by_name=True,
        validate_by_alias=True,
    )

    headless: bool = Field(default=False, description='Whether to run browser in headless mode')
    user_data_dir: Path = Field(
        default_factory=lambda: CONFIG.USER_DATA_DIR,
        description='Profile directory, reused between runs so site logins persist',
        validation_alias='userDataDir',
    )
    user_agent: str | None = Field(
        default=DEFAULT_USER_AGENT,
        description='User agent override applied through the Network domain',
        validation_alias='userAgent',
    )
    viewport: ViewportSize | None = Field(
        default=ViewportSize(width=1920, height=1080),
        description='Device metrics override; None leaves the window size alone',
    )
    timeout: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description='Default command timeout in milliseconds')
    debug_port: int = Field(
        default=DEFAULT_DEBUG_PORT,
        gt=0,
        lt=65536,
        description='Remote debugging port, fixed for the lifetime of the process',
        validation_alias='debugPort',
    )

    @field_validator('user_data_dir', mode='before')
    @classmethod
    def _expand_user_data_dir(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Path(value).expanduser().resolve()
        return value

    @classmethod
    def from_env(cls, **overrides: Any) -> 'BrowserConfig':
        """Build a config from defaults, then environment, then ``overrides``.

        A None override means "not given" for fields that cannot be None, and
        switches the override off for ``viewport`` and ``user_agent``.
        """
        merged = {
            **CONFIG.load_config(),
            **{k: v for k, v in overrides.items() if v is not None or k in NULLABLE_OVERRIDES},
        }
        return cls(**merged)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    @property
    def debug_url(self) -> str:
        return f'http://localhost:{self.debug_port}'

    def get_args(self) -> list[str]:
        """Get the fixed list of Chrome CLI launch args for this config.

        Returns:
            List of Chrome CLI arguments, without the executable.
        """
        args = [
            f'--remote-debugging-port={self.debug_port}',
            f'--user-data-dir={self.user_data_dir}',
            '--no-first-run',
            '--no-default-browser-check',
            '--disable-default-apps',
            '--disable-popup-blocking',
            '--disable-translate',
            '--disable-background-timer-throttling',
            '--disable-renderer-backgrounding',
            '--disable-device-discovery-notifications',
            '--disable-web-security',
            '--disable-features=VizDisplayCompositor',
        ]

        if self.headless:
            args.append('--headless=new')

        return args


class LaunchOptions(BaseModel):
    """One-shot options consumed by ``launch()``."""

    model_config = ConfigDict(extra='forbid', validate_by_name=True, validate_by_alias=True)

    executable_path: str | Path | None = Field(
        default=None,
        description='Path to browser executable; skips discovery when set',
        validation_alias='executablePath',
    )
    args: list[str] = Field(default_factory=list, description='Additional CLI args to pass to browser')
    env: dict[str, str] = Field(default_factory=dict, description='Environment overrides for the browser process')


class NavigationOptions(BaseModel):
    """Options for ``goto()``."""

    model_config = ConfigDict(extra='forbid', validate_by_name=True, validate_by_alias=True)

    wait_until: WaitUntil = Field(default='load', validation_alias='waitUntil')
    timeout: int | None = Field(
        default=None,
        gt=0,
        description='Navigation wait bound in milliseconds; None waits indefinitely',
    )
