"""Local browser process launcher.

Finds a Chromium-based executable, spawns it with remote debugging enabled on
a fixed port and an isolated profile directory, and polls the debugging HTTP
endpoint until it answers.

Executable discovery is an ordered chain of async providers. Each provider
returns a path or None; the first path wins. Pass a custom chain to
``BrowserLauncher`` to change the search order or add locations.
"""

import asyncio
import logging
import os
import platform
import shutil
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

import httpx
from playwright.async_api import async_playwright

from fetchify.browser.profile import BrowserConfig, LaunchOptions
from fetchify.config import CONFIG
from fetchify.exceptions import BrowserStartupTimeoutError, ExecutableNotFoundError

logger = logging.getLogger(__name__)

ExecutableProvider = Callable[[], Awaitable[str | None]]

BINARY_NAMES = (
    'google-chrome',
    'google-chrome-stable',
    'chromium',
    'chromium-browser',
    'chrome',
)


def _well_known_paths(system: str | None = None) -> list[str]:
    system = system or platform.system()
    if system == 'Darwin':
        return [
            '/Applications/Google Chrome.app/Contents/MacOS/Google Chrome',
            '/Applications/Chromium.app/Contents/MacOS/Chromium',
        ]
    if system == 'Linux':
        return [
            '/usr/bin/google-chrome',
            '/usr/bin/google-chrome-stable',
            '/usr/bin/chromium-browser',
            '/usr/bin/chromium',
            '/snap/bin/chromium',
        ]
    paths = [
        'C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe',
        'C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe',
    ]
    local_app_data = os.environ.get('LOCALAPPDATA')
    if local_app_data:
        paths.append(str(Path(local_app_data) / 'Google' / 'Chrome' / 'Application' / 'chrome.exe'))
    return paths


async def from_env_var() -> str | None:
    """Executable named by the CHROME_PATH environment variable."""
    path = CONFIG.CHROME_PATH
    if path and Path(path).exists():
        return path
    return None


async def from_path_lookup() -> str | None:
    """First known Chrome/Chromium binary name found on PATH."""
    for name in BINARY_NAMES:
        found = shutil.which(name)
        if found:
            return found
    return None


async def from_install_locations() -> str | None:
    """Default install locations for the current operating system."""
    for path in _well_known_paths():
        if Path(path).exists():
            return path
    return None


async def from_playwright() -> str | None:
    """Chromium build managed by ``playwright install chromium``."""
    async with async_playwright() as p:
        path = p.chromium.executable_path
    if path and Path(path).exists():
        return path
    return None


DEFAULT_PROVIDERS: tuple[ExecutableProvider, ...] = (
    from_env_var,
    from_path_lookup,
    from_install_locations,
    from_playwright,
)


async def find_executable(providers: Sequence[ExecutableProvider] = DEFAULT_PROVIDERS) -> str:
    """Run the discovery chain and return the first executable found.

    Raises:
        ExecutableNotFoundError: If every provider comes back empty.
    """
    searched: list[str] = []
    for provider in providers:
        name = getattr(provider, '__name__', repr(provider))
        searched.append(name)
        try:
            path = await provider()
        except Exception as e:
            logger.warning(f'Executable provider {name} failed: {e}')
            continue
        if path:
            logger.debug(f'Executable provider {name} found {path}')
            return path

    raise ExecutableNotFoundError(
        'Chrome executable not found. Please install Google Chrome or specify executable_path.',
        searched=searched,
    )


class BrowserLauncher:
    """Spawns and tears down a local browser process.

    Example:
        >>> launcher = BrowserLauncher(BrowserConfig(headless=True))
        >>> process = await launcher.launch()
        >>> ...
        >>> await launcher.kill(process)
    """

    POLL_ATTEMPTS = 100
    POLL_INTERVAL = 0.2

    def __init__(
        self,
        config: BrowserConfig,
        providers: Sequence[ExecutableProvider] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.providers = tuple(providers) if providers is not None else DEFAULT_PROVIDERS
        self._http_transport = http_transport
        self._stderr_task: asyncio.Task | None = None

    async def resolve_executable(self, options: LaunchOptions) -> str:
        if options.executable_path:
            path = str(options.executable_path)
            if not Path(path).exists() and not shutil.which(path):
                raise ExecutableNotFoundError(f'Chrome executable not found at: {path}', searched=[path])
            return path
        return await find_executable(self.providers)

    def build_command(self, executable: str, options: LaunchOptions) -> list[str]:
        return [executable, *self.config.get_args(), *options.args]

    def build_env(self, options: LaunchOptions) -> dict[str, str]:
        return {**os.environ, **options.env}

    async def launch(self, options: LaunchOptions | None = None) -> asyncio.subprocess.Process:
        """Launch the browser and wait until its debugging endpoint answers.

        Args:
            options: Executable override, extra args and env overrides.

        Returns:
            The running browser process.

        Raises:
            ExecutableNotFoundError: No executable found; nothing was spawned.
            BrowserStartupTimeoutError: The endpoint never became reachable.
                The process is left running.
        """
        options = options or LaunchOptions()
        executable = await self.resolve_executable(options)

        self.config.user_data_dir.mkdir(parents=True, exist_ok=True)

        command = self.build_command(executable, options)
        logger.info(f'Launching browser: {executable}')
        logger.debug(f'Args: {" ".join(command[1:])}')

        process = await asyncio.create_subprocess_exec(
            *command,
            env=self.build_env(options),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        logger.info(f'Browser process started with PID {process.pid}')
        self._stderr_task = asyncio.create_task(self._drain_stderr(process))

        await self.wait_for_debug_port()
        return process

    async def wait_for_debug_port(self) -> None:
        """Poll ``/json/version`` until it answers with HTTP 200."""
        version_url = f'{self.config.debug_url}/json/version'
        logger.info('Waiting for browser debug port...')

        async with httpx.AsyncClient(timeout=1.0, transport=self._http_transport) as client:
            for attempt in range(self.POLL_ATTEMPTS):
                try:
                    response = await client.get(version_url)
                    if response.status_code == 200:
                        logger.info('Browser debug port is ready')
                        return
                except httpx.HTTPError:
                    if attempt % 10 == 0:
                        logger.info(f'Still waiting for debug port... (attempt {attempt + 1}/{self.POLL_ATTEMPTS})')

                await asyncio.sleep(self.POLL_INTERVAL)

        raise BrowserStartupTimeoutError(
            'Browser failed to start within timeout period',
            debug_port=self.config.debug_port,
            attempts=self.POLL_ATTEMPTS,
        )

    async def kill(self, process: asyncio.subprocess.Process) -> None:
        """Terminate the browser process, escalating to kill after 5 seconds."""
        logger.info(f'Killing browser process (PID {process.pid})')
        try:
            if process.returncode is None:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=5.0)
                except asyncio.TimeoutError:
                    logger.warning('Process did not terminate gracefully, killing')
                    if process.returncode is None:
                        process.kill()
                        await process.wait()
        except ProcessLookupError:
            pass

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            self._stderr_task = None

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> None:
        if process.stderr is None:
            return
        async for line in process.stderr:
            logger.debug(f'Browser stderr: {line.decode(errors="replace").rstrip()}')
