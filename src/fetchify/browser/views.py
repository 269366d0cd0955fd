"""Browser view models."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """A discovered resource reference. Read-only once extracted."""

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = 'GET'
    headers: dict[str, str] = Field(default_factory=dict)


class TabInfo(BaseModel):
    """A tab descriptor as returned by the ``/json`` debugging endpoint."""

    model_config = ConfigDict(
        extra='ignore',
        validate_by_name=True,
        validate_by_alias=True,
        populate_by_name=True,
    )

    target_id: str = Field(validation_alias=AliasChoices('id', 'target_id'))
    type: str
    title: str = ''
    url: str = ''
    web_socket_debugger_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices('webSocketDebuggerUrl', 'web_socket_debugger_url'),
    )

    @property
    def is_page(self) -> bool:
        return self.type == 'page' and bool(self.web_socket_debugger_url)


class BoxModel(BaseModel):
    """Geometry of a rendered element as reported by ``DOM.getBoxModel``.

    Each quad is a flat list of four x/y points, clockwise from top-left.
    """

    model_config = ConfigDict(extra='ignore', frozen=True)

    content: list[float]
    padding: list[float] = Field(default_factory=list)
    border: list[float] = Field(default_factory=list)
    margin: list[float] = Field(default_factory=list)
    width: int = 0
    height: int = 0

    @classmethod
    def from_cdp(cls, result: dict[str, Any]) -> 'BoxModel':
        return cls.model_validate(result['model'])

    @property
    def content_origin(self) -> tuple[float, float]:
        """Top-left point of the content quad."""
        return self.content[0], self.content[1]
