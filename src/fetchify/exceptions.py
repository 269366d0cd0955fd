"""Exceptions raised by the fetchify browser automation core."""


class FetchifyError(Exception):
    """Base exception for all fetchify errors."""
    pass


class ConfigurationError(FetchifyError):
    """Raised when the local environment cannot satisfy the browser configuration."""
    pass


class ExecutableNotFoundError(ConfigurationError):
    """Raised when no browser executable could be located."""

    def __init__(self, message: str, searched: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.searched = searched or []


class BrowserStartupTimeoutError(FetchifyError):
    """Raised when the debugging endpoint never became reachable after spawn."""

    def __init__(self, message: str, debug_port: int, attempts: int):
        super().__init__(message)
        self.message = message
        self.debug_port = debug_port
        self.attempts = attempts


class TransportError(FetchifyError):
    """Raised when the debugger WebSocket cannot be opened or is not connected."""
    pass


class CommandError(FetchifyError):
    """Raised when the browser answers a command with a protocol error."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        method: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.method = method

    def __str__(self) -> str:
        if self.method:
            return f"{self.method}: {self.message}"
        return self.message


class CommandTimeoutError(CommandError):
    """Raised when no reply arrives for a command within its timeout."""

    def __init__(self, method: str, timeout_seconds: float):
        super().__init__(f"Command timeout: {method}", method=method)
        self.timeout_seconds = timeout_seconds

    def __str__(self) -> str:
        return f"Command timeout: {self.method} (after {self.timeout_seconds:.1f}s)"


class NavigationError(FetchifyError):
    """Raised when the browser refuses to navigate to a URL."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.message = message
        self.url = url


class NavigationTimeoutError(NavigationError):
    """Raised when a bounded navigation wait elapses before the page settles."""
    pass


class EvaluationError(FetchifyError):
    """Raised when a script evaluated in the page throws."""

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description


class StaleElementError(FetchifyError):
    """Raised when an element handle outlives the document it was taken from."""
    pass


class BrowserNotLaunchedError(FetchifyError):
    """Raised when a page operation is attempted before launch()."""

    def __init__(self, message: str = 'Browser not launched. Call launch() first.'):
        super().__init__(message)
        self.message = message
