# errors.py


class AppError(Exception):
    """Base class for all application-level errors."""


class ConfigError(AppError):
    """Raised when settings are out of range."""


class UpstreamError(AppError):
    """Base for failures talking to the Hacker News API."""

    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.message = f"Upstream error at {url}: {detail}" if detail else f"Upstream error at {url}"
        super().__init__(self.message)


class UpstreamUnavailable(UpstreamError):
    """Connection failure or a non-success status on a required call."""


class UpstreamTimeout(UpstreamError):
    """The upstream call exceeded its deadline."""


class UpstreamMalformed(UpstreamError):
    """The payload could not be decoded into the expected shape."""


class ItemNotFound(AppError):
    def __init__(self, item_id: int):
        self.item_id = item_id
        self.message = f"Item {item_id} not found"
        super().__init__(self.message)


class OperationCancelled(AppError):
    def __init__(self, what: str = "operation"):
        self.message = f"{what} cancelled"
        super().__init__(self.message)
