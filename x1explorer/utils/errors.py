"""Exception hierarchy for x1explorer."""

from typing import Optional


class X1ExplorerError(Exception):
    """Base error for the explorer data layer."""


class RPCError(X1ExplorerError):
    """An endpoint answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.endpoint = endpoint

    def __str__(self) -> str:
        if self.code is not None:
            return f"RPC error {self.code}: {self.message}"
        return f"RPC error: {self.message}"


class AllEndpointsFailedError(X1ExplorerError):
    """Every endpoint in the registry was tried once and failed."""

    def __init__(self, method: str, attempts: int, last_error: Optional[BaseException] = None):
        self.method = method
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"All RPC endpoints failed for {method} after {attempts} attempts: {last_error}"
        )


class DecodeError(X1ExplorerError):
    """An RPC result did not have the expected shape."""

    def __init__(self, what: str, detail: str = ""):
        self.what = what
        self.detail = detail
        super().__init__(f"Could not decode {what}: {detail}" if detail else f"Could not decode {what}")
