"""Exception hierarchy for the market cap monitor.

Fetch errors are recoverable and end up on the dashboard; startup and
terminal errors are fatal.
"""


class MoonCapError(Exception):
    """Base exception for all monitor errors."""


class FetchError(MoonCapError):
    """Raised when a pair snapshot could not be obtained."""

    kind = "fetch"


class NetworkError(FetchError):
    """Raised on transport failures, timeouts and non-success HTTP statuses."""

    kind = "network"


class PairNotFoundError(FetchError):
    """Raised when the provider has no pair matching the requested address."""

    kind = "not found"


class MalformedResponseError(FetchError):
    """Raised when the provider response does not match the expected schema."""

    kind = "malformed response"


class StartupError(MoonCapError):
    """Raised when the configuration is invalid and the monitor cannot start."""


class TerminalError(MoonCapError):
    """Raised when the terminal cannot be switched into or out of cbreak mode."""
