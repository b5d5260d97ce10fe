from dataclasses import dataclass, field
from typing import Any, List, Optional


class FetchError(Exception):
    """Base class for every failure a source client can report."""
    kind = "FetchError"

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.message = message
        self.status_code = status_code


class RateLimited(FetchError):
    """Provider answered HTTP 429."""
    kind = "RateLimited"


class Unreachable(FetchError):
    """Connection error, timeout or 5xx response."""
    kind = "Unreachable"


class AuthFailure(FetchError):
    """Missing credential or HTTP 401/403."""
    kind = "AuthFailure"


class MalformedResponse(FetchError):
    """Body could not be decoded or lacks the fields the client depends on."""
    kind = "MalformedResponse"


class Blocked(FetchError):
    """Scraped page is a CAPTCHA, rate-limit or otherwise empty soft-failure page."""
    kind = "Blocked"


@dataclass
class FetchResult:
    """Outcome of one client call: provider records, or the error that prevented them."""
    records: List[Any] = field(default_factory=list)
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, records: List[Any]) -> "FetchResult":
        return cls(records=list(records))

    @classmethod
    def failure(cls, error: FetchError) -> "FetchResult":
        return cls(records=[], error=error)


@dataclass
class ProbeResult:
    """Outcome of a single health probe against a provider."""
    ok: bool
    response_time_ms: float
    error: Optional[str] = None
