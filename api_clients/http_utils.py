import logging
import time
from typing import Any, Dict, Optional

import requests

from api_clients.errors import (
    FetchError,
    RateLimited,
    Unreachable,
    AuthFailure,
    MalformedResponse,
    ProbeResult,
)
from config import HTTP_TIMEOUT_SECONDS, USER_AGENT

logger = logging.getLogger(__name__)


def send(method: str, url: str, source: str, timeout: Optional[float] = None, **kwargs) -> requests.Response:
    """
    Perform one HTTP request and translate every failure into a FetchError.
    There is no retry here: the next scheduled run is the retry.
    """
    headers = {"User-Agent": USER_AGENT}
    headers.update(kwargs.pop("headers", None) or {})
    try:
        response = requests.request(
            method, url, headers=headers, timeout=timeout or HTTP_TIMEOUT_SECONDS, **kwargs
        )
    except requests.exceptions.Timeout as e:
        raise Unreachable(source, f"request timed out: {e}")
    except requests.exceptions.RequestException as e:
        raise Unreachable(source, f"request failed: {e}")

    status = response.status_code
    if status == 429:
        raise RateLimited(source, "rate limited by provider", status_code=status)
    if status in (401, 403):
        raise AuthFailure(source, f"authentication rejected (HTTP {status})", status_code=status)
    if status >= 400:
        raise Unreachable(source, f"HTTP {status} from {url}", status_code=status)
    return response


def get_json(url: str, source: str, params: Optional[Dict] = None,
             headers: Optional[Dict] = None, timeout: Optional[float] = None) -> Any:
    response = send("GET", url, source, timeout=timeout, params=params, headers=headers)
    return _decode(response, source)


def post_json(url: str, source: str, payload: Dict, headers: Optional[Dict] = None,
              timeout: Optional[float] = None) -> Any:
    response = send("POST", url, source, timeout=timeout, json=payload, headers=headers)
    return _decode(response, source)


def _decode(response: requests.Response, source: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponse(source, f"invalid JSON body: {e}", status_code=response.status_code)


def timed_probe(call, source: str) -> ProbeResult:
    """Run a probe callable, timing it and converting failures into a ProbeResult."""
    started = time.monotonic()
    try:
        call()
        return ProbeResult(ok=True, response_time_ms=_elapsed_ms(started))
    except FetchError as e:
        logger.warning(f"⚠️ Health probe for {source} failed: {e}")
        return ProbeResult(ok=False, response_time_ms=_elapsed_ms(started), error=e.message)


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)
