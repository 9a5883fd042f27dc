"""Minimal JSON-over-HTTP helper shared by the integration clients."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..errors import ExternalServiceDegradedError

Transport = Callable[[str, Dict[str, Any], Dict[str, str], float], Any]


def post_json(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float) -> Any:
    """POST ``payload`` as JSON and return the decoded response body."""
    data = json.dumps(payload).encode("utf-8")
    request = Request(url, data=data, headers={"Content-Type": "application/json", **headers}, method="POST")
    try:
        with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
            raw = response.read()
    except HTTPError as exc:
        raise ExternalServiceDegradedError(f"{url} responded with status {exc.code}") from exc
    except (URLError, TimeoutError) as exc:
        reason = getattr(exc, "reason", exc)
        raise ExternalServiceDegradedError(f"{url} unreachable: {reason}") from exc
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ExternalServiceDegradedError(f"{url} returned invalid JSON") from exc


def bearer(api_key: Optional[str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"} if api_key else {}
