"""HTTP transport for counter submissions."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from pycrowdmap._constants import USER_AGENT
from pycrowdmap.config import CrowdMapConfig
from pycrowdmap.exceptions import CrowdMapTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the reconciler.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def post_json(self, endpoint: str, payload: Any) -> dict[str, Any]:
        ...


def _error_message(text: str) -> str | None:
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str) and error:
            return error
    return None


class HttpTransport:
    """JSON-over-HTTP transport bound to ``config.base_url``."""

    def __init__(
        self,
        config: CrowdMapConfig,
        http_session: aiohttp.ClientSession,
    ) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def post_json(self, endpoint: str, payload: Any) -> dict[str, Any]:
        """POST *payload* as JSON and return the decoded JSON object.

        Raises
        ------
        CrowdMapTransportError
            Network failure, timeout, non-2xx status, or a body that is
            not a JSON object. For non-2xx responses the server's
            ``error`` field becomes the message when present.
        """
        url = f"{self._config.base_url}{endpoint}"
        headers = {
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }

        _logger.debug("POST %s", url)

        try:
            async with self._http.post(
                url,
                data=json.dumps(payload, separators=(",", ":")),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    message = _error_message(text) or f"Server error: HTTP {resp.status} {resp.reason or ''}".strip()
                    raise CrowdMapTransportError(
                        message,
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except CrowdMapTransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise CrowdMapTransportError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CrowdMapTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

        if not isinstance(body, dict):
            raise CrowdMapTransportError(
                f"Expected a JSON object from {endpoint}",
                endpoint=endpoint,
            )
        return body
