"""Client for the third-party IP-echo service used by the greeting page."""

from __future__ import annotations

import ipaddress
import logging

import httpx

from demo_service.errors import UpstreamError

log = logging.getLogger("demo_service.ip_echo")


class IpEchoClient:
    """Ask an httpbin-style ``/ip`` endpoint for the caller's public address.

    The upstream is treated as unreliable: every call is bounded by the
    client's timeout, transport failures are retried ``retries`` times, and
    anything else (HTTP error status, undecodable or non-JSON body, missing
    or malformed ``origin``) fails immediately with UpstreamError.
    """

    def __init__(self, client: httpx.AsyncClient, url: str, retries: int = 1) -> None:
        self._client = client
        self._url = url
        self._retries = max(0, retries)

    async def origin_ip(self) -> str:
        attempts = self._retries + 1
        for attempt in range(1, attempts + 1):
            try:
                resp = await self._client.get(self._url)
                resp.raise_for_status()
                data = resp.json()
                break
            except httpx.TransportError as exc:
                log.warning(
                    "IP echo attempt %d/%d failed: %s", attempt, attempts, exc
                )
                if attempt == attempts:
                    raise UpstreamError(f"IP echo unreachable: {exc}") from exc
            except httpx.HTTPStatusError as exc:
                raise UpstreamError(
                    f"IP echo returned status {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                raise UpstreamError(f"IP echo request failed: {exc}") from exc
            except ValueError as exc:
                raise UpstreamError("IP echo returned a non-JSON body") from exc

        return _parse_origin(data)


def _parse_origin(data: object) -> str:
    """Extract and check ``origin``; proxied callers may list several addresses."""
    if not isinstance(data, dict):
        raise UpstreamError("IP echo response is not a JSON object")
    origin = data.get("origin")
    if not isinstance(origin, str) or not origin.strip():
        raise UpstreamError("IP echo response has no 'origin' string")

    for part in origin.split(","):
        try:
            ipaddress.ip_address(part.strip())
        except ValueError as exc:
            raise UpstreamError(f"IP echo origin is not an address: {origin!r}") from exc
    return origin.strip()
