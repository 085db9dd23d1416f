"""Outbound HTTP call to the fixed external dependency."""

from __future__ import annotations

from typing import Any

import httpx

from observable_api.core.errors import ExternalCallError


class ExternalClient:
    """GET a JSON payload from ``url``.

    Any transport error, timeout, non-2xx status or undecodable body is raised
    as ``ExternalCallError``.
    """

    label = "external_api"

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch(self) -> Any:
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ExternalCallError(
                f"Request failed with status code {status}",
                url=self.url,
                http_status=status,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalCallError(str(e) or type(e).__name__, url=self.url, cause=e) from e
        except ValueError as e:
            raise ExternalCallError("Response body is not valid JSON", url=self.url, cause=e) from e

    async def aclose(self) -> None:
        await self._client.aclose()
