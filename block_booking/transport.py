import asyncio
from typing import Any, Optional

import aiohttp
from loguru import logger

from block_booking.errors import BlockApiRequestError
from block_booking.models import BlockApiCredentials


class BlockApiTransport:
    """Authenticated JSON transport for the Block API.

    Every call is bounded by its own ClientTimeout so a single slow read
    cannot hold a poll loop far past its deadline.
    """

    def __init__(
        self,
        credentials: BlockApiCredentials,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.credentials = credentials
        self.base_url = credentials.base_url
        self.session = session
        self._owns_session = session is None
        self.logger = logger

    async def __aenter__(self) -> "BlockApiTransport":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.credentials.api_key.get_secret_value()}",
        }

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Performs a request and returns the parsed JSON body"""
        session = await self._ensure_session()
        url = f"{self.base_url}{endpoint}"
        timeout = aiohttp.ClientTimeout(total=self.credentials.request_timeout)

        try:
            async with session.request(
                method,
                url,
                json=body,
                params=params,
                headers=self._headers(),
                timeout=timeout,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    self.logger.error(
                        f"HTTP error {response.status} at {method} {url}: {error_text[:200]}"
                    )
                    raise BlockApiRequestError(
                        f"The Block API returned HTTP {response.status}",
                        url=url,
                        status=response.status,
                        description=error_text[:500] or None,
                    )
                try:
                    return await response.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    self.logger.error(f"Invalid JSON response from {url}: {e}")
                    raise BlockApiRequestError(
                        "The Block API response was not valid JSON",
                        url=url,
                        status=response.status,
                    ) from e
        except asyncio.TimeoutError as e:
            self.logger.error(
                f"Timeout after {self.credentials.request_timeout}s at {method} {url}"
            )
            raise BlockApiRequestError(
                "The request to the Block API timed out", url=url
            ) from e
        except aiohttp.ClientError as e:
            self.logger.error(f"Connection error at {method} {url}: {e}")
            raise BlockApiRequestError(
                "Could not connect to the Block API", url=url, description=str(e)
            ) from e

    async def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: dict) -> Any:
        return await self.request("POST", endpoint, body=body)

    async def close(self) -> None:
        """Close HTTP session"""
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()
        self.session = None
