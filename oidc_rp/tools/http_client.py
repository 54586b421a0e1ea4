"""Shared aiohttp session handling."""

import asyncio
import logging
import ssl
from functools import partial
from typing import Optional

import aiohttp

_LOGGER = logging.getLogger(__name__)


class HTTPClientError(aiohttp.ClientResponseError):
    "Raised when the HTTP client encounters not OK (200) status code."

    body: str

    def __init__(self, *args, **kwargs):
        self.body = kwargs.pop("body")
        super().__init__(*args, **kwargs)

    def __str__(self):
        return f"{self.status} ({self.message}) with response body: {self.body}"


async def http_raise_for_status(response: aiohttp.ClientResponse) -> None:
    """Raises an exception if the response is not OK."""
    if not response.ok:
        body = await response.text()

        raise HTTPClientError(
            response.request_info,
            response.history,
            status=response.status,
            message=response.reason or "",
            headers=response.headers,
            body=body,
        )


class HTTPSessionProvider:
    """Creates one aiohttp session on first use and hands it out afterwards."""

    def __init__(
        self,
        tls_verify: bool = True,
        tls_ca_path: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.tls_verify = tls_verify
        self.tls_ca_path = tls_ca_path
        self.timeout = timeout
        self.http_session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def get_session(self) -> aiohttp.ClientSession:
        """Create or get the existing client session with custom networking/TLS options"""
        if self.http_session is not None:
            return self.http_session

        async with self._lock:
            # Another caller may have created it while we waited
            if self.http_session is not None:
                return self.http_session

            _LOGGER.debug(
                "Creating HTTP session provider with options: "
                + "verify certificates: %r, custom CA file: %s",
                self.tls_verify,
                self.tls_ca_path,
            )

            ssl_option: ssl.SSLContext | bool = True
            if not self.tls_verify:
                ssl_option = False
            elif self.tls_ca_path:
                # Loading the CA file blocks, keep it off the event loop
                loop = asyncio.get_running_loop()
                ssl_option = await loop.run_in_executor(
                    None, partial(ssl.create_default_context, cafile=self.tls_ca_path)
                )

            client_timeout = (
                aiohttp.ClientTimeout(total=self.timeout)
                if self.timeout
                else aiohttp.ClientTimeout()
            )
            self.http_session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=ssl_option),
                timeout=client_timeout,
            )
            return self.http_session

    async def close(self) -> None:
        """Close the HTTP session if one was created."""
        if self.http_session is not None:
            _LOGGER.debug("Closing HTTP session")
            await self.http_session.close()
            self.http_session = None
