"""Token endpoint client, redeems authorization codes."""

import json
import logging
from typing import Optional

import aiohttp

from .http_client import HTTPSessionProvider
from .types import TokenResponse

_LOGGER = logging.getLogger(__name__)


class TokenClient:
    """Performs the authorization code exchange (RFC 6749 §4.1.3).

    Every call to `redeem` sends exactly one request. Codes are single use,
    so nothing in here retries.
    """

    def __init__(
        self,
        token_endpoint: str,
        client_id: str,
        session_provider: HTTPSessionProvider,
        client_secret: Optional[str] = None,
        verbose_debug_mode: bool = False,
    ):
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self.client_secret = client_secret
        self.session_provider = session_provider
        self.verbose_debug_mode = verbose_debug_mode

    async def redeem(
        self, code: str, redirect_uri: str, code_verifier: Optional[str] = None
    ) -> TokenResponse:
        """Exchanges the code for tokens. Errors are returned, not raised."""
        query_params = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "code": code,
            "redirect_uri": redirect_uri,
        }

        # Send the client secret if we have one
        if self.client_secret is not None:
            query_params["client_secret"] = self.client_secret

        # If PKCE is disabled there is no verifier to send
        if code_verifier:
            query_params["code_verifier"] = code_verifier

        return await self._make_token_request(query_params)

    async def _make_token_request(self, query_params: dict) -> TokenResponse:
        """Performs the token POST call"""
        if self.verbose_debug_mode:
            _LOGGER.debug(
                "Attempting token request via endpoint URL: %s (grant_type=%s)",
                self.token_endpoint,
                query_params["grant_type"],
            )

        try:
            session = await self.session_provider.get_session()
            async with session.post(
                self.token_endpoint,
                data=query_params,
                headers={"Accept": "application/json"},
            ) as response:
                status = response.status
                response_text = await response.text()
        except TimeoutError:
            # aiohttp timeouts are ClientErrors too, the caller reports these as canceled
            raise
        except aiohttp.ClientError as e:
            _LOGGER.warning("Unexpected error exchanging token: %s", e)
            return TokenResponse.from_error("transport_error", str(e) or repr(e))

        if self.verbose_debug_mode:
            _LOGGER.debug("Token response received: Status %s", status)

        try:
            parsed_json = json.loads(response_text)
        except json.JSONDecodeError:
            _LOGGER.error("Unhandled Exception: Token Response is not json!")
            return TokenResponse.from_error(
                "invalid_response", "Token response not JSON", http_status=status
            )

        if not isinstance(parsed_json, dict):
            _LOGGER.error("Token response is not a JSON object")
            return TokenResponse.from_error(
                "invalid_response", "Token response not a JSON object", status
            )

        if status >= 400:
            error = str(parsed_json.get("error") or f"http_{status}")
            if status == 400:
                _LOGGER.warning(
                    "Error: Token could not be obtained (%s, %s), "
                    + "did you forget the client_secret?",
                    status,
                    error,
                )
            else:
                _LOGGER.warning("Unexpected status exchanging token: %s", status)

            return TokenResponse.from_error(
                error, parsed_json.get("error_description"), http_status=status
            )

        if parsed_json.get("error"):
            _LOGGER.warning(
                "Token endpoint returned an error with status %s: %s",
                status,
                parsed_json.get("error"),
            )

        return TokenResponse.from_json(parsed_json, http_status=status)
