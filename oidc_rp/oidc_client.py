"""OIDC Client class"""

import hashlib
import logging
import urllib.parse
from typing import Optional, Union

from .config.const import (
    FLOW_AUTHORIZATION_CODE,
    FEATURES_DISABLE_PKCE,
    POLICY_REQUIRE_CODE_HASH,
    POLICY_REQUIRE_ACCESS_TOKEN_HASH,
    NETWORK_TLS_VERIFY,
    NETWORK_TLS_CA_PATH,
    NETWORK_TIMEOUT,
    REQUIRED_SCOPES,
    DEFAULT_CLOCK_SKEW,
    DEFAULT_TIMEOUT,
)
from .response_processor import ResponseProcessor
from .stores.state_store import StateStore
from .tools.errors import OIDCConfigurationInvalid, OIDCProviderInvalid
from .tools.helpers import base64url_encode, generate_random_url_string
from .tools.http_client import HTTPSessionProvider
from .tools.token_client import TokenClient
from .tools.token_validator import IdentityTokenValidator, JWKSClient
from .tools.types import (
    AuthenticationFlow,
    AuthorizeResponse,
    AuthorizeState,
    ErrorKind,
    Policy,
    ProviderInformation,
    ResponseValidationResult,
    TokenResponse,
    TokenResponseValidationResult,
)
from .tools.validation import (
    sanitize_client_secret,
    validate_client_id,
    validate_url,
)

_LOGGER = logging.getLogger(__name__)

# Stands in for a state that is unknown or already used, it matches no response
_UNKNOWN_STATE = AuthorizeState(state="", nonce="", redirect_uri="")


def _validate_provider(provider: ProviderInformation) -> None:
    """Checks that the provider information has what the client needs."""
    for endpoint in ("issuer", "token_endpoint"):
        value = getattr(provider, endpoint)
        if not value:
            raise OIDCProviderInvalid(
                type="missing_endpoint", details={"endpoint": endpoint}
            )
        if not validate_url(value):
            raise OIDCProviderInvalid(
                type="invalid_endpoint", details={"endpoint": endpoint, "url": value}
            )

    for endpoint in ("authorization_endpoint", "jwks_uri"):
        value = getattr(provider, endpoint)
        if value is not None and not validate_url(value):
            raise OIDCProviderInvalid(
                type="invalid_endpoint", details={"endpoint": endpoint, "url": value}
            )


# pylint: disable=too-many-instance-attributes
class OIDCClient:
    """OIDC relying party client, including PKCE."""

    def __init__(
        self,
        provider: ProviderInformation,
        client_id: str,
        **kwargs,
    ):
        _validate_provider(provider)
        if not validate_client_id(client_id):
            raise OIDCConfigurationInvalid("client_id must not be empty")

        self.provider = provider
        self.client_id = client_id

        # Optional parameters
        self.client_secret: Optional[str] = (
            sanitize_client_secret(kwargs.get("client_secret")) or None
        )
        self.scope: str = kwargs.get("scope") or REQUIRED_SCOPES
        self.redirect_uri: Optional[str] = kwargs.get("redirect_uri")

        flow = kwargs.get("flow") or FLOW_AUTHORIZATION_CODE
        try:
            self.flow = AuthenticationFlow(flow)
        except ValueError as e:
            raise OIDCConfigurationInvalid(f"Invalid authentication flow: {flow}") from e

        features = kwargs.get("features") or {}
        policy = kwargs.get("policy") or {}
        network = kwargs.get("network") or {}

        self.disable_pkce = features.get(FEATURES_DISABLE_PKCE, False)
        self.policy = Policy(
            require_authorization_code_hash=policy.get(POLICY_REQUIRE_CODE_HASH, True),
            require_access_token_hash=policy.get(
                POLICY_REQUIRE_ACCESS_TOKEN_HASH, False
            ),
        )
        self.timeout = network.get(NETWORK_TIMEOUT, DEFAULT_TIMEOUT)

        self.verbose_debug_mode = kwargs.get("enable_verbose_debug_mode", False)
        if self.verbose_debug_mode:
            _LOGGER.warning(
                "VERBOSE_DEBUG_MODE is enabled so detailed validation "
                + "logging is active. Do NOT leave this enabled in production!"
            )

        self.session_provider = HTTPSessionProvider(
            tls_verify=network.get(NETWORK_TLS_VERIFY, True),
            tls_ca_path=network.get(NETWORK_TLS_CA_PATH),
            timeout=self.timeout,
        )

        refresh_keys = None
        if provider.jwks_uri:
            refresh_keys = JWKSClient(
                provider.jwks_uri, self.session_provider
            ).fetch_jwks

        self.token_validator = kwargs.get("token_validator") or IdentityTokenValidator(
            client_id=client_id,
            issuer=provider.issuer,
            keyset=provider.keyset,
            policy=self.policy,
            client_secret=self.client_secret,
            id_token_signing_alg=kwargs.get("id_token_signing_alg"),
            clock_skew=kwargs.get("clock_skew", DEFAULT_CLOCK_SKEW),
            refresh_keys=refresh_keys,
            verbose_debug_mode=self.verbose_debug_mode,
        )
        self.token_client = kwargs.get("token_client") or TokenClient(
            provider.token_endpoint,
            client_id,
            self.session_provider,
            client_secret=self.client_secret,
            verbose_debug_mode=self.verbose_debug_mode,
        )
        self.processor = ResponseProcessor(
            self.flow,
            self.policy,
            self.token_validator,
            self.token_client,
            timeout=self.timeout,
            verbose_debug_mode=self.verbose_debug_mode,
        )

        # Pending authorization requests, each state can be used only once
        self.state_store: StateStore = kwargs.get("state_store") or StateStore()

    def prepare_login(
        self,
        redirect_uri: Optional[str] = None,
        extra_parameters: Optional[dict] = None,
    ) -> AuthorizeState:
        """Creates the state for a new login and the URL to send the user to."""
        if not self.provider.authorization_endpoint:
            raise OIDCProviderInvalid(
                type="missing_endpoint", details={"endpoint": "authorization_endpoint"}
            )

        redirect_uri = redirect_uri or self.redirect_uri
        if not redirect_uri:
            raise OIDCConfigurationInvalid("No redirect_uri configured or given")

        # Generate random nonce & state
        nonce = generate_random_url_string()
        state = generate_random_url_string()

        # Construct the params
        query_params = {
            "response_type": (
                "code id_token" if self.flow is AuthenticationFlow.HYBRID else "code"
            ),
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scope,
            "state": state,
            # Nonce is always set in accordance with OpenID Connect Core 1.0
            "nonce": nonce,
        }

        # We always want to use PKCE (RFC 7636), unless it's disabled for compatibility.
        code_verifier = None
        if not self.disable_pkce:
            code_verifier = generate_random_url_string(32)
            query_params["code_challenge"] = base64url_encode(
                hashlib.sha256(code_verifier.encode("utf-8")).digest()
            )
            query_params["code_challenge_method"] = "S256"
        else:
            _LOGGER.warning(
                "PKCE (RFC 7636) disabled via features.disable_rfc7636! "
                "Authorization code interception risk increased. Only for legacy OPs."
            )

        if extra_parameters:
            # Security parameters cannot be overridden
            for key, value in extra_parameters.items():
                query_params.setdefault(key, value)

        authorize_state = AuthorizeState(
            state=state,
            nonce=nonce,
            redirect_uri=redirect_uri,
            code_verifier=code_verifier,
            start_url=(
                f"{self.provider.authorization_endpoint}?"
                f"{urllib.parse.urlencode(query_params)}"
            ),
        )

        # Save it for later verification
        self.state_store.add(authorize_state)
        return authorize_state

    async def process_response(
        self,
        data: Union[str, AuthorizeResponse],
        state: Optional[AuthorizeState] = None,
    ) -> ResponseValidationResult:
        """Validates the redirect the provider sent the user back with.

        `data` is the full redirect URL, its query string or fragment, or an
        already parsed response. Without an explicit state, the matching
        pending request is taken from the state store.
        """
        if isinstance(data, AuthorizeResponse):
            authorize_response = data
        elif "://" in data:
            authorize_response = AuthorizeResponse.from_url(data)
        else:
            authorize_response = AuthorizeResponse.from_query(data)

        # A state is consumed by its first response, whatever the outcome
        if state is None:
            state = self.state_store.pop(authorize_response.state) or _UNKNOWN_STATE
        else:
            self.state_store.pop(state.state)

        if authorize_response.is_error:
            error = authorize_response.error
            if authorize_response.error_description:
                error = f"{error}: {authorize_response.error_description}"
            _LOGGER.warning("Provider returned an error response: %s", error)
            return ResponseValidationResult.failure(error, ErrorKind.COLLABORATOR)

        result = await self.processor.process_response(authorize_response, state)
        if not result.is_error:
            _LOGGER.debug(
                "Obtained validated identity for subject %s", result.claims.get("sub")
            )
        return result

    async def validate_token_response(
        self,
        token_response: TokenResponse,
        state: Optional[AuthorizeState] = None,
        require_identity_token: bool = True,
    ) -> TokenResponseValidationResult:
        """Validates a token response, e.g. from a refresh outside this library."""
        return await self.processor.validate_token_response(
            token_response, state, require_identity_token
        )

    async def close(self) -> None:
        """Cleanup the HTTP session."""
        await self.session_provider.close()
