"""Validation of authorize responses and token endpoint responses.

Every check short-circuits: the first violation is returned as a failed
result and nothing after it runs. Expected failures are results, only a
misconfigured flow raises.
"""

import asyncio
import logging
from typing import Optional

from .config.const import DEFAULT_TIMEOUT
from .tools.crypto import validate_hash
from .tools.errors import OIDCConfigurationInvalid
from .tools.token_client import TokenClient
from .tools.token_validator import IdentityTokenValidator
from .tools.types import (
    AuthenticationFlow,
    AuthorizeResponse,
    AuthorizeState,
    ErrorKind,
    IdentityTokenValidationResult,
    Policy,
    ResponseValidationResult,
    TokenResponse,
    TokenResponseValidationResult,
)

_LOGGER = logging.getLogger(__name__)

CLAIM_SUBJECT = "sub"
CLAIM_NONCE = "nonce"
CLAIM_CODE_HASH = "c_hash"
CLAIM_ACCESS_TOKEN_HASH = "at_hash"


class _ValidationCanceled(Exception):
    """A collaborator call timed out or was canceled."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Canceled while {step}.")


def validate_nonce(nonce: Optional[str], claims: Optional[dict]) -> bool:
    """Checks that the nonce claim of the token equals the nonce that was sent."""
    token_nonce = (claims or {}).get(CLAIM_NONCE) or ""
    match = isinstance(token_nonce, str) and nonce == token_nonce

    if not match:
        # Both values only go to the debug log, never into the result
        _LOGGER.debug(
            "nonce (%s) does not match nonce from token (%s)", nonce, token_nonce
        )

    return match


class ResponseProcessor:
    """Validates the front-channel response and the tokens it is redeemed for."""

    def __init__(
        self,
        flow: AuthenticationFlow,
        policy: Policy,
        token_validator: IdentityTokenValidator,
        token_client: TokenClient,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        verbose_debug_mode: bool = False,
    ):
        self.flow = flow
        self.policy = policy
        self.token_validator = token_validator
        self.token_client = token_client
        self.timeout = timeout
        self.verbose_debug_mode = verbose_debug_mode

    def _trace(self, step: str) -> None:
        if self.verbose_debug_mode:
            _LOGGER.debug(step)

    async def process_response(
        self, authorize_response: AuthorizeResponse, state: AuthorizeState
    ) -> ResponseValidationResult:
        """Validates an authorize response against the state of its request."""
        self._trace("process_response")

        # validate common front-channel parameters
        if not authorize_response.code:
            return _failure("Missing authorization code", ErrorKind.MALFORMED_INPUT)

        if not authorize_response.state:
            return _failure("Missing state", ErrorKind.MALFORMED_INPUT)

        # CSRF binding, must happen before any token is touched
        if state.state != authorize_response.state:
            return _failure("Invalid state", ErrorKind.SECURITY)

        try:
            if self.flow is AuthenticationFlow.AUTHORIZATION_CODE:
                return await self._process_code_flow_response(authorize_response, state)
            if self.flow is AuthenticationFlow.HYBRID:
                return await self._process_hybrid_flow_response(
                    authorize_response, state
                )
        except _ValidationCanceled as e:
            return _failure(str(e), ErrorKind.CANCELED)

        raise OIDCConfigurationInvalid(f"Invalid authentication flow: {self.flow!r}")

    async def _process_hybrid_flow_response(
        self, authorize_response: AuthorizeResponse, state: AuthorizeState
    ) -> ResponseValidationResult:
        self._trace("process_hybrid_flow_response")

        # id_token must be present on the front-channel
        if not authorize_response.identity_token:
            return _failure("Missing identity token.", ErrorKind.MALFORMED_INPUT)

        # id_token must be valid
        front_channel_result = await self._validate_identity_token(
            authorize_response.identity_token
        )
        if front_channel_result.is_error:
            return _failure(
                front_channel_result.error or "Identity token validation error.",
                ErrorKind.COLLABORATOR,
            )

        # nonce must be valid
        if not validate_nonce(state.nonce, front_channel_result.claims):
            return _failure("Invalid nonce.", ErrorKind.SECURITY)

        # validate c_hash
        c_hash = front_channel_result.find_claim(CLAIM_CODE_HASH)
        if c_hash is None:
            if self.policy.require_authorization_code_hash:
                return _failure("c_hash is missing.", ErrorKind.SECURITY)
        elif not validate_hash(
            authorize_response.code, c_hash, front_channel_result.signature_algorithm
        ):
            return _failure("Invalid c_hash.", ErrorKind.SECURITY)

        # redeem code for tokens
        token_response = await self._redeem_code(authorize_response.code, state)
        if token_response.is_error:
            return _failure(
                token_response.error or "Error redeeming code.", ErrorKind.COLLABORATOR
            )

        # validate token response
        token_result = await self._validate_token_response(token_response, state, True)
        if token_result.is_error:
            return _failure(token_result.error, token_result.error_kind)

        # compare front & back channel subs
        front_channel_sub = front_channel_result.find_claim(CLAIM_SUBJECT)
        back_channel_sub = token_result.identity_token_validation_result.find_claim(
            CLAIM_SUBJECT
        )
        if front_channel_sub is None or front_channel_sub != back_channel_sub:
            return _failure(
                f"Subject on front-channel ({front_channel_sub}) does not match "
                f"subject on back-channel ({back_channel_sub}).",
                ErrorKind.SECURITY,
            )

        return ResponseValidationResult(
            authorize_response=authorize_response,
            token_response=token_response,
            claims=token_result.claims,
        )

    async def _process_code_flow_response(
        self, authorize_response: AuthorizeResponse, state: AuthorizeState
    ) -> ResponseValidationResult:
        self._trace("process_code_flow_response")

        # redeem code for tokens
        token_response = await self._redeem_code(authorize_response.code, state)
        if token_response.is_error:
            return _failure(
                "Error redeeming code: "
                f"{token_response.error or 'no error code'} / "
                f"{token_response.error_description or 'no description'}",
                ErrorKind.COLLABORATOR,
            )

        # validate token response
        token_result = await self._validate_token_response(token_response, state, True)
        if token_result.is_error:
            return _failure(
                f"Error validating token response: {token_result.error}",
                token_result.error_kind,
            )

        return ResponseValidationResult(
            authorize_response=authorize_response,
            token_response=token_response,
            claims=token_result.claims,
        )

    async def validate_token_response(
        self,
        token_response: TokenResponse,
        state: Optional[AuthorizeState] = None,
        require_identity_token: bool = True,
    ) -> TokenResponseValidationResult:
        """Validates a token endpoint response.

        Without a state, the nonce is not checked (e.g. token refresh). When
        no identity token is required and none is present, the result is a
        success without claims.
        """
        try:
            return await self._validate_token_response(
                token_response, state, require_identity_token
            )
        except _ValidationCanceled as e:
            return _token_failure(str(e), ErrorKind.CANCELED)

    async def _validate_token_response(
        self,
        token_response: TokenResponse,
        state: Optional[AuthorizeState],
        require_identity_token: bool,
    ) -> TokenResponseValidationResult:
        self._trace("validate_token_response")

        # token response must contain an access token
        if not token_response.access_token:
            return _token_failure(
                "Access token is missing on token response.", ErrorKind.MALFORMED_INPUT
            )

        # openid scope is mandatory whenever an identity token is required
        if require_identity_token and not token_response.identity_token:
            return _token_failure(
                "Identity token is missing on token response.",
                ErrorKind.MALFORMED_INPUT,
            )

        if not token_response.identity_token:
            return TokenResponseValidationResult()

        # if identity token is present, it must be valid
        validation_result = await self._validate_identity_token(
            token_response.identity_token
        )
        if validation_result.is_error:
            return _token_failure(
                validation_result.error or "Identity token validation error",
                ErrorKind.COLLABORATOR,
            )

        if state is not None and not validate_nonce(
            state.nonce, validation_result.claims
        ):
            return _token_failure("Invalid nonce.", ErrorKind.SECURITY)

        # validate at_hash
        at_hash = validation_result.find_claim(CLAIM_ACCESS_TOKEN_HASH)
        if at_hash is None:
            if self.policy.require_access_token_hash:
                return _token_failure("at_hash is missing.", ErrorKind.SECURITY)
        elif not validate_hash(
            token_response.access_token, at_hash, validation_result.signature_algorithm
        ):
            return _token_failure("Invalid access token hash.", ErrorKind.SECURITY)

        return TokenResponseValidationResult(
            identity_token_validation_result=validation_result
        )

    async def _validate_identity_token(
        self, identity_token: str
    ) -> IdentityTokenValidationResult:
        self._trace("validate_identity_token")
        try:
            async with asyncio.timeout(self.timeout):
                return await self.token_validator.validate(identity_token)
        except (TimeoutError, asyncio.CancelledError) as e:
            if _caller_cancelled(e):
                raise
            raise _ValidationCanceled("validating identity token") from e

    async def _redeem_code(self, code: str, state: AuthorizeState) -> TokenResponse:
        self._trace("redeem_code")
        try:
            async with asyncio.timeout(self.timeout):
                return await self.token_client.redeem(
                    code, state.redirect_uri, code_verifier=state.code_verifier
                )
        except (TimeoutError, asyncio.CancelledError) as e:
            if _caller_cancelled(e):
                raise
            raise _ValidationCanceled("redeeming code") from e


def _caller_cancelled(error: BaseException) -> bool:
    """True if the running task itself is being cancelled, which must propagate."""
    if not isinstance(error, asyncio.CancelledError):
        return False
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


def _failure(error: str, error_kind: ErrorKind) -> ResponseValidationResult:
    _LOGGER.warning("Response validation failed: %s", error)
    return ResponseValidationResult.failure(error, error_kind)


def _token_failure(error: str, error_kind: ErrorKind) -> TokenResponseValidationResult:
    _LOGGER.warning("Token response validation failed: %s", error)
    return TokenResponseValidationResult(error=error, error_kind=error_kind)
