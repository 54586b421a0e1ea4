"""Tests for the response processor state machines"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from oidc_rp import (
    AuthenticationFlow,
    AuthorizeResponse,
    AuthorizeState,
    ErrorKind,
    OIDCConfigurationInvalid,
    Policy,
    ResponseProcessor,
    TokenResponse,
    validate_nonce,
)
from oidc_rp.tools.token_validator import IdentityTokenValidator

from .mocks.oidc_server import (
    ACCESS_TOKEN,
    BASE_URL,
    CLIENT_ID,
    REDIRECT_URI,
    MockOIDCServer,
)

NONCE = "n-0S6_WzA2Mj"
STATE = "xyz"
CODE = "abc"


def make_state(**kwargs) -> AuthorizeState:
    """Request state as stored when the login started."""
    return AuthorizeState(
        state=kwargs.get("state", STATE),
        nonce=kwargs.get("nonce", NONCE),
        redirect_uri=REDIRECT_URI,
        code_verifier="verifier",
    )


def failing_token_client():
    """A token client that fails the test when used."""
    client = AsyncMock()
    client.redeem.side_effect = AssertionError("token endpoint must not be called")
    return client


def token_client_returning(token_response: TokenResponse):
    """A token client that redeems every code for the given response."""
    client = AsyncMock()
    client.redeem.return_value = token_response
    return client


def make_processor(
    oidc_server: MockOIDCServer,
    token_client,
    flow: AuthenticationFlow = AuthenticationFlow.AUTHORIZATION_CODE,
    policy: Policy | None = None,
    token_validator=None,
) -> ResponseProcessor:
    """Processor wired to the mock provider keys."""
    policy = policy or Policy()
    validator = token_validator or IdentityTokenValidator(
        client_id=CLIENT_ID,
        issuer=BASE_URL,
        keyset=oidc_server.get_keyset(),
        policy=policy,
    )
    return ResponseProcessor(flow, policy, validator, token_client, timeout=5)


def test_validate_nonce():
    """Nonce comparison is exact and never matches a missing claim."""
    assert validate_nonce("abc", {"nonce": "abc"})
    assert not validate_nonce("abc", {"nonce": "ABC"})
    assert not validate_nonce("abc", {"nonce": "abc "})
    assert not validate_nonce("abc", {})
    assert not validate_nonce("abc", {"nonce": None})
    assert not validate_nonce("abc", None)
    assert not validate_nonce("1", {"nonce": 1})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response,expected",
    [
        (AuthorizeResponse(code=None, state=STATE), "Missing authorization code"),
        (AuthorizeResponse(code="", state=STATE), "Missing authorization code"),
        (AuthorizeResponse(code=CODE, state=None), "Missing state"),
        (AuthorizeResponse(code=CODE, state=""), "Missing state"),
        (AuthorizeResponse(code=CODE, state="XYZ"), "Invalid state"),
        (AuthorizeResponse(code=CODE, state="other"), "Invalid state"),
    ],
)
@pytest.mark.parametrize(
    "flow", [AuthenticationFlow.AUTHORIZATION_CODE, AuthenticationFlow.HYBRID]
)
async def test_front_channel_checks_before_collaborators(
    oidc_server: MockOIDCServer, response, expected, flow
):
    """Missing or mismatched parameters fail before any collaborator runs."""
    validator = AsyncMock()
    validator.validate.side_effect = AssertionError("validator must not be called")
    token_client = failing_token_client()
    processor = make_processor(oidc_server, token_client, flow, token_validator=validator)

    result = await processor.process_response(response, make_state())

    assert result.is_error
    assert result.error == expected
    assert result.claims is None
    assert result.token_response is None
    token_client.redeem.assert_not_called()
    validator.validate.assert_not_called()


@pytest.mark.asyncio
async def test_error_kinds_of_front_channel_checks(oidc_server: MockOIDCServer):
    """Missing input and state mismatch are different failure categories."""
    processor = make_processor(oidc_server, failing_token_client())

    missing = await processor.process_response(
        AuthorizeResponse(state=STATE), make_state()
    )
    mismatch = await processor.process_response(
        AuthorizeResponse(code=CODE, state="other"), make_state()
    )

    assert missing.error_kind is ErrorKind.MALFORMED_INPUT
    assert mismatch.error_kind is ErrorKind.SECURITY


@pytest.mark.asyncio
async def test_unknown_flow_is_fatal(oidc_server: MockOIDCServer):
    """A flow outside the enum is a configuration error, not an outcome."""
    processor = make_processor(oidc_server, failing_token_client())
    processor.flow = "implicit"

    with pytest.raises(OIDCConfigurationInvalid):
        await processor.process_response(
            AuthorizeResponse(code=CODE, state=STATE), make_state()
        )


@pytest.mark.asyncio
async def test_code_flow_success(oidc_server: MockOIDCServer):
    """Valid code and state with valid nonce and at_hash succeed."""
    token_response = TokenResponse(
        access_token=ACCESS_TOKEN,
        identity_token=oidc_server.create_id_token(NONCE, access_token=ACCESS_TOKEN),
    )
    token_client = token_client_returning(token_response)
    processor = make_processor(oidc_server, token_client)
    authorize_response = AuthorizeResponse(code=CODE, state=STATE)

    result = await processor.process_response(authorize_response, make_state())

    assert not result.is_error
    assert result.error_kind is None
    assert result.authorize_response is authorize_response
    assert result.token_response is token_response
    assert result.claims["sub"] == "1234567890"
    assert result.claims["nonce"] == NONCE
    token_client.redeem.assert_awaited_once_with(
        CODE, REDIRECT_URI, code_verifier="verifier"
    )


@pytest.mark.asyncio
async def test_code_flow_redeem_error(oidc_server: MockOIDCServer):
    """Redemption errors are annotated, with defaults for missing fields."""
    processor = make_processor(
        oidc_server,
        token_client_returning(
            TokenResponse.from_error("invalid_grant", "Code was already used")
        ),
    )
    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE), make_state()
    )
    assert result.error == "Error redeeming code: invalid_grant / Code was already used"
    assert result.error_kind is ErrorKind.COLLABORATOR

    processor = make_processor(
        oidc_server, token_client_returning(TokenResponse(error=""))
    )
    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE), make_state()
    )
    assert result.error == "Error redeeming code: no error code / no description"


@pytest.mark.asyncio
async def test_code_flow_invalid_nonce(oidc_server: MockOIDCServer):
    """A back-channel token for another request is rejected."""
    token_response = TokenResponse(
        access_token=ACCESS_TOKEN,
        identity_token=oidc_server.create_id_token("other-nonce"),
    )
    processor = make_processor(oidc_server, token_client_returning(token_response))

    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE), make_state()
    )

    assert result.error == "Error validating token response: Invalid nonce."
    assert result.error_kind is ErrorKind.SECURITY
    assert "other-nonce" not in result.error


@pytest.mark.asyncio
async def test_code_flow_missing_identity_token(oidc_server: MockOIDCServer):
    """The code flow always requires an identity token."""
    processor = make_processor(
        oidc_server, token_client_returning(TokenResponse(access_token=ACCESS_TOKEN))
    )

    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE), make_state()
    )

    assert result.error == (
        "Error validating token response: Identity token is missing on token response."
    )


@pytest.mark.asyncio
async def test_token_response_access_token_missing(oidc_server: MockOIDCServer):
    """The access token is checked before anything else."""
    processor = make_processor(oidc_server, failing_token_client())

    result = await processor.validate_token_response(
        TokenResponse(identity_token=oidc_server.create_id_token(NONCE)), make_state()
    )

    assert result.error == "Access token is missing on token response."
    assert result.claims is None


@pytest.mark.asyncio
async def test_token_response_identity_token_optional(oidc_server: MockOIDCServer):
    """Without a required identity token, none present means no identity."""
    processor = make_processor(oidc_server, failing_token_client())

    result = await processor.validate_token_response(
        TokenResponse(access_token=ACCESS_TOKEN), require_identity_token=False
    )

    assert not result.is_error
    assert result.claims is None
    assert result.identity_token_validation_result is None


@pytest.mark.asyncio
async def test_token_response_optional_identity_token_still_validated(
    oidc_server: MockOIDCServer,
):
    """An identity token that is present is validated even when not required."""
    processor = make_processor(oidc_server, failing_token_client())

    result = await processor.validate_token_response(
        TokenResponse(
            access_token=ACCESS_TOKEN,
            identity_token=oidc_server.create_id_token(NONCE, aud="someone-else"),
        ),
        require_identity_token=False,
    )

    assert result.is_error
    assert result.error_kind is ErrorKind.COLLABORATOR


@pytest.mark.asyncio
async def test_token_response_without_state_skips_nonce(oidc_server: MockOIDCServer):
    """Refreshed tokens carry no nonce for this request, it is not checked."""
    processor = make_processor(oidc_server, failing_token_client())

    result = await processor.validate_token_response(
        TokenResponse(
            access_token=ACCESS_TOKEN,
            identity_token=oidc_server.create_id_token(None),
        )
    )

    assert not result.is_error
    assert result.claims["sub"] == "1234567890"


@pytest.mark.asyncio
async def test_at_hash_policy(oidc_server: MockOIDCServer):
    """A missing at_hash only fails when the policy requires it."""
    token_response = TokenResponse(
        access_token=ACCESS_TOKEN, identity_token=oidc_server.create_id_token(NONCE)
    )

    lenient = make_processor(
        oidc_server, failing_token_client(), policy=Policy(require_access_token_hash=False)
    )
    result = await lenient.validate_token_response(token_response, make_state())
    assert not result.is_error

    strict = make_processor(
        oidc_server, failing_token_client(), policy=Policy(require_access_token_hash=True)
    )
    result = await strict.validate_token_response(token_response, make_state())
    assert result.error == "at_hash is missing."
    assert result.error_kind is ErrorKind.SECURITY


@pytest.mark.asyncio
async def test_invalid_at_hash(oidc_server: MockOIDCServer):
    """An at_hash for a different access token is rejected."""
    processor = make_processor(oidc_server, failing_token_client())

    result = await processor.validate_token_response(
        TokenResponse(
            access_token="substitutedAccessToken",
            identity_token=oidc_server.create_id_token(
                NONCE, access_token=ACCESS_TOKEN
            ),
        ),
        make_state(),
    )

    assert result.error == "Invalid access token hash."


def hybrid_setup(oidc_server: MockOIDCServer, front_sub="A", back_sub="A", **kwargs):
    """Front-channel response and back-channel token response for the hybrid flow."""
    authorize_response = AuthorizeResponse(
        code=CODE,
        state=STATE,
        identity_token=oidc_server.create_id_token(NONCE, sub=front_sub, code=CODE),
    )
    token_response = TokenResponse(
        access_token=ACCESS_TOKEN,
        identity_token=oidc_server.create_id_token(
            NONCE, sub=back_sub, access_token=ACCESS_TOKEN
        ),
    )
    token_client = token_client_returning(token_response)
    processor = make_processor(
        oidc_server, token_client, AuthenticationFlow.HYBRID, **kwargs
    )
    return processor, authorize_response, token_response, token_client


@pytest.mark.asyncio
async def test_hybrid_flow_success(oidc_server: MockOIDCServer):
    """Matching subjects on both channels succeed with the back-channel claims."""
    processor, authorize_response, token_response, _ = hybrid_setup(oidc_server)

    result = await processor.process_response(authorize_response, make_state())

    assert not result.is_error
    assert result.claims["sub"] == "A"
    assert "at_hash" in result.claims
    assert result.token_response is token_response
    assert result.authorize_response is authorize_response


@pytest.mark.asyncio
async def test_hybrid_flow_subject_mismatch(oidc_server: MockOIDCServer):
    """A back-channel token for another subject is rejected, naming both."""
    processor, authorize_response, _, _ = hybrid_setup(
        oidc_server, front_sub="A", back_sub="B"
    )

    result = await processor.process_response(authorize_response, make_state())

    assert result.is_error
    assert result.error_kind is ErrorKind.SECURITY
    assert "(A)" in result.error and "(B)" in result.error
    assert result.claims is None


@pytest.mark.asyncio
async def test_hybrid_flow_missing_identity_token(oidc_server: MockOIDCServer):
    """The hybrid flow needs an identity token on the front-channel."""
    token_client = failing_token_client()
    processor = make_processor(oidc_server, token_client, AuthenticationFlow.HYBRID)

    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE), make_state()
    )

    assert result.error == "Missing identity token."
    assert result.error_kind is ErrorKind.MALFORMED_INPUT
    token_client.redeem.assert_not_called()


@pytest.mark.asyncio
async def test_hybrid_flow_invalid_front_channel_token(oidc_server: MockOIDCServer):
    """Validation errors of the front-channel token are propagated verbatim."""
    token_client = failing_token_client()
    processor = make_processor(oidc_server, token_client, AuthenticationFlow.HYBRID)

    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE, identity_token="garbage"),
        make_state(),
    )

    assert result.error == "Identity token is malformed."
    token_client.redeem.assert_not_called()


@pytest.mark.asyncio
async def test_hybrid_flow_invalid_nonce(oidc_server: MockOIDCServer):
    """The front-channel token must carry our nonce."""
    processor, authorize_response, _, token_client = hybrid_setup(oidc_server)

    result = await processor.process_response(
        authorize_response, make_state(nonce="another-nonce")
    )

    assert result.error == "Invalid nonce."
    token_client.redeem.assert_not_called()


@pytest.mark.asyncio
async def test_hybrid_flow_c_hash(oidc_server: MockOIDCServer):
    """c_hash must match the code, and is required unless the policy allows otherwise."""
    processor, _, _, token_client = hybrid_setup(oidc_server)

    # c_hash for another code
    result = await processor.process_response(
        AuthorizeResponse(
            code=CODE,
            state=STATE,
            identity_token=oidc_server.create_id_token(NONCE, sub="A", code="other"),
        ),
        make_state(),
    )
    assert result.error == "Invalid c_hash."
    assert result.error_kind is ErrorKind.SECURITY

    # no c_hash at all
    without_c_hash = AuthorizeResponse(
        code=CODE,
        state=STATE,
        identity_token=oidc_server.create_id_token(NONCE, sub="A"),
    )
    result = await processor.process_response(without_c_hash, make_state())
    assert result.error == "c_hash is missing."
    token_client.redeem.assert_not_called()

    lenient, _, _, _ = hybrid_setup(
        oidc_server, policy=Policy(require_authorization_code_hash=False)
    )
    result = await lenient.process_response(without_c_hash, make_state())
    assert not result.is_error


@pytest.mark.asyncio
async def test_hybrid_flow_redeem_error(oidc_server: MockOIDCServer):
    """The hybrid flow propagates the plain redemption error."""
    processor, authorize_response, _, token_client = hybrid_setup(oidc_server)
    token_client.redeem.return_value = TokenResponse.from_error(
        "invalid_grant", "ignored"
    )

    result = await processor.process_response(authorize_response, make_state())

    assert result.error == "invalid_grant"
    assert result.error_kind is ErrorKind.COLLABORATOR


@pytest.mark.asyncio
async def test_cancellation_during_redemption(oidc_server: MockOIDCServer):
    """A collaborator cancellation is reported as canceled, not as a rejection."""
    token_client = AsyncMock()
    token_client.redeem.side_effect = asyncio.CancelledError
    processor = make_processor(oidc_server, token_client)

    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE), make_state()
    )

    assert result.is_error
    assert result.error_kind is ErrorKind.CANCELED
    assert result.error == "Canceled while redeeming code."


@pytest.mark.asyncio
async def test_timeout_during_redemption(oidc_server: MockOIDCServer):
    """A redemption that exceeds the timeout is reported as canceled."""

    async def slow_redeem(*args, **kwargs):
        await asyncio.sleep(10)

    token_client = AsyncMock()
    token_client.redeem.side_effect = slow_redeem
    processor = make_processor(oidc_server, token_client)
    processor.timeout = 0.01

    result = await processor.process_response(
        AuthorizeResponse(code=CODE, state=STATE), make_state()
    )

    assert result.error_kind is ErrorKind.CANCELED


@pytest.mark.asyncio
async def test_cancellation_during_token_validation(oidc_server: MockOIDCServer):
    """Cancellation while validating the identity token is reported as canceled."""
    validator = AsyncMock()
    validator.validate.side_effect = asyncio.CancelledError
    processor = make_processor(
        oidc_server, failing_token_client(), token_validator=validator
    )

    result = await processor.validate_token_response(
        TokenResponse(access_token=ACCESS_TOKEN, identity_token="token")
    )

    assert result.error_kind is ErrorKind.CANCELED
    assert result.error == "Canceled while validating identity token."


@pytest.mark.asyncio
async def test_caller_cancellation_propagates(oidc_server: MockOIDCServer):
    """Cancelling the calling task is not turned into a result."""
    started = asyncio.Event()

    async def hanging_redeem(*args, **kwargs):
        started.set()
        await asyncio.sleep(10)

    token_client = AsyncMock()
    token_client.redeem.side_effect = hanging_redeem
    processor = make_processor(oidc_server, token_client)

    task = asyncio.create_task(
        processor.process_response(
            AuthorizeResponse(code=CODE, state=STATE), make_state()
        )
    )
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_hybrid_flow_empty_token_error_is_not_a_failure_reason(
    oidc_server: MockOIDCServer,
):
    """An empty error field on the token endpoint never becomes an empty reason."""
    processor, authorize_response, _, token_client = hybrid_setup(oidc_server)
    token_client.redeem.return_value = TokenResponse.from_json(
        {"error": "", "access_token": "x"}, 200
    )

    result = await processor.process_response(authorize_response, make_state())

    assert result.is_error
    assert result.error == "Identity token is missing on token response."
    assert result.error_kind is ErrorKind.MALFORMED_INPUT


@pytest.mark.asyncio
async def test_hybrid_flow_redeem_error_without_error_code(
    oidc_server: MockOIDCServer,
):
    """A failed redemption without an error code still names the failure."""
    processor, authorize_response, _, token_client = hybrid_setup(oidc_server)
    token_client.redeem.return_value = Mock(is_error=True, error=None)

    result = await processor.process_response(authorize_response, make_state())

    assert result.error == "Error redeeming code."
    assert result.error_kind is ErrorKind.COLLABORATOR


@pytest.mark.asyncio
async def test_token_response_with_non_string_tokens(oidc_server: MockOIDCServer):
    """Tokens of the wrong JSON type are failures, never exceptions."""
    processor = make_processor(oidc_server, failing_token_client())

    result = await processor.validate_token_response(
        TokenResponse.from_json({"access_token": "at", "id_token": 42}, 200),
        make_state(),
    )
    assert result.is_error
    assert result.error

    result = await processor.validate_token_response(
        TokenResponse(access_token="at", identity_token=42), make_state()
    )
    assert result.error == "Identity token is malformed."
    assert result.error_kind is ErrorKind.COLLABORATOR

    result = await processor.validate_token_response(
        TokenResponse(
            access_token=12345,
            identity_token=oidc_server.create_id_token(
                NONCE, access_token=ACCESS_TOKEN
            ),
        ),
        make_state(),
    )
    assert result.error == "Invalid access token hash."
    assert result.error_kind is ErrorKind.SECURITY
