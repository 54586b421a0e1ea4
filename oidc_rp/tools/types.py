"""Generic data types"""

import enum
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config.const import DEFAULT_SIGNING_ALGORITHMS


class AuthenticationFlow(enum.Enum):
    """Which OIDC flow the client runs."""

    AUTHORIZATION_CODE = "authorization_code"
    HYBRID = "hybrid"


class ErrorKind(enum.Enum):
    """Category of a failed validation, so callers do not need to match strings."""

    # Missing code, state or identity token
    MALFORMED_INPUT = "malformed_input"
    # State, nonce, hash or subject mismatch
    SECURITY = "security"
    # Token endpoint or identity token validation failure
    COLLABORATOR = "collaborator"
    # Timeout or cancellation while waiting on a collaborator
    CANCELED = "canceled"


@dataclass(frozen=True)
class Policy:
    """Security policy applied while validating responses."""

    require_authorization_code_hash: bool = True
    require_access_token_hash: bool = False
    valid_signature_algorithms: tuple[str, ...] = DEFAULT_SIGNING_ALGORITHMS


@dataclass(frozen=True)
class ProviderInformation:
    """Endpoints and keys of the OpenID provider, obtained outside this library."""

    issuer: str
    token_endpoint: str
    jwks_uri: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    keyset: dict = field(default_factory=lambda: {"keys": []})


@dataclass(frozen=True)
class AuthorizeResponse:
    """Parameters returned by the provider on the front-channel redirect."""

    code: Optional[str] = None
    state: Optional[str] = None
    identity_token: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    raw: dict = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    @classmethod
    def from_dict(cls, values: dict) -> "AuthorizeResponse":
        """Build a response from already parsed parameters."""
        return cls(
            code=values.get("code"),
            state=values.get("state"),
            identity_token=values.get("id_token"),
            error=values.get("error"),
            error_description=values.get("error_description"),
            raw=dict(values),
        )

    @classmethod
    def from_query(cls, query: str) -> "AuthorizeResponse":
        """Parse a query string or fragment (leading '?' or '#' allowed)."""
        query = query.lstrip("?#")
        values = dict(urllib.parse.parse_qsl(query, keep_blank_values=True))
        return cls.from_dict(values)

    @classmethod
    def from_url(cls, url: str) -> "AuthorizeResponse":
        """Parse the full redirect URL, preferring the fragment (hybrid flow)."""
        parsed = urllib.parse.urlparse(url)
        if parsed.fragment:
            return cls.from_query(parsed.fragment)
        return cls.from_query(parsed.query)


@dataclass
class AuthorizeState:
    """Local state of one authorization request, consumed exactly once."""

    state: str
    nonce: str
    redirect_uri: str
    code_verifier: Optional[str] = None
    start_url: Optional[str] = None


_TOKEN_RESPONSE_STRING_FIELDS = (
    "access_token",
    "id_token",
    "refresh_token",
    "token_type",
    "error",
    "error_description",
)


@dataclass(frozen=True)
class TokenResponse:
    """Result of redeeming an authorization code at the token endpoint."""

    access_token: Optional[str] = None
    identity_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    http_status: Optional[int] = None
    raw: dict = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    @classmethod
    def from_json(cls, data: dict, http_status: Optional[int] = None):
        """Build a token response from the parsed token endpoint body.

        A body with a present but non-string token or error field is turned
        into an `invalid_response` error.
        """
        for name in _TOKEN_RESPONSE_STRING_FIELDS:
            if data.get(name) is not None and not isinstance(data[name], str):
                return cls.from_error(
                    "invalid_response",
                    f"Token response field {name} is not a string",
                    http_status=http_status,
                )

        expires_in = data.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None

        return cls(
            access_token=data.get("access_token"),
            identity_token=data.get("id_token"),
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type"),
            expires_in=expires_in,
            error=data.get("error") or None,
            error_description=data.get("error_description"),
            http_status=http_status,
            raw=data,
        )

    @classmethod
    def from_error(
        cls,
        error: str,
        error_description: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        """Build a failed token response."""
        return cls(
            error=error, error_description=error_description, http_status=http_status
        )


@dataclass(frozen=True)
class IdentityTokenValidationResult:
    """Outcome of validating one identity token."""

    claims: Optional[dict] = None
    signature_algorithm: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def find_claim(self, name: str) -> Optional[Any]:
        """Returns a claim from the validated token, or None."""
        if self.claims is None:
            return None
        return self.claims.get(name)


@dataclass(frozen=True)
class TokenResponseValidationResult:
    """Outcome of validating a token endpoint response."""

    identity_token_validation_result: Optional[IdentityTokenValidationResult] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def claims(self) -> Optional[dict]:
        """Validated identity claims, None when no identity was asserted."""
        if self.is_error or self.identity_token_validation_result is None:
            return None
        return self.identity_token_validation_result.claims


@dataclass(frozen=True)
class ResponseValidationResult:
    """Outcome of processing a complete authorize response."""

    authorize_response: Optional[AuthorizeResponse] = None
    token_response: Optional[TokenResponse] = None
    claims: Optional[dict] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, error: str, error_kind: ErrorKind):
        """Rejected outcome, carries only the reason."""
        return cls(error=error, error_kind=error_kind)
