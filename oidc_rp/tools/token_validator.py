"""Identity token validation (signature, issuer, audience, lifetime)."""

import logging
from typing import Awaitable, Callable, Optional

import aiohttp
from joserfc import jwt, jwk, jws, errors as joserfc_errors

from .errors import OIDCJWKSInvalid
from .helpers import base64url_encode, compute_allowed_signing_algs
from .http_client import HTTPClientError, HTTPSessionProvider, http_raise_for_status
from .types import ErrorKind, IdentityTokenValidationResult, Policy

_LOGGER = logging.getLogger(__name__)


class JWKSClient:
    """Retrieves the provider's signing keys."""

    def __init__(self, jwks_uri: str, session_provider: HTTPSessionProvider):
        self.jwks_uri = jwks_uri
        self.session_provider = session_provider

    async def fetch_jwks(self) -> dict:
        """Fetches JWKS."""
        try:
            session = await self.session_provider.get_session()
            async with session.get(self.jwks_uri) as response:
                await http_raise_for_status(response)
                jwks = await response.json()
        except HTTPClientError as e:
            _LOGGER.warning("Error fetching JWKS: %s", e)
            raise OIDCJWKSInvalid from e
        except TimeoutError:
            raise
        except (aiohttp.ClientError, ValueError) as e:
            _LOGGER.warning("Error fetching JWKS: %s", e)
            raise OIDCJWKSInvalid from e

        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            _LOGGER.warning("JWKS from %s does not contain a key list", self.jwks_uri)
            raise OIDCJWKSInvalid("JWKS does not contain a key list")

        return jwks


class _KeyMiss(Exception):
    """No key in the current key set verifies the token."""


# pylint: disable=too-many-instance-attributes
class IdentityTokenValidator:
    """Validates identity tokens against the provider's keys and the client registration.

    If no key in the current set matches the token, the keys are refreshed
    once through `refresh_keys` and validation is retried.
    """

    def __init__(
        self,
        client_id: str,
        issuer: str,
        keyset: dict,
        policy: Policy,
        **kwargs,
    ):
        self.client_id = client_id
        self.issuer = issuer
        self.keyset = keyset or {"keys": []}
        self.policy = policy

        # Optional parameters
        self.client_secret: Optional[str] = kwargs.get("client_secret")
        self.id_token_signing_alg: Optional[str] = kwargs.get("id_token_signing_alg")
        self.clock_skew: int = kwargs.get("clock_skew", 300)
        self.refresh_keys: Optional[Callable[[], Awaitable[dict]]] = kwargs.get(
            "refresh_keys"
        )
        self.verbose_debug_mode: bool = kwargs.get("verbose_debug_mode", False)

        self.allowed_algs = compute_allowed_signing_algs(
            policy.valid_signature_algorithms,
            self.id_token_signing_alg,
            self.verbose_debug_mode,
            _LOGGER,
        )

    async def validate(self, identity_token: str) -> IdentityTokenValidationResult:
        """Validates the identity token, refreshing the signing keys once if needed."""
        try:
            return self._validate(identity_token)
        except _KeyMiss:
            if self.refresh_keys is None:
                return self._error("No signing key verified the identity token.")

        _LOGGER.info("Signing key not found in key set, refreshing keys")
        try:
            self.keyset = await self.refresh_keys()
        except OIDCJWKSInvalid:
            return self._error("Unable to refresh signing keys.")

        try:
            return self._validate(identity_token)
        except _KeyMiss:
            return self._error(
                "No signing key verified the identity token after key refresh."
            )

    def _error(self, message: str) -> IdentityTokenValidationResult:
        _LOGGER.warning("Identity token validation failed: %s", message)
        return IdentityTokenValidationResult(
            error=message, error_kind=ErrorKind.COLLABORATOR
        )

    def _validate(self, identity_token: str) -> IdentityTokenValidationResult:
        if not isinstance(identity_token, str):
            return self._error("Identity token is malformed.")

        try:
            # Obtain the (unverified) id_token header
            token_obj = jws.extract_compact(identity_token.encode())
            unverified_header = token_obj.protected
        except (joserfc_errors.JoseError, ValueError) as e:
            _LOGGER.debug("Could not parse identity token: %s", e)
            return self._error("Identity token is malformed.")

        if not unverified_header:
            return self._error("Identity token has no header.")

        # Obtain the signing algorithm from the header of the id_token
        alg = unverified_header.get("alg")
        if not alg:
            return self._error("Identity token has no alg header.")

        if alg not in self.allowed_algs:
            _LOGGER.warning(
                "ID Token received signed with unsupported algorithm: %s (allowed: %s)",
                alg,
                self.allowed_algs,
            )
            return self._error(
                f"Identity token signed with unsupported algorithm {alg}."
            )

        if self.verbose_debug_mode:
            _LOGGER.debug("ID token signed with algorithm '%s'", alg)

        if alg.startswith("HS"):
            decoded_token = self._verify_hmac(identity_token, alg)
            if decoded_token is None:
                return self._error("Identity token HMAC signature is invalid.")
        else:
            # Raises _KeyMiss when the key set needs refreshing
            decoded_token = self._verify_with_keyset(
                identity_token, alg, unverified_header.get("kid")
            )

        # Claims validation (post-signature verification)
        id_token_validator = jwt.JWTClaimsRegistry(
            leeway=self.clock_skew,
            # OpenID Connect Core 1.0 Section 3.1.3.7.3
            # The Client MUST validate that the aud (audience) Claim contains
            # its client_id value registered at the Issuer identified by the
            # iss (issuer) Claim as an audience.
            aud={"essential": True, "value": self.client_id},
            # OpenID Connect Core 1.0 Section 3.1.3.7.2
            # The Issuer Identifier for the OpenID Provider MUST exactly
            # match the value of the iss (issuer) Claim.
            iss={"essential": True, "value": self.issuer},
            sub={"essential": True},
            # OpenID Connect Core 1.0 Section 3.1.3.7.9
            exp={"essential": True},
            iat={"essential": True},
        )

        try:
            id_token_validator.validate(decoded_token.claims)
        except joserfc_errors.JoseError as e:
            return self._error(f"Identity token claims are invalid: {e}")

        return IdentityTokenValidationResult(
            claims=dict(decoded_token.claims), signature_algorithm=alg
        )

    def _verify_hmac(self, identity_token: str, alg: str):
        # OpenID Connect Core 1.0 Section 3.1.3.7.8
        # If the JWT alg Header Parameter uses a MAC based algorithm
        # the octets of the UTF-8 representation of the client_secret
        # are used as the key to validate the signature.
        if not self.client_secret:
            _LOGGER.warning(
                "ID Token signed with HMAC algorithm, but no client_secret provided."
            )
            return None

        try:
            jwk_obj = jwk.import_key(
                {
                    "kty": "oct",
                    "k": base64url_encode(self.client_secret.encode("utf-8")),
                    "alg": alg,
                }
            )
            return jwt.decode(identity_token, jwk_obj, algorithms=[alg])
        except (joserfc_errors.JoseError, ValueError) as e:
            _LOGGER.debug("HMAC verification failed: %s", e)
            return None

    def _verify_with_keyset(self, identity_token: str, alg: str, kid: Optional[str]):
        keys = self.keyset.get("keys", [])

        # Priority: 1. Exact "kid" match. 2. Matching key["alg"]. 3. All keys.
        candidates = []
        if kid:
            candidates = [key for key in keys if key.get("kid") == kid]
            if not candidates:
                _LOGGER.debug("Key with kid '%s' not in key set", kid)
                raise _KeyMiss
        else:
            if self.verbose_debug_mode:
                _LOGGER.debug("JWT header lacks 'kid'; will try all JWKS candidates")
            candidates = [key for key in keys if key.get("alg") == alg]
            candidates += [key for key in keys if key not in candidates]

        for candidate_key in candidates:
            if candidate_key.get("use", "sig") != "sig":
                continue

            try:
                # If key lacks "alg", inherit from header (per JWK §7.2, optional)
                key_dict = candidate_key.copy()
                if "alg" not in key_dict:
                    key_dict["alg"] = alg

                jwk_obj = jwk.import_key(key_dict)
                decoded_token = jwt.decode(identity_token, jwk_obj, algorithms=[alg])
            except (
                joserfc_errors.JoseError,
                ValueError,
                TypeError,
                KeyError,
            ) as verify_err:
                if self.verbose_debug_mode:
                    _LOGGER.debug(
                        "Key candidate failed verification (kid=%s): %s",
                        candidate_key.get("kid", "none"),
                        verify_err,
                    )
                continue

            if self.verbose_debug_mode:
                _LOGGER.debug(
                    "Signature verified successfully with JWKS key: %s",
                    candidate_key.get("kid", "none"),
                )
            return decoded_token

        _LOGGER.debug(
            "No JWKS key verified the ID token signature (alg='%s', tried %d candidates)",
            alg,
            len(candidates),
        )
        raise _KeyMiss
