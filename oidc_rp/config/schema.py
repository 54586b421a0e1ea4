"""Config schema"""

import voluptuous as vol
from .const import (
    CLIENT_ID,
    CLIENT_SECRET,
    SCOPE,
    REDIRECT_URI,
    FLOW,
    FLOW_AUTHORIZATION_CODE,
    FLOW_HYBRID,
    ID_TOKEN_SIGNING_ALGORITHM,
    CLOCK_SKEW,
    POLICY,
    POLICY_REQUIRE_CODE_HASH,
    POLICY_REQUIRE_ACCESS_TOKEN_HASH,
    FEATURES,
    FEATURES_DISABLE_PKCE,
    NETWORK,
    NETWORK_TLS_VERIFY,
    NETWORK_TLS_CA_PATH,
    NETWORK_TIMEOUT,
    VERBOSE_DEBUG_MODE,
    REQUIRED_SCOPES,
    DEFAULT_CLOCK_SKEW,
    DEFAULT_TIMEOUT,
)

CONFIG_SCHEMA = vol.Schema(
    {
        # Required client ID as registered with the OIDC provider
        vol.Required(CLIENT_ID): vol.Coerce(str),
        # Optional Client Secret to enable confidential client mode
        vol.Optional(CLIENT_SECRET): vol.Coerce(str),
        # Scopes to request, must include openid
        vol.Optional(SCOPE, default=REQUIRED_SCOPES): vol.All(
            vol.Coerce(str), vol.Match(r"(^|.*\s)openid(\s.*|$)")
        ),
        # Default redirect URI used when preparing a login
        vol.Optional(REDIRECT_URI): vol.Coerce(str),
        # Which flow should be used to obtain the tokens?
        vol.Optional(FLOW, default=FLOW_AUTHORIZATION_CODE): vol.In(
            [FLOW_AUTHORIZATION_CODE, FLOW_HYBRID]
        ),
        # Should we enforce a specific signing algorithm on the id tokens?
        # Defaults to the asymmetric algorithms from the policy
        vol.Optional(ID_TOKEN_SIGNING_ALGORITHM): vol.Coerce(str),
        # Allowed clock skew in seconds for exp/nbf/iat
        vol.Optional(CLOCK_SKEW, default=DEFAULT_CLOCK_SKEW): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        # Which hash bindings must be present in the identity token?
        vol.Optional(POLICY, default={}): vol.Schema(
            {
                # c_hash on front-channel identity tokens (hybrid flow)
                vol.Optional(POLICY_REQUIRE_CODE_HASH, default=True): vol.Coerce(
                    bool
                ),
                # at_hash on back-channel identity tokens
                vol.Optional(
                    POLICY_REQUIRE_ACCESS_TOKEN_HASH, default=False
                ): vol.Coerce(bool),
            }
        ),
        # Which features should be enabled/disabled?
        # Optional, defaults to sane/secure defaults
        vol.Optional(FEATURES, default={}): vol.Schema(
            {
                # Feature flag to disable PKCE to support OIDC servers that do not
                # allow additional parameters and don't support RFC 7636
                vol.Optional(FEATURES_DISABLE_PKCE, default=False): vol.Coerce(bool),
            }
        ),
        # Network options
        vol.Optional(NETWORK, default={}): vol.Schema(
            {
                # Verify x509 certificates provided when starting TLS connections
                vol.Optional(NETWORK_TLS_VERIFY, default=True): vol.Coerce(bool),
                # Load custom certificate chain for private CAs
                vol.Optional(NETWORK_TLS_CA_PATH): vol.Coerce(str),
                # Seconds to wait on the token endpoint and key refreshes
                vol.Optional(NETWORK_TIMEOUT, default=DEFAULT_TIMEOUT): vol.All(
                    vol.Coerce(float), vol.Range(min=0, min_included=False)
                ),
            }
        ),
        # If enabled, logging will include detailed information on every
        # validation step. Do not leave this enabled in production.
        vol.Optional(VERBOSE_DEBUG_MODE, default=False): vol.Coerce(bool),
    },
    # Any extra fields should not go into our config right now
    extra=vol.REMOVE_EXTRA,
)
