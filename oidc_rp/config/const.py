"""Config constants."""

## ===
## Config keys
## ===

CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"
SCOPE = "scope"
REDIRECT_URI = "redirect_uri"
FLOW = "flow"
ID_TOKEN_SIGNING_ALGORITHM = "id_token_signing_alg"
CLOCK_SKEW = "clock_skew"
POLICY = "policy"
POLICY_REQUIRE_CODE_HASH = "require_authorization_code_hash"
POLICY_REQUIRE_ACCESS_TOKEN_HASH = "require_access_token_hash"
FEATURES = "features"
FEATURES_DISABLE_PKCE = "disable_rfc7636"
NETWORK = "network"
NETWORK_TLS_VERIFY = "tls_verify"
NETWORK_TLS_CA_PATH = "tls_ca_path"
NETWORK_TIMEOUT = "timeout"
VERBOSE_DEBUG_MODE = "enable_verbose_debug_mode"

## ===
## Flow names
## ===

FLOW_AUTHORIZATION_CODE = "authorization_code"
FLOW_HYBRID = "hybrid"

## ===
## Defaults
## ===

REQUIRED_SCOPES = "openid profile"
DEFAULT_CLOCK_SKEW = 300
DEFAULT_TIMEOUT = 30.0
DEFAULT_STATE_LIFETIME = 600

# Asymmetric algorithms accepted on identity tokens unless configured otherwise
DEFAULT_SIGNING_ALGORITHMS = (
    "RS256",
    "RS384",
    "RS512",
    "PS256",
    "PS384",
    "PS512",
    "ES256",
    "ES384",
    "ES512",
)
