"""OpenID Connect relying party response validation."""

import logging

# Import and re-export config schema explictly
# pylint: disable=useless-import-alias
from .config import CONFIG_SCHEMA as CONFIG_SCHEMA

# Get all the constants for the config
from .config import (
    CLIENT_ID,
    CLIENT_SECRET,
    SCOPE,
    REDIRECT_URI,
    FLOW,
    ID_TOKEN_SIGNING_ALGORITHM,
    CLOCK_SKEW,
    POLICY,
    FEATURES,
    NETWORK,
    VERBOSE_DEBUG_MODE,
)
from .oidc_client import OIDCClient as OIDCClient
from .response_processor import (
    ResponseProcessor as ResponseProcessor,
    validate_nonce as validate_nonce,
)
from .tools.crypto import validate_hash as validate_hash
from .tools.errors import (
    OIDCClientException as OIDCClientException,
    OIDCConfigurationInvalid as OIDCConfigurationInvalid,
    OIDCJWKSInvalid as OIDCJWKSInvalid,
    OIDCProviderInvalid as OIDCProviderInvalid,
)
from .tools.types import (
    AuthenticationFlow as AuthenticationFlow,
    AuthorizeResponse as AuthorizeResponse,
    AuthorizeState as AuthorizeState,
    ErrorKind as ErrorKind,
    Policy as Policy,
    ProviderInformation as ProviderInformation,
    ResponseValidationResult as ResponseValidationResult,
    TokenResponse as TokenResponse,
    TokenResponseValidationResult as TokenResponseValidationResult,
)

_LOGGER = logging.getLogger(__name__)


def create_client(config: dict, provider: ProviderInformation) -> OIDCClient:
    """Validates the configuration and builds a client for the given provider.

    Raises voluptuous.Invalid when the configuration does not match the schema.
    """
    my_config = CONFIG_SCHEMA(config)

    client = OIDCClient(
        provider,
        my_config.get(CLIENT_ID),
        client_secret=my_config.get(CLIENT_SECRET),
        scope=my_config.get(SCOPE),
        redirect_uri=my_config.get(REDIRECT_URI),
        flow=my_config.get(FLOW),
        id_token_signing_alg=my_config.get(ID_TOKEN_SIGNING_ALGORITHM),
        clock_skew=my_config.get(CLOCK_SKEW),
        policy=my_config.get(POLICY, {}),
        features=my_config.get(FEATURES, {}),
        network=my_config.get(NETWORK, {}),
        enable_verbose_debug_mode=my_config.get(VERBOSE_DEBUG_MODE, False),
    )

    _LOGGER.info("Created OIDC client for issuer %s (%s)", provider.issuer, client.flow)
    return client
