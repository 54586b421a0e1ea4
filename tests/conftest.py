"""Shared fixtures"""

import pytest

from .mocks.oidc_server import MockOIDCServer, generate_signing_key


@pytest.fixture(scope="session")
def signing_key():
    """One RSA key for the whole run, generating them is slow."""
    return generate_signing_key()


@pytest.fixture
def oidc_server(signing_key) -> MockOIDCServer:
    """A fresh mock provider."""
    return MockOIDCServer(signing_key)
