"""Exceptions for conditions that are not normal validation outcomes."""

from typing import Optional


class OIDCClientException(Exception):
    "Raised when the OIDC Client encounters an error"


class OIDCConfigurationInvalid(OIDCClientException):
    "Raised when the client is misconfigured, for example with an unknown flow."


class OIDCProviderInvalid(OIDCClientException):
    "Raised when the provider information is incomplete or malformed."

    type: Optional[str]
    details: Optional[dict]

    def __init__(self, **kwargs):
        self.message = "OIDC provider information is invalid"
        self.type = kwargs.pop("type", None)
        self.details = kwargs.pop("details", None)
        super().__init__(self.message)

    def get_detail_string(self) -> str:
        """Returns a detailed string for logging purposes."""
        string = []

        if self.type:
            string.append(f"type: {self.type}")

        if self.details:
            for key, value in self.details.items():
                string.append(f"{key}: {value}")

        return ", ".join(string)


class OIDCJWKSInvalid(OIDCClientException):
    "Raised when the JWKS is invalid or cannot be obtained."
