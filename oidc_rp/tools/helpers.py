"""Helper functions for the library."""

import base64
import os
from typing import Optional


def base64url_encode(value: bytes) -> str:
    """Uses base64url encoding on a given byte string"""
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("utf-8")


def generate_random_url_string(length: int = 16) -> str:
    """Generates a random URL safe string (base64_url encoded)"""
    return base64url_encode(os.urandom(length))


def compute_allowed_signing_algs(
    valid_signature_algorithms: tuple[str, ...],
    id_token_signing_alg: Optional[str],
    verbose_debug_mode: bool,
    logger,
) -> list[str]:
    """Compute allowed ID token signing algorithms from config and policy.

    - If `id_token_signing_alg` set: Use only it (warn if not in the policy).
    - Else: Use the policy's `valid_signature_algorithms`.

    Args:
        valid_signature_algorithms: Algorithms accepted by the policy.
        id_token_signing_alg: Configured alg, or None.
        verbose_debug_mode: Enable debug logs.

    Returns:
        List of allowed algs (e.g., ['RS256', 'ES256']).
    """
    if id_token_signing_alg:
        allowed_algs = [id_token_signing_alg]
        if id_token_signing_alg not in valid_signature_algorithms:
            logger.warning(
                "Configured id_token_signing_alg '%s' not in policy algorithms %s. "
                "Proceeding anyway.",
                id_token_signing_alg,
                list(valid_signature_algorithms),
            )
    else:
        allowed_algs = list(valid_signature_algorithms)

    if verbose_debug_mode:
        logger.debug("Allowed ID token signing algorithms: %s", allowed_algs)

    return allowed_algs
