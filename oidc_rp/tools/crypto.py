"""Hash bindings between identity tokens and the artifacts issued alongside them."""

import hashlib
import hmac
import logging
from typing import Optional

from .helpers import base64url_encode

_LOGGER = logging.getLogger(__name__)

# OpenID Connect Core 1.0 §3.3.2.11: the hash uses the hash algorithm of the
# alg Header Parameter of the ID Token's JOSE Header.
_HASH_BY_STRENGTH = {
    "256": hashlib.sha256,
    "384": hashlib.sha384,
    "512": hashlib.sha512,
}


def get_hash_function(signature_algorithm: Optional[str]):
    """Returns the hashlib constructor matching a JWS algorithm, or None."""
    if not signature_algorithm:
        return None

    # Ed25519 signatures use SHA-512 internally
    if signature_algorithm == "EdDSA":
        return hashlib.sha512

    return _HASH_BY_STRENGTH.get(signature_algorithm[-3:])


def compute_left_hash(value: str, signature_algorithm: str) -> Optional[str]:
    """Computes the c_hash/at_hash style value for the given plaintext.

    Hash the octets of the ASCII representation of the value, take the
    left-most half of the digest and base64url encode it.
    """
    hash_function = get_hash_function(signature_algorithm)
    if hash_function is None:
        return None

    digest = hash_function(value.encode("ascii")).digest()
    return base64url_encode(digest[: len(digest) // 2])


def validate_hash(
    value: str, claimed_hash: str, signature_algorithm: Optional[str]
) -> bool:
    """Checks that the claimed hash binds to the given plaintext."""
    if not isinstance(value, str) or not isinstance(claimed_hash, str):
        return False

    if not value or not claimed_hash:
        return False

    try:
        expected = compute_left_hash(value, signature_algorithm)
    except UnicodeEncodeError:
        _LOGGER.warning("Value to hash contains non-ASCII characters")
        return False

    if expected is None:
        _LOGGER.warning(
            "No hash function known for signature algorithm %s", signature_algorithm
        )
        return False

    return hmac.compare_digest(expected.encode("ascii"), claimed_hash.encode("utf-8"))
