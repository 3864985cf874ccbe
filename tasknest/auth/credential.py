"""Offline inspection of session credentials (signed-claims bearer tokens)."""
import time

import jwt

from tasknest.exceptions import ValidationDecodeError


def decode_claims(token: str) -> dict:
    """
    Decode a token's claims without verifying its signature.

    The signature is the auth provider's business; locally the claims are only
    used to skip pointless network calls.

    :raises ValidationDecodeError: If the token is not a decodable claims token
    """
    try:
        claims = jwt.decode(token, options={'verify_signature': False})
    except jwt.PyJWTError as e:
        raise ValidationDecodeError(f"Malformed credential: {e}") from e
    if not isinstance(claims, dict):
        raise ValidationDecodeError("Credential claims are not an object")
    return claims


def token_expiry(token: str) -> int | None:
    """Return the ``exp`` claim in epoch seconds, or None if the token has none."""
    exp = decode_claims(token).get('exp')
    if exp is None:
        return None
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise ValidationDecodeError(f"Invalid exp claim: {exp!r}")
    return int(exp)


def is_token_expired(token: str, now: float | None = None) -> bool:
    exp = token_expiry(token)
    if exp is None:
        return False
    current = int(now if now is not None else time.time())
    return exp < current
