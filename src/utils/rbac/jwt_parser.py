"""
JWT Parser - Resolve the authenticated principal from a bearer token

Tokens are issued elsewhere with the payload {'sub': <user id>, 'email': ...}.
This module only verifies them and extracts the subject; it never issues
tokens.
"""

from typing import Any, Dict, Optional

import jwt

from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ALGORITHMS = ["HS256"]


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an Authorization header value.

    Returns:
        The raw token, or None if the header is missing or not a Bearer header
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_jwt_claims(token_string: str, secret: str, algorithms=None) -> Dict[str, Any]:
    """
    Decode and verify a JWT token string.

    Args:
        token_string: Encoded JWT token
        secret: Shared HMAC secret
        algorithms: Accepted algorithms (HS256 by default)

    Returns:
        Decoded token claims dictionary, or an empty dict if the token is
        invalid or expired
    """
    try:
        return jwt.decode(token_string, secret, algorithms=algorithms or DEFAULT_ALGORITHMS)
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token has expired")
        return {}
    except jwt.InvalidTokenError as e:
        logger.warning(f"Failed to decode JWT: {e}")
        return {}


def extract_user_id(token_string: str, secret: str) -> Optional[str]:
    """
    Return the 'sub' claim of a verified token.

    Returns:
        User id string, or None if the token is invalid or has no subject
    """
    claims = decode_jwt_claims(token_string, secret)
    subject = claims.get("sub")
    if not subject:
        if claims:
            logger.warning(f"Token has no 'sub' claim. Claim keys: {list(claims.keys())}")
        return None
    return str(subject)
