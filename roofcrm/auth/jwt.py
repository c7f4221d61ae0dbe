"""
JWT token verification.

Tokens are issued by the CRM's login flow; this service only verifies them.
They arrive in the httpOnly "access_token" cookie or as a bearer token.
"""

from typing import Optional

from jose import JWTError, jwt

from roofcrm.config import settings

# JWT configuration
ALGORITHM = "HS256"
TOKEN_TYPE = "access"


def verify_token(token: str) -> Optional[dict]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded payload dict with 'user_id' and 'role',
        or None if token is invalid/expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[ALGORITHM],
        )

        if payload.get("type") != TOKEN_TYPE:
            return None

        user_id = payload.get("sub")
        role = payload.get("role")

        if not user_id or not role:
            return None

        return {
            "user_id": int(user_id),
            "role": role,
        }

    except (JWTError, ValueError):
        return None


def get_token_from_request(request) -> Optional[str]:
    """
    Extract the JWT from the access_token cookie or the Authorization header.
    """
    token = request.cookies.get("access_token")
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()

    return None
