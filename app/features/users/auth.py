"""
Access token helpers.

Tokens are HS256 JWTs carrying the claims ``id``, ``email`` and
``rol_global``. Credential checks and password hashing happen upstream.
"""
from datetime import datetime, timedelta, timezone
import jwt
from fastapi import HTTPException, status

from app.core import config


def create_access_token(
    user_id: str,
    email: str,
    rol_global: str = "miembro",
    expires_delta: timedelta | None = None,
) -> str:
    """
    Issue an access token for a user.

    Args:
        user_id: User ULID
        email: User email
        rol_global: Coarse global role tag
        expires_delta: Token lifetime (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "id": user_id,
        "email": email,
        "rol_global": rol_global,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def verify_jwt_token(token: str) -> dict:
    """
    Verify a JWT and return its payload.
    
    Args:
        token: JWT token from Authorization header
        
    Returns:
        Decoded JWT payload
        
    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
