"""
JWT Authentication utilities for the order portal.

Provides token generation, validation, and cookie management
for stateless authentication compatible with AWS Lambda.
"""
import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from uuid import UUID
from django.conf import settings


# JWT Configuration
JWT_SECRET = os.getenv('JWT_SECRET', settings.SECRET_KEY)
JWT_ALGORITHM = 'HS256'
JWT_ISSUER = os.getenv('JWT_ISSUER', 'ColorGarbApi')
JWT_AUDIENCE = os.getenv('JWT_AUDIENCE', 'ColorGarbClient')
ACCESS_TOKEN_EXPIRE_MINUTES = 60
REFRESH_TOKEN_EXPIRE_DAYS = 7

ACCESS_TOKEN_COOKIE = 'access_token'
REFRESH_TOKEN_COOKIE = 'refresh_token'


def create_access_token(user) -> str:
    """
    Create a short-lived access token.

    Carries the user's id, role and organization so authorization
    checks do not need a second lookup. Expires in 60 minutes.
    """
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role,
        'org_id': str(user.organization_id) if user.organization_id else '',
        'iss': JWT_ISSUER,
        'aud': JWT_AUDIENCE,
        'exp': now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        'iat': now,
        'type': 'access'
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: UUID) -> str:
    """
    Create a long-lived refresh token.

    Used to obtain new access tokens without re-authentication.
    Expires in 7 days.
    """
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'iss': JWT_ISSUER,
        'aud': JWT_AUDIENCE,
        'exp': now + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
        'iat': now,
        'type': 'refresh'
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_token_pair(user) -> Tuple[str, str]:
    """
    Create both access and refresh tokens.

    Returns:
        (access_token, refresh_token)
    """
    return (
        create_access_token(user),
        create_refresh_token(user.id)
    )


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded payload if valid, None if invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_user_id_from_token(token: str, token_type: str = 'access') -> Optional[UUID]:
    """
    Extract user_id from a valid token of the given type.

    Returns:
        UUID of user if token valid, None otherwise.
    """
    payload = decode_token(token)
    if not payload or payload.get('type') != token_type or 'sub' not in payload:
        return None
    try:
        return UUID(payload['sub'])
    except ValueError:
        return None


def get_token_from_request(request) -> Optional[str]:
    """Access token from the Authorization header, falling back to the cookie."""
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip() or None
    return request.COOKIES.get(ACCESS_TOKEN_COOKIE)


# Cookie configuration
def get_cookie_settings(is_production: bool = False) -> dict:
    """
    Get cookie settings based on environment.

    Production: Secure, SameSite=Lax
    Development: Not secure (localhost), SameSite=Lax
    """
    return {
        'httponly': True,
        'secure': is_production,
        'samesite': 'Lax',
        'path': '/',
    }


def get_access_token_cookie_settings(is_production: bool = False) -> dict:
    """Cookie settings for access token."""
    cookie = get_cookie_settings(is_production)
    cookie['max_age'] = ACCESS_TOKEN_EXPIRE_MINUTES * 60
    return cookie


def get_refresh_token_cookie_settings(is_production: bool = False) -> dict:
    """Cookie settings for refresh token."""
    cookie = get_cookie_settings(is_production)
    cookie['max_age'] = REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60
    return cookie
