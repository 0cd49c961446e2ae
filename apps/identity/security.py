"""Request and token helpers shared by the auth endpoints and audit trails."""
import hashlib
import secrets


def generate_secure_token(num_bytes: int = 32) -> str:
    """URL-safe random token suitable for emailed links."""
    return secrets.token_urlsafe(num_bytes)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def get_client_ip(request) -> str:
    """Client IP, honouring the first hop of X-Forwarded-For behind API Gateway/ALB."""
    if request is None:
        return ''
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '') or ''


def get_user_agent(request) -> str:
    if request is None:
        return ''
    return request.META.get('HTTP_USER_AGENT', '')[:500]
