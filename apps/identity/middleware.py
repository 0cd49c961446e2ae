import logging
from django.utils.deprecation import MiddlewareMixin

from .jwt_auth import get_token_from_request, get_user_id_from_token

logger = logging.getLogger(__name__)


class JWTAuthenticationMiddleware(MiddlewareMixin):
    """
    Resolves request.user from a JWT access token.

    Reads the Bearer header first, then the access_token cookie.
    Requests without a valid token keep whatever user the session
    middleware attached (AnonymousUser for API clients).
    """

    def process_request(self, request):
        token = get_token_from_request(request)
        if not token:
            return

        user_id = get_user_id_from_token(token)
        if not user_id:
            logger.debug("Ignoring invalid or expired access token")
            return

        from .models import User
        try:
            user = User.objects.select_related('organization').get(id=user_id, is_active=True)
        except User.DoesNotExist:
            logger.warning(f"Access token for unknown or inactive user {user_id}")
            return

        request.user = user
        request._cached_user = user
