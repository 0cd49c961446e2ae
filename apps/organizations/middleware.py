import logging
import uuid
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)


class TenantMiddleware(MiddlewareMixin):
    """
    Sets the current organization scope on the request as request.org_id.

    - Client users (Director/Finance): always their own organization.
    - ColorGarb staff: None (every organization), or the organization named
      in the X-Organization-ID header to narrow listings.
    """

    def process_request(self, request):
        request.org_id = None

        if not (hasattr(request, 'user') and request.user.is_authenticated):
            return

        user = request.user

        # 1. Staff Context Switch
        if getattr(user, 'is_colorgarb_staff', False):
            header_org = request.headers.get('X-Organization-ID')
            if header_org:
                try:
                    request.org_id = uuid.UUID(header_org)
                except ValueError:
                    logger.warning(f"Invalid X-Organization-ID header: {header_org}")
            return

        # 2. Client User Enforced Context
        request.org_id = getattr(user, 'organization_id', None)
