"""
URL configuration for the ColorGarb portal.
"""
from django.contrib import admin
from django.urls import path
from django.conf import settings
from django.conf.urls.static import static
from ninja import NinjaAPI

api = NinjaAPI(
    title="ColorGarb API",
    version="1.0.0",
    description="Costume order management portal for ColorGarb and its client organizations",
    docs_url="/docs",
)

from apps.identity.api import router as auth_router, users_router
from apps.organizations.api import router as organizations_router
from apps.orders.api import router as orders_router, requests_router as order_requests_router
from apps.messaging.api import router as messages_router, admin_router as admin_messages_router
from apps.notifications.api import router as notifications_router
from apps.communications.api import (
    router as communication_audit_router,
    export_router as communication_export_router,
    webhooks_router,
)
from apps.governance.api import router as governance_router

api.add_router("/auth/", auth_router)
api.add_router("/users/", users_router)
api.add_router("/organizations/", organizations_router)
api.add_router("/orders/", orders_router)
# Order threads live under /orders/{order_id}/messages
api.add_router("/orders/", messages_router)
api.add_router("/order-requests/", order_requests_router)
api.add_router("/admin/messages/", admin_messages_router)
api.add_router("/notifications/", notifications_router)
api.add_router("/communication-audit/", communication_audit_router)
api.add_router("/communication-export/", communication_export_router)
api.add_router("/webhooks/", webhooks_router)
api.add_router("/governance/", governance_router)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', api.urls),
]

# Serve uploaded attachments in development
if settings.DEBUG:
    urlpatterns += static(
        getattr(settings, 'MEDIA_URL', '/media/'),
        document_root=getattr(settings, 'MEDIA_ROOT', settings.BASE_DIR / 'media')
    )
