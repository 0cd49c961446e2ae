from django.contrib import admin
from django.db.models import Count

from apps.identity.models import User
from .models import Organization


class OrganizationUserInline(admin.TabularInline):
    model = User
    fields = ['email', 'name', 'role', 'is_active']
    readonly_fields = ['email']
    extra = 0
    show_change_link = True


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['name', 'org_type', 'contact_email', 'order_count', 'is_active', 'created_at']
    list_filter = ['org_type', 'is_active']
    search_fields = ['name', 'contact_email']
    inlines = [OrganizationUserInline]

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(order_count=Count('orders'))

    @admin.display(ordering='order_count')
    def order_count(self, obj):
        return obj.order_count
