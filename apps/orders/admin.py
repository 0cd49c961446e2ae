from django.contrib import admin
from .models import Order, OrderStageHistory, OrderRequest


class OrderStageHistoryInline(admin.TabularInline):
    model = OrderStageHistory
    extra = 0
    readonly_fields = ['stage', 'entered_at', 'updated_by', 'previous_ship_date', 'new_ship_date', 'change_reason']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'organization', 'current_stage', 'current_ship_date', 'payment_status', 'is_active']
    list_filter = ['current_stage', 'payment_status', 'is_active']
    search_fields = ['order_number', 'description', 'organization__name']
    inlines = [OrderStageHistoryInline]


@admin.register(OrderRequest)
class OrderRequestAdmin(admin.ModelAdmin):
    list_display = ['organization', 'name', 'performer_count', 'priority', 'status', 'created_at']
    list_filter = ['status', 'priority']
    search_fields = ['name', 'email', 'description']
