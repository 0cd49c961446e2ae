from django.contrib import admin
from .models import Message, MessageAttachment, MessageEdit


class MessageAttachmentInline(admin.TabularInline):
    model = MessageAttachment
    extra = 0
    readonly_fields = ['original_file_name', 'file_size', 'content_type', 'uploaded_at']


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['order', 'sender_name', 'sender_role', 'message_type', 'is_read', 'created_at']
    list_filter = ['message_type', 'sender_role', 'is_read']
    search_fields = ['content', 'sender_name', 'order__order_number']
    inlines = [MessageAttachmentInline]


@admin.register(MessageEdit)
class MessageEditAdmin(admin.ModelAdmin):
    list_display = ['audit_trail', 'edited_by', 'edited_at']
