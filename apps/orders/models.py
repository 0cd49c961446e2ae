import uuid
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from .stages import MANUFACTURING_STAGES, INITIAL_STAGE

STAGE_CHOICES = [(stage, stage) for stage in MANUFACTURING_STAGES]


class PaymentStatus(models.TextChoices):
    PENDING_DESIGN_APPROVAL = 'Pending Design Approval', 'Pending Design Approval'
    PENDING = 'Pending', 'Pending'
    PARTIAL = 'Partial', 'Partial'
    PAID = 'Paid', 'Paid'
    REFUNDED = 'Refunded', 'Refunded'


class Order(models.Model):
    """
    A costume order for one client organization.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=50, unique=True)
    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.PROTECT,
        related_name='orders'
    )
    description = models.CharField(max_length=500)
    current_stage = models.CharField(max_length=50, choices=STAGE_CHOICES, default=INITIAL_STAGE)
    original_ship_date = models.DateTimeField()
    current_ship_date = models.DateTimeField()
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    payment_status = models.CharField(
        max_length=50,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING
    )
    notes = models.CharField(max_length=2000, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['organization', 'is_active']),
            models.Index(fields=['current_stage']),
        ]

    def __str__(self):
        return f"{self.order_number} ({self.current_stage})"


class OrderStageHistory(models.Model):
    """
    One row per stage or ship-date change, including the initial stage.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='stage_history')
    stage = models.CharField(max_length=50, choices=STAGE_CHOICES)
    entered_at = models.DateTimeField(auto_now_add=True)
    updated_by = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        related_name='order_stage_updates'
    )
    notes = models.CharField(max_length=1000, blank=True)
    previous_ship_date = models.DateTimeField(null=True, blank=True)
    new_ship_date = models.DateTimeField(null=True, blank=True)
    change_reason = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ['entered_at']
        verbose_name_plural = "Order stage history"

    def __str__(self):
        return f"{self.order.order_number} -> {self.stage}"


class RequestPriority(models.TextChoices):
    LOW = 'Low', 'Low'
    NORMAL = 'Normal', 'Normal'
    HIGH = 'High', 'High'
    URGENT = 'Urgent', 'Urgent'


class OrderRequestStatus(models.TextChoices):
    PENDING = 'Pending', 'Pending'
    APPROVED = 'Approved', 'Approved'
    REJECTED = 'Rejected', 'Rejected'


class OrderRequest(models.Model):
    """
    A client's request for a new order, reviewed by staff before an Order exists.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.CASCADE,
        related_name='order_requests'
    )
    requester = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        related_name='order_requests'
    )
    name = models.CharField(max_length=100)
    email = models.EmailField()
    description = models.CharField(max_length=500)
    notes = models.CharField(max_length=2000, blank=True)
    performer_count = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(10000)]
    )
    preferred_completion_date = models.DateField()
    estimated_budget = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    priority = models.CharField(max_length=20, choices=RequestPriority.choices, default=RequestPriority.NORMAL)
    status = models.CharField(
        max_length=20,
        choices=OrderRequestStatus.choices,
        default=OrderRequestStatus.PENDING,
        db_index=True
    )
    created_order = models.OneToOneField(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='source_request'
    )
    processed_by = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='processed_order_requests'
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    processing_notes = models.CharField(max_length=1000, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Order request from {self.organization} ({self.status})"
