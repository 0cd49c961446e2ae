import uuid
from django.db import models


class OrganizationType(models.TextChoices):
    SCHOOL = 'school', 'School'
    THEATER = 'theater', 'Theater'
    DANCE_COMPANY = 'dance_company', 'Dance Company'
    OTHER = 'other', 'Other'


class Organization(models.Model):
    """
    Represents a client tenant (school, theater or dance company).
    Orders, messages and client users are isolated per organization.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    org_type = models.CharField(
        max_length=50,
        choices=OrganizationType.choices,
        default=OrganizationType.SCHOOL
    )
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=50, blank=True)
    address = models.CharField(max_length=500, blank=True)
    shipping_address = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name
