import uuid
from django.db import models
from django.contrib.auth.models import AbstractUser, UserManager


class UserRole(models.TextChoices):
    DIRECTOR = 'Director', 'Director'
    FINANCE = 'Finance', 'Finance'
    STAFF = 'ColorGarbStaff', 'ColorGarb Staff'


CLIENT_ROLES = (UserRole.DIRECTOR, UserRole.FINANCE)


class PortalUserManager(UserManager):
    """Users sign in by email; the username mirrors it so AbstractUser stays intact."""

    def create_user(self, username=None, email=None, password=None, **extra_fields):
        email = self.normalize_email(email or username or '')
        return super().create_user(username or email, email, password, **extra_fields)


class User(AbstractUser):
    """
    Portal user.

    Director and Finance users belong to exactly one client organization.
    ColorGarb staff have no organization and see every tenant.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    name = models.CharField(max_length=100, blank=True)
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.DIRECTOR
    )
    phone = models.CharField(max_length=20, blank=True)
    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='users',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PortalUserManager()

    class Meta:
        ordering = ['name', 'email']

    def __str__(self):
        return self.email or self.username

    @property
    def is_colorgarb_staff(self) -> bool:
        return self.role == UserRole.STAFF

    @property
    def display_name(self) -> str:
        return self.name or self.get_full_name() or self.email


class LoginAttempt(models.Model):
    """Every login attempt, used for lockout decisions and security review."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(db_index=True)
    ip_address = models.CharField(max_length=45, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    is_successful = models.BooleanField(default=False)
    details = models.CharField(max_length=200, blank=True)
    attempted_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-attempted_at']

    def __str__(self):
        outcome = "success" if self.is_successful else "failure"
        return f"Login {outcome} for {self.email}"


class PasswordResetToken(models.Model):
    """
    Single-use password reset token.
    Only a SHA-256 hash is stored; the raw token exists in the email link alone.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='password_reset_tokens')
    token_hash = models.CharField(max_length=128, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    request_ip = models.CharField(max_length=45, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Reset token for {self.user}"
