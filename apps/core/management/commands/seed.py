from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from apps.organizations.models import Organization, OrganizationType
from apps.identity.models import UserRole
from apps.orders.models import Order, OrderStageHistory, PaymentStatus
from apps.orders.stages import MANUFACTURING_STAGES
from apps.messaging.models import Message, MessageType, RecipientRole
from apps.notifications.models import NotificationPreference

User = get_user_model()

DEMO_PASSWORD = 'Password123'

DEMO_ORGANIZATIONS = [
    ('Lincoln High School', OrganizationType.SCHOOL, 'band@lincoln.edu', '100 Lincoln Ave, Springfield'),
    ('Riverside Community Theater', OrganizationType.THEATER, 'office@riversidetheater.org', '8 Stage Door Rd, Riverside'),
]

# (description, stage index, days until ship, amount)
DEMO_ORDERS = [
    ('Marching band uniforms - 80 performers', 6, 45, Decimal('24000.00')),
    ('Color guard flags and costumes', 2, 90, Decimal('6500.00')),
    ('Spring musical costume set', 10, 12, Decimal('9800.00')),
]


class Command(BaseCommand):
    help = 'Seeds the database with demo organizations, users, orders and messages.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clean',
            action='store_true',
            help='Delete existing data before seeding',
        )
        parser.add_argument(
            '--users',
            action='store_true',
            help='Seed organizations and users only',
        )

    def handle(self, *args, **options):
        if options['clean']:
            self.stdout.write(self.style.WARNING('Cleaning database...'))
            self._clean_database()
            self.stdout.write(self.style.SUCCESS('Database cleaned.'))

        staff = self._seed_staff()
        for name, org_type, contact_email, address in DEMO_ORGANIZATIONS:
            org = self._get_or_create_org(name, org_type, contact_email, address)
            director = self._seed_client_users(org, contact_email.split('@')[1])
            if not options['users']:
                self._seed_orders(org, director, staff)

        self.stdout.write(self.style.SUCCESS('Seeding completed successfully.'))

    def _clean_database(self):
        Message.objects.all().delete()
        OrderStageHistory.objects.all().delete()
        Order.objects.all().delete()
        User.objects.exclude(is_superuser=True).delete()
        Organization.objects.all().delete()

    def _get_or_create_org(self, name, org_type, contact_email, address):
        org, created = Organization.objects.get_or_create(
            name=name,
            defaults={
                'org_type': org_type,
                'contact_email': contact_email,
                'address': address,
                'shipping_address': address,
            }
        )
        if created:
            self.stdout.write(f'Created Organization: {org.name}')
        else:
            self.stdout.write(f'Using existing Organization: {org.name}')
        return org

    def _create_user(self, email, **fields):
        user = User.objects.filter(email=email).first()
        if user:
            return user
        user = User.objects.create_user(email=email, password=DEMO_PASSWORD, **fields)
        NotificationPreference.objects.get_or_create(user=user)
        self.stdout.write(f' - Created {user.role} {email} ({DEMO_PASSWORD})')
        return user

    def _seed_staff(self):
        self.stdout.write('Seeding ColorGarb staff...')
        return self._create_user('staff@colorgarb.com', name='Casey Production', role=UserRole.STAFF)

    def _seed_client_users(self, org, domain):
        self.stdout.write(f'Seeding users for {org.name}...')
        director = self._create_user(
            f'director@{domain}', name='Dana Director', role=UserRole.DIRECTOR, organization=org
        )
        self._create_user(f'finance@{domain}', name='Frankie Finance', role=UserRole.FINANCE, organization=org)
        return director

    def _seed_orders(self, org, director, staff):
        from apps.orders.services import generate_order_number

        if org.orders.exists():
            self.stdout.write(' - Orders already exist, skipping')
            return

        now = timezone.now()
        for description, stage_index, days_out, amount in DEMO_ORDERS:
            ship_date = now + timedelta(days=days_out)
            order = Order.objects.create(
                order_number=generate_order_number(),
                organization=org,
                description=description,
                current_stage=MANUFACTURING_STAGES[stage_index],
                original_ship_date=ship_date,
                current_ship_date=ship_date,
                total_amount=amount,
                payment_status=PaymentStatus.PARTIAL if stage_index > 4 else PaymentStatus.PENDING,
            )
            for stage in MANUFACTURING_STAGES[:stage_index + 1]:
                OrderStageHistory.objects.create(order=order, stage=stage, updated_by=staff, notes='Seeded')

            question = Message.objects.create(
                order=order,
                sender=director,
                sender_role=director.role,
                sender_name=director.display_name,
                recipient_role=RecipientRole.STAFF,
                content='Can you confirm the sizing chart we sent covers every performer?',
                message_type=MessageType.QUESTION,
            )
            Message.objects.create(
                order=order,
                sender=staff,
                sender_role=staff.role,
                sender_name=staff.display_name,
                recipient_role=RecipientRole.CLIENT,
                content='Confirmed. All measurements are in and production is on schedule.',
                reply_to=question,
            )

        self.stdout.write(f' - Created {len(DEMO_ORDERS)} orders with message threads')
