# core/management/commands/ensure_demo_users.py
from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password
from core.models import BLOOD_GROUPS, BloodBank, BloodStock, Hospital, User

DEMO_PASSWORD = "demo12345"
DEMO_STOCK_UNITS = 20

DEMO_USERS = [
    ("admin1", User.ROLE_ADMIN),
    ("hospital1", User.ROLE_HOSPITAL),
    ("bloodbank1", User.ROLE_BLOODBANK),
]


class Command(BaseCommand):
    help = "Ensure a demo hospital, blood bank and one user per role exist (idempotent)."

    def handle(self, *args, **opts):
        hospital, _ = Hospital.objects.get_or_create(
            registration_number="HOSP-DEMO-001",
            defaults={"name": "City General Hospital", "city": "Pune", "state": "Maharashtra",
                      "verification_status": Hospital.STATUS_VERIFIED},
        )
        bank, _ = BloodBank.objects.get_or_create(
            license_number="BB-DEMO-001",
            defaults={"name": "Central Blood Bank", "city": "Pune", "state": "Maharashtra"},
        )
        for group in BLOOD_GROUPS:
            BloodStock.objects.get_or_create(blood_bank=bank, blood_group=group,
                                             defaults={"units_available": DEMO_STOCK_UNITS})
        orgs = {
            User.ROLE_ADMIN: {"hospital": None, "blood_bank": None},
            User.ROLE_HOSPITAL: {"hospital": hospital, "blood_bank": None},
            User.ROLE_BLOODBANK: {"hospital": None, "blood_bank": bank},
        }
        for username, role in DEMO_USERS:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password(DEMO_PASSWORD), "is_active": True,
                          "is_staff": role == User.ROLE_ADMIN, **orgs[role]},
            )
            if not created:
                # reset password, role and organisation
                u.password = make_password(DEMO_PASSWORD)
                u.role = role
                u.is_active = True
                u.hospital = orgs[role]["hospital"]
                u.blood_bank = orgs[role]["blood_bank"]
                u.save(update_fields=["password", "role", "is_active", "hospital", "blood_bank"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All demo users ensured."))
