"""
Database models for the blood bank backend.

Hospitals raise blood requests against blood banks; blood bank staff
accept, reject or fulfil them.  Users carry a role and are bound to the
organisation they act for.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


BLOOD_GROUPS = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']
RARE_BLOOD_GROUPS = {'AB-', 'B-', 'A-', 'O-'}


class Hospital(models.Model):
    """A hospital that may raise blood requests once verified."""
    STATUS_PENDING = 'PENDING'
    STATUS_VERIFIED = 'VERIFIED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_SUSPENDED = 'SUSPENDED'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_VERIFIED, 'Verified'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_SUSPENDED, 'Suspended'),
    )

    name = models.CharField(max_length=255)
    registration_number = models.CharField(max_length=64, unique=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=128, blank=True, db_index=True)
    state = models.CharField(max_length=128, blank=True)
    verification_status = models.CharField(
        max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.registration_number})"


class BloodBank(models.Model):
    name = models.CharField(max_length=255)
    license_number = models.CharField(max_length=64, unique=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=128, blank=True, db_index=True)
    state = models.CharField(max_length=128, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.license_number})"


class BloodStock(models.Model):
    """Units a blood bank holds for one blood group."""
    blood_bank = models.ForeignKey(BloodBank, on_delete=models.CASCADE, related_name='stock')
    blood_group = models.CharField(max_length=3, choices=[(g, g) for g in BLOOD_GROUPS])
    units_available = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['blood_bank', 'blood_group'], name='bloodstock_bank_group_uniq'),
        ]

    def __str__(self) -> str:
        return f"{self.blood_bank_id} {self.blood_group}: {self.units_available}"


class User(AbstractUser):
    """Custom user with a role and the organisation it acts for.

    Hospital users are bound to a :class:`Hospital`, blood bank users to
    a :class:`BloodBank`.  Admins are bound to neither and see
    everything.
    """
    ROLE_HOSPITAL = 'hospital'
    ROLE_BLOODBANK = 'bloodbank'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_HOSPITAL, 'Hospital'),
        (ROLE_BLOODBANK, 'Blood Bank'),
        (ROLE_ADMIN, 'Administrator'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_HOSPITAL)
    hospital = models.ForeignKey(
        Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='users'
    )
    blood_bank = models.ForeignKey(
        BloodBank, null=True, blank=True, on_delete=models.SET_NULL, related_name='users'
    )

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class HospitalBloodRequest(models.Model):
    """A hospital's request for blood units from one blood bank.

    Lifecycle::

        PENDING -> ACCEPTED -> FULFILLED
        PENDING -> REJECTED
        PENDING | ACCEPTED -> CANCELLED
    """
    STATUS_PENDING = 'PENDING'
    STATUS_ACCEPTED = 'ACCEPTED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_FULFILLED = 'FULFILLED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_FULFILLED, 'Fulfilled'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    URGENCY_CRITICAL = 'CRITICAL'
    URGENCY_HIGH = 'HIGH'
    URGENCY_MEDIUM = 'MEDIUM'
    URGENCY_LOW = 'LOW'
    URGENCY_CHOICES = (
        (URGENCY_CRITICAL, 'Critical'),
        (URGENCY_HIGH, 'High'),
        (URGENCY_MEDIUM, 'Medium'),
        (URGENCY_LOW, 'Low'),
    )

    COMPONENT_CHOICES = (
        ('WHOLE_BLOOD', 'Whole blood'),
        ('PLASMA', 'Plasma'),
        ('PLATELETS', 'Platelets'),
        ('RBC', 'Red blood cells'),
    )

    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='blood_requests')
    blood_bank = models.ForeignKey(BloodBank, on_delete=models.CASCADE, related_name='blood_requests')

    request_code = models.CharField(max_length=32, unique=True)
    blood_group = models.CharField(max_length=3, choices=[(g, g) for g in BLOOD_GROUPS])
    component = models.CharField(max_length=16, choices=COMPONENT_CHOICES, default='WHOLE_BLOOD')
    units_required = models.PositiveIntegerField()
    units_fulfilled = models.PositiveIntegerField(default=0)
    urgency = models.CharField(max_length=10, choices=URGENCY_CHOICES, default=URGENCY_MEDIUM, db_index=True)
    priority = models.PositiveIntegerField(default=50, db_index=True)
    is_emergency = models.BooleanField(default=False)

    patient_age = models.PositiveIntegerField(null=True, blank=True)
    patient_gender = models.CharField(max_length=16, blank=True)
    patient_condition = models.CharField(max_length=255, blank=True)
    department = models.CharField(max_length=128, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    hospital_notes = models.TextField(blank=True)
    blood_bank_response = models.TextField(blank=True)
    rejection_reason = models.CharField(max_length=500, blank=True)
    cancellation_reason = models.CharField(max_length=500, blank=True)
    rejected_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='rejected_blood_requests'
    )

    requested_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    fulfilled_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    expected_delivery_time = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['hospital', 'status', 'requested_at'], name='bloodreq_hosp_status_idx'),
            models.Index(fields=['blood_bank', 'status', 'requested_at'], name='bloodreq_bank_status_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.request_code} {self.blood_group} x{self.units_required} [{self.status}]"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.object_type}#{self.object_id}"
