"""
Django admin registrations for the blood bank models.

Hospitals are verified from here as well as through the API; blood
requests are read-mostly, status changes should go through the API so
they get audited and broadcast.
"""

from django.contrib import admin

from .models import AuditEvent, BloodBank, BloodStock, Hospital, HospitalBloodRequest, User


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'registration_number', 'city', 'verification_status', 'created_at')
    list_filter = ('verification_status', 'state')
    search_fields = ('name', 'registration_number', 'city')


@admin.register(BloodBank)
class BloodBankAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'license_number', 'city', 'is_active')
    list_filter = ('is_active', 'state')
    search_fields = ('name', 'license_number', 'city')


@admin.register(BloodStock)
class BloodStockAdmin(admin.ModelAdmin):
    list_display = ('blood_bank', 'blood_group', 'units_available', 'updated_at')
    list_filter = ('blood_group',)
    search_fields = ('blood_bank__name',)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'hospital', 'blood_bank', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'first_name', 'last_name', 'email')


@admin.register(HospitalBloodRequest)
class HospitalBloodRequestAdmin(admin.ModelAdmin):
    list_display = ('request_code', 'hospital', 'blood_bank', 'blood_group', 'units_required',
                    'urgency', 'priority', 'status', 'requested_at')
    list_filter = ('status', 'urgency', 'blood_group', 'component')
    search_fields = ('request_code', 'hospital__name', 'blood_bank__name')
    readonly_fields = ('request_code', 'priority', 'requested_at', 'accepted_at', 'rejected_at',
                       'fulfilled_at', 'cancelled_at', 'rejected_by')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'object_type', 'object_id', 'user')
    list_filter = ('action', 'object_type')
    search_fields = ('object_id', 'user__username')
