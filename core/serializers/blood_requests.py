from rest_framework import serializers

from core.models import BLOOD_GROUPS, HospitalBloodRequest
from core.workflows.rejection import MAX_REASON_LENGTH

STATUSES = [c for c, _ in HospitalBloodRequest.STATUS_CHOICES]
URGENCIES = [c for c, _ in HospitalBloodRequest.URGENCY_CHOICES]
COMPONENTS = [c for c, _ in HospitalBloodRequest.COMPONENT_CHOICES]


class PatientInfoSerializer(serializers.Serializer):
    age = serializers.IntegerField(min_value=0, max_value=130, required=False, allow_null=True)
    gender = serializers.CharField(max_length=16, required=False, allow_blank=True)
    condition = serializers.CharField(max_length=255, required=False, allow_blank=True)
    department = serializers.CharField(max_length=128, required=False, allow_blank=True)


class BloodRequestCreateSerializer(serializers.Serializer):
    hospitalId = serializers.IntegerField(min_value=1, required=False)
    bloodBankId = serializers.IntegerField(min_value=1)
    bloodGroup = serializers.ChoiceField(choices=BLOOD_GROUPS)
    component = serializers.ChoiceField(choices=COMPONENTS, required=False)
    unitsRequired = serializers.IntegerField(min_value=1, max_value=100)
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False)
    patientInfo = PatientInfoSerializer(required=False)
    hospitalNotes = serializers.CharField(max_length=2000, required=False, allow_blank=True)
    expectedDeliveryTime = serializers.DateTimeField(required=False, allow_null=True)


class BloodRequestListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False)
    bloodGroup = serializers.ChoiceField(choices=BLOOD_GROUPS, required=False)
    critical = serializers.BooleanField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, required=False)


class AcceptSerializer(serializers.Serializer):
    bloodBankResponse = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class RejectSerializer(serializers.Serializer):
    # Left untrimmed; the rejection workflow trims and validates.
    rejectionReason = serializers.CharField(max_length=MAX_REASON_LENGTH, required=False,
                                            allow_blank=True, trim_whitespace=False)


class FulfillSerializer(serializers.Serializer):
    unitsFulfilled = serializers.IntegerField(min_value=1, required=False)


class CancelSerializer(serializers.Serializer):
    cancellationReason = serializers.CharField(max_length=500, required=False, allow_blank=True)
