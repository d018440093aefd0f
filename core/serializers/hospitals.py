from rest_framework import serializers

from core.models import Hospital


class HospitalListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Hospital.STATUS_CHOICES], required=False)
    city = serializers.CharField(max_length=128, required=False)
    q = serializers.CharField(max_length=64, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, required=False)


class HospitalVerifySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Hospital.STATUS_CHOICES])
