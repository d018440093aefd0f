from rest_framework import serializers

from core.models import BLOOD_GROUPS


class StockAdjustSerializer(serializers.Serializer):
    bloodGroup = serializers.ChoiceField(choices=BLOOD_GROUPS)
    delta = serializers.IntegerField(min_value=-1000, max_value=1000)
    note = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate_delta(self, v):
        if v == 0:
            raise serializers.ValidationError('delta must not be zero')
        return v
