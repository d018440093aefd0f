"""
Hospital records.

Administrators and blood bank staff can browse hospitals; only
administrators change a hospital's verification status.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from ..models import Hospital
from ..permissions import IsAdminRole, IsBloodBankOrAdmin
from ..serializers.hospitals import HospitalListQuerySerializer, HospitalVerifySerializer
from ..services.hospitals import format_hospital, hospital_detail, list_hospitals, set_verification_status


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBloodBankOrAdmin])
def hospital_list(request):
    q = HospitalListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data, total = list_hospitals(
        status=vd.get('status'),
        city=vd.get('city'),
        q=vd.get('q'),
        page=vd.get('page', 1),
        page_size=vd.get('pageSize', 20),
    )
    return Response({'ok': True, 'data': data,
                     'pagination': {'total': total, 'page': vd.get('page', 1), 'pageSize': vd.get('pageSize', 20)}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBloodBankOrAdmin])
def hospital_retrieve(request, pk: int):
    hospital = Hospital.objects.filter(pk=pk).first()
    if not hospital:
        return Response({'ok': False, 'detail': 'Hospital not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response({'ok': True, 'data': hospital_detail(hospital)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def hospital_verify(request, pk: int):
    """Set ``status`` to VERIFIED, REJECTED, SUSPENDED or back to PENDING."""
    s = HospitalVerifySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    hospital = Hospital.objects.filter(pk=pk).first()
    if not hospital:
        return Response({'ok': False, 'detail': 'Hospital not found'}, status=status.HTTP_404_NOT_FOUND)
    hospital = set_verification_status(hospital, request.user, s.validated_data['status'])
    return Response({'ok': True, 'data': format_hospital(hospital)})
