"""
Hospital blood request endpoints.

Hospitals raise and cancel requests; the assigned blood bank accepts,
rejects or fulfils them.  Rejection goes through
:class:`core.workflows.rejection.RejectionWorkflow` so the API applies
exactly the same reason rules as the interactive form.
"""
from __future__ import annotations

from asgiref.sync import async_to_sync, sync_to_async
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import InvalidTransition, RequestNotFound
from core.permissions import IsBloodBankOrAdmin, IsHospitalOrAdmin
from core.serializers.blood_requests import (
    AcceptSerializer,
    BloodRequestCreateSerializer,
    BloodRequestListQuerySerializer,
    CancelSerializer,
    FulfillSerializer,
    RejectSerializer,
)
from core.services.blood_requests import (
    accept_request,
    cancel_request,
    create_request,
    format_request,
    fulfill_request,
    get_request_for_user,
    list_requests,
    reject_request,
    request_stats,
)
from core.workflows.notifiers import CollectingNotifier
from core.workflows.rejection import RejectionWorkflow


def _error_response(exc: Exception) -> Response:
    if isinstance(exc, RequestNotFound):
        return Response({'ok': False, 'detail': str(exc)}, status=404)
    if isinstance(exc, PermissionError):
        return Response({'ok': False, 'detail': str(exc)}, status=403)
    if isinstance(exc, InvalidTransition):
        return Response({'ok': False, 'detail': str(exc)}, status=409)
    if isinstance(exc, ValueError):
        return Response({'ok': False, 'detail': str(exc)}, status=400)
    raise exc


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def blood_request_list(request):
    q = BloodRequestListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page = vd.get('page', 1)
    data, total = list_requests(
        request.user,
        status=vd.get('status'),
        urgency=vd.get('urgency'),
        blood_group=vd.get('bloodGroup'),
        critical_only=vd.get('critical', False),
        page=page,
        page_size=vd.get('pageSize'),
    )
    return Response({'ok': True, 'data': data,
                     'pagination': {'total': total, 'page': page, 'pageSize': len(data)}})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsHospitalOrAdmin])
def blood_request_create(request):
    s = BloodRequestCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = vd.get('patientInfo') or {}
    kwargs = {
        'hospital_id': vd.get('hospitalId'),
        'blood_bank_id': vd['bloodBankId'],
        'blood_group': vd['bloodGroup'],
        'units_required': vd['unitsRequired'],
        'patient_age': patient.get('age'),
        'patient_gender': patient.get('gender', ''),
        'patient_condition': patient.get('condition', ''),
        'department': patient.get('department', ''),
        'hospital_notes': vd.get('hospitalNotes', ''),
        'expected_delivery_time': vd.get('expectedDeliveryTime'),
    }
    if vd.get('urgency'):
        kwargs['urgency'] = vd['urgency']
    if vd.get('component'):
        kwargs['component'] = vd['component']
    try:
        req = create_request(request.user, **kwargs)
    except (PermissionError, ValueError) as e:
        return _error_response(e)
    return Response({'ok': True, 'message': 'Blood request created', 'data': format_request(req)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def blood_request_stats(request):
    return Response({'ok': True, 'data': request_stats(request.user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def blood_request_detail(request, pk: int):
    try:
        req = get_request_for_user(request.user, pk)
    except RequestNotFound as e:
        return _error_response(e)
    return Response({'ok': True, 'data': format_request(req)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBloodBankOrAdmin])
def blood_request_accept(request, pk: int):
    s = AcceptSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        req = get_request_for_user(request.user, pk)
        req = accept_request(req, request.user, s.validated_data.get('bloodBankResponse', ''))
    except (RequestNotFound, PermissionError, ValueError) as e:
        return _error_response(e)
    return Response({'ok': True, 'message': 'Blood request accepted', 'data': format_request(req)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBloodBankOrAdmin])
def blood_request_rejection_form(request, pk: int):
    """Initial state of the rejection form for one request."""
    try:
        req = get_request_for_user(request.user, pk)
    except RequestNotFound as e:
        return _error_response(e)
    workflow = RejectionWorkflow(
        on_confirm=lambda reason: None,
        on_close=lambda: None,
        notifier=CollectingNotifier(),
        request_code=req.request_code,
        is_open=True,
    )
    return Response({'ok': True, 'requestStatus': req.status,
                     'canReject': req.status == req.STATUS_PENDING, 'form': workflow.render()})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBloodBankOrAdmin])
def blood_request_reject(request, pk: int):
    """
    Reject a pending request.  Body: ``rejectionReason``.

    The reason is run through the rejection workflow: an empty or short
    reason answers 400 with the same notice the form shows.
    """
    s = RejectSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        req = get_request_for_user(request.user, pk)
    except RequestNotFound as e:
        return _error_response(e)

    outcome: dict = {}

    async def confirm(reason: str) -> None:
        try:
            outcome['request'] = await sync_to_async(reject_request)(req, request.user, reason)
        except Exception as exc:
            outcome['error'] = exc
            raise

    notifier = CollectingNotifier()
    workflow = RejectionWorkflow(
        on_confirm=confirm,
        on_close=lambda: None,
        notifier=notifier,
        request_code=req.request_code,
        is_open=True,
    )
    workflow.update_draft(s.validated_data.get('rejectionReason', ''))
    async_to_sync(workflow.submit)()

    if notifier.notices:
        return Response({'ok': False, 'detail': notifier.first_message, 'notices': notifier.notices}, status=400)
    error = outcome.get('error')
    if isinstance(error, (RequestNotFound, PermissionError, ValueError)):
        return _error_response(error)
    if error is not None:
        return Response({'ok': False, 'detail': 'Failed to reject blood request'}, status=500)
    return Response({'ok': True, 'message': 'Blood request rejected', 'data': format_request(outcome['request'])})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBloodBankOrAdmin])
def blood_request_fulfill(request, pk: int):
    s = FulfillSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        req = get_request_for_user(request.user, pk)
        req = fulfill_request(req, request.user, s.validated_data.get('unitsFulfilled'))
    except (RequestNotFound, PermissionError, ValueError) as e:
        return _error_response(e)
    return Response({'ok': True, 'message': 'Blood request fulfilled', 'data': format_request(req)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsHospitalOrAdmin])
def blood_request_cancel(request, pk: int):
    s = CancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        req = get_request_for_user(request.user, pk)
        req = cancel_request(req, request.user, s.validated_data.get('cancellationReason', ''))
    except (RequestNotFound, PermissionError, ValueError) as e:
        return _error_response(e)
    return Response({'ok': True, 'message': 'Blood request cancelled', 'data': format_request(req)})
