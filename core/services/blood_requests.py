import html
import logging
import time
from typing import Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone
import bleach

from core.exceptions import InvalidTransition, RequestNotFound
from core.models import BloodBank, Hospital, HospitalBloodRequest, RARE_BLOOD_GROUPS
from core.services.audit import log_request_action
from core.services.stock import consume_stock
from core.workflows.rejection import validate_reason

logger = logging.getLogger(__name__)

User = get_user_model()

URGENCY_SCORES = {
    HospitalBloodRequest.URGENCY_CRITICAL: 100,
    HospitalBloodRequest.URGENCY_HIGH: 75,
    HospitalBloodRequest.URGENCY_MEDIUM: 50,
    HospitalBloodRequest.URGENCY_LOW: 25,
}
RARITY_BONUS = 10
MAX_PAGE_SIZE = 100

ACTIVE_STATUSES = (HospitalBloodRequest.STATUS_PENDING, HospitalBloodRequest.STATUS_ACCEPTED)
CRITICAL_URGENCIES = (HospitalBloodRequest.URGENCY_CRITICAL, HospitalBloodRequest.URGENCY_HIGH)


def calculate_priority(urgency: Optional[str], blood_group: Optional[str]) -> int:
    score = URGENCY_SCORES.get(urgency or '', 50)
    if blood_group in RARE_BLOOD_GROUPS:
        score += RARITY_BONUS
    return score


def generate_request_code(now: Optional[float] = None) -> str:
    ms = int((now if now is not None else time.time()) * 1000)
    return f'REQ-{ms}'


def _unique_request_code() -> str:
    base = code = generate_request_code()
    n = 1
    while HospitalBloodRequest.objects.filter(request_code=code).exists():
        code = f'{base}-{n}'
        n += 1
    return code


def _clean(text: Optional[str]) -> str:
    """Plain text: markup removed, entities decoded."""
    return html.unescape(bleach.clean((text or '').strip(), tags=set(), strip=True)).strip()


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------

def check_request_access(user: User, req: HospitalBloodRequest) -> bool:
    role = getattr(user, 'role', '')
    if role == User.ROLE_ADMIN:
        return True
    if role == User.ROLE_HOSPITAL:
        return bool(user.hospital_id) and req.hospital_id == user.hospital_id
    if role == User.ROLE_BLOODBANK:
        return bool(user.blood_bank_id) and req.blood_bank_id == user.blood_bank_id
    return False


def visible_requests(user: User):
    qs = HospitalBloodRequest.objects.all()
    role = getattr(user, 'role', '')
    if role == User.ROLE_ADMIN:
        return qs
    if role == User.ROLE_HOSPITAL and user.hospital_id:
        return qs.filter(hospital_id=user.hospital_id)
    if role == User.ROLE_BLOODBANK and user.blood_bank_id:
        return qs.filter(blood_bank_id=user.blood_bank_id)
    return qs.none()


def get_request_for_user(user: User, pk: int) -> HospitalBloodRequest:
    """Fetch a request the user may see; hidden and missing look the same."""
    req = HospitalBloodRequest.objects.select_related('hospital', 'blood_bank').filter(pk=pk).first()
    if req is None or not check_request_access(user, req):
        raise RequestNotFound(f'Blood request {pk} not found')
    return req


def _require_reviewer(actor: User, req: HospitalBloodRequest) -> None:
    if actor.role not in (User.ROLE_BLOODBANK, User.ROLE_ADMIN) or not check_request_access(actor, req):
        raise PermissionError('Only the assigned blood bank can act on this request')


def _require_requester(actor: User, req: HospitalBloodRequest) -> None:
    if actor.role not in (User.ROLE_HOSPITAL, User.ROLE_ADMIN) or not check_request_access(actor, req):
        raise PermissionError('Only the requesting hospital can cancel this request')


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------

ADMIN_GROUP = 'bloodrequests.admin'


def request_groups(req: HospitalBloodRequest) -> list[str]:
    return [f'hospital.{req.hospital_id}', f'bloodbank.{req.blood_bank_id}', ADMIN_GROUP]


def broadcast_request_update(req: HospitalBloodRequest, action: str) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    event = {
        'type': 'request.update',
        'action': action,
        'request': format_request(req),
    }
    for group in request_groups(req):
        async_to_sync(channel_layer.group_send)(group, event)


def _after_change(actor: Optional[User], req: HospitalBloodRequest, action: str, **detail) -> None:
    log_request_action(actor, req, action, **detail)
    logger.info('blood request %s %s by %s', req.request_code, action, getattr(actor, 'username', None))
    transaction.on_commit(lambda: broadcast_request_update(req, action))


# ---------------------------------------------------------------------------
# Create / list
# ---------------------------------------------------------------------------

@transaction.atomic
def create_request(user: User, *, blood_bank_id: int, blood_group: str, units_required: int,
                   hospital_id: Optional[int] = None, urgency: str = HospitalBloodRequest.URGENCY_MEDIUM,
                   component: str = 'WHOLE_BLOOD', patient_age: Optional[int] = None,
                   patient_gender: str = '', patient_condition: str = '', department: str = '',
                   hospital_notes: str = '', expected_delivery_time=None,
                   request_code: Optional[str] = None) -> HospitalBloodRequest:
    if user.role == User.ROLE_HOSPITAL:
        if not user.hospital_id:
            raise PermissionError('User is not bound to a hospital')
        hospital_id = user.hospital_id
    elif user.role != User.ROLE_ADMIN:
        raise PermissionError('Only hospitals can raise blood requests')
    if not hospital_id:
        raise ValueError('hospitalId is required')

    hospital = Hospital.objects.filter(pk=hospital_id).first()
    if hospital is None:
        raise ValueError('Hospital not found')
    if hospital.verification_status == Hospital.STATUS_SUSPENDED:
        raise PermissionError('Hospital is suspended')
    blood_bank = BloodBank.objects.filter(pk=blood_bank_id, is_active=True).first()
    if blood_bank is None:
        raise ValueError('Blood bank not found or inactive')

    req = HospitalBloodRequest.objects.create(
        hospital=hospital,
        blood_bank=blood_bank,
        request_code=request_code or _unique_request_code(),
        blood_group=blood_group,
        component=component,
        units_required=units_required,
        urgency=urgency,
        priority=calculate_priority(urgency, blood_group),
        is_emergency=urgency == HospitalBloodRequest.URGENCY_CRITICAL,
        patient_age=patient_age,
        patient_gender=_clean(patient_gender),
        patient_condition=_clean(patient_condition),
        department=_clean(department),
        hospital_notes=_clean(hospital_notes),
        expected_delivery_time=expected_delivery_time,
    )
    _after_change(user, req, 'create', urgency=urgency, units=units_required)
    return req


def list_requests(user: User, *, status: Optional[str] = None, urgency: Optional[str] = None,
                  blood_group: Optional[str] = None, critical_only: bool = False,
                  page: int = 1, page_size: Optional[int] = None):
    qs = visible_requests(user)
    if critical_only:
        qs = qs.filter(urgency__in=CRITICAL_URGENCIES, status__in=ACTIVE_STATUSES)
    if status:
        qs = qs.filter(status=status)
    if urgency:
        qs = qs.filter(urgency=urgency)
    if blood_group:
        qs = qs.filter(blood_group=blood_group)

    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(MAX_PAGE_SIZE, max(1, int(page_size or settings.BLOOD_REQUEST_PAGE_SIZE)))
    start = (page - 1) * page_size
    items = qs.select_related('hospital', 'blood_bank').order_by('-priority', '-requested_at', '-id')[start:start + page_size]
    return [format_request(r) for r in items], total


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _locked(req: HospitalBloodRequest) -> HospitalBloodRequest:
    return HospitalBloodRequest.objects.select_for_update().select_related('hospital', 'blood_bank').get(pk=req.pk)


@transaction.atomic
def accept_request(req: HospitalBloodRequest, actor: User, response: str = '') -> HospitalBloodRequest:
    _require_reviewer(actor, req)
    req = _locked(req)
    if req.status != HospitalBloodRequest.STATUS_PENDING:
        raise InvalidTransition('accept', req.status)
    req.status = HospitalBloodRequest.STATUS_ACCEPTED
    req.accepted_at = timezone.now()
    req.blood_bank_response = _clean(response)
    req.save(update_fields=['status', 'accepted_at', 'blood_bank_response', 'updated_at'])
    _after_change(actor, req, 'accept')
    return req


@transaction.atomic
def reject_request(req: HospitalBloodRequest, actor: User, reason: str) -> HospitalBloodRequest:
    _require_reviewer(actor, req)
    reason = validate_reason(_clean(reason))
    req = _locked(req)
    if req.status != HospitalBloodRequest.STATUS_PENDING:
        raise InvalidTransition('reject', req.status)
    req.status = HospitalBloodRequest.STATUS_REJECTED
    req.rejected_at = timezone.now()
    req.rejection_reason = reason
    req.rejected_by = actor
    req.save(update_fields=['status', 'rejected_at', 'rejection_reason', 'rejected_by', 'updated_at'])
    _after_change(actor, req, 'reject', reason=reason)
    return req


@transaction.atomic
def fulfill_request(req: HospitalBloodRequest, actor: User, units_fulfilled: Optional[int] = None) -> HospitalBloodRequest:
    _require_reviewer(actor, req)
    req = _locked(req)
    if req.status != HospitalBloodRequest.STATUS_ACCEPTED:
        raise InvalidTransition('fulfill', req.status)
    units = req.units_required if units_fulfilled is None else int(units_fulfilled)
    if units < 1 or units > req.units_required:
        raise ValueError(f'unitsFulfilled must be between 1 and {req.units_required}')
    consume_stock(req.blood_bank_id, req.blood_group, units)
    now = timezone.now()
    req.status = HospitalBloodRequest.STATUS_FULFILLED
    req.units_fulfilled = units
    req.fulfilled_at = now
    req.save(update_fields=['status', 'units_fulfilled', 'fulfilled_at', 'updated_at'])
    _after_change(actor, req, 'fulfill', units=units)
    return req


@transaction.atomic
def cancel_request(req: HospitalBloodRequest, actor: User, reason: str = '') -> HospitalBloodRequest:
    _require_requester(actor, req)
    req = _locked(req)
    if req.status not in ACTIVE_STATUSES:
        raise InvalidTransition('cancel', req.status)
    req.status = HospitalBloodRequest.STATUS_CANCELLED
    req.cancelled_at = timezone.now()
    req.cancellation_reason = _clean(reason)
    req.save(update_fields=['status', 'cancelled_at', 'cancellation_reason', 'updated_at'])
    _after_change(actor, req, 'cancel')
    return req


# ---------------------------------------------------------------------------
# Stats / formatting
# ---------------------------------------------------------------------------

def request_stats(user: User) -> dict:
    qs = visible_requests(user)
    by_status = {code: 0 for code, _ in HospitalBloodRequest.STATUS_CHOICES}
    for row in qs.values('status').annotate(n=Count('id')):
        by_status[row['status']] = row['n']
    units = qs.aggregate(requested=Sum('units_required'), fulfilled=Sum('units_fulfilled'))
    requested = units['requested'] or 0
    fulfilled = units['fulfilled'] or 0
    return {
        'total': sum(by_status.values()),
        'byStatus': by_status,
        'units': {
            'requested': requested,
            'fulfilled': fulfilled,
            'fulfillmentRate': round(fulfilled * 100 / requested, 2) if requested else 0,
        },
    }


def _iso(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def format_request(r: HospitalBloodRequest) -> dict:
    return {
        'id': r.id,
        'requestCode': r.request_code,
        'hospitalId': r.hospital_id,
        'hospitalName': getattr(r.hospital, 'name', None),
        'bloodBankId': r.blood_bank_id,
        'bloodBankName': getattr(r.blood_bank, 'name', None),
        'bloodGroup': r.blood_group,
        'component': r.component,
        'unitsRequired': r.units_required,
        'unitsFulfilled': r.units_fulfilled,
        'urgency': r.urgency,
        'priority': r.priority,
        'isEmergency': r.is_emergency,
        'patientInfo': {
            'age': r.patient_age,
            'gender': r.patient_gender,
            'condition': r.patient_condition,
            'department': r.department,
        },
        'status': r.status,
        'hospitalNotes': r.hospital_notes,
        'bloodBankResponse': r.blood_bank_response,
        'rejectionReason': r.rejection_reason,
        'cancellationReason': r.cancellation_reason,
        'requestedAt': _iso(r.requested_at),
        'acceptedAt': _iso(r.accepted_at),
        'rejectedAt': _iso(r.rejected_at),
        'fulfilledAt': _iso(r.fulfilled_at),
        'cancelledAt': _iso(r.cancelled_at),
        'expectedDeliveryTime': _iso(r.expected_delivery_time),
    }
