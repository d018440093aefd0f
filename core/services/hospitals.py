from typing import Optional

from django.contrib.auth import get_user_model
from django.db.models import Count, Q

from core.models import Hospital, HospitalBloodRequest
from core.services.audit import log_action

User = get_user_model()


def list_hospitals(*, status: Optional[str] = None, city: Optional[str] = None, q: Optional[str] = None,
                   page: int = 1, page_size: int = 20):
    qs = Hospital.objects.all()
    if status:
        qs = qs.filter(verification_status=status)
    if city:
        qs = qs.filter(city__iexact=city)
    if q:
        qs = qs.filter(Q(name__icontains=q) | Q(registration_number__icontains=q))
    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(100, max(1, int(page_size or 20)))
    start = (page - 1) * page_size
    items = qs.order_by('name', 'id')[start:start + page_size]
    return [format_hospital(h) for h in items], total


def hospital_detail(hospital: Hospital) -> dict:
    counts = {row['status']: row['n']
              for row in hospital.blood_requests.values('status').annotate(n=Count('id'))}
    return {
        **format_hospital(hospital),
        'requestCounts': {code: counts.get(code, 0) for code, _ in HospitalBloodRequest.STATUS_CHOICES},
    }


def set_verification_status(hospital: Hospital, actor: User, status: str) -> Hospital:
    if status not in dict(Hospital.STATUS_CHOICES):
        raise ValueError(f'Unknown verification status: {status}')
    previous = hospital.verification_status
    hospital.verification_status = status
    hospital.save(update_fields=['verification_status', 'updated_at'])
    log_action(user=actor, action='hospital_verify', object_type='hospital', object_id=hospital.id,
               detail={'from': previous, 'to': status})
    return hospital


def format_hospital(h: Hospital) -> dict:
    return {
        'id': h.id,
        'name': h.name,
        'registrationNumber': h.registration_number,
        'email': h.email,
        'phone': h.phone,
        'address': h.address,
        'city': h.city,
        'state': h.state,
        'verificationStatus': h.verification_status,
        'createdAt': h.created_at.isoformat() if h.created_at else None,
    }
