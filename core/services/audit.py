"""Audit trail helpers.  Every state change of a blood request is recorded."""
from typing import Optional, Any, Dict
from django.contrib.auth import get_user_model
from core.models import AuditEvent, HospitalBloodRequest

User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    return AuditEvent.objects.create(
        user=user if getattr(user, 'pk', None) else None,
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )


def log_request_action(actor: Optional[User], req: HospitalBloodRequest, action: str, **extra: Any) -> AuditEvent:
    detail: Dict[str, Any] = {
        'requestCode': req.request_code,
        'status': req.status,
        'hospitalId': req.hospital_id,
        'bloodBankId': req.blood_bank_id,
    }
    detail.update(extra)
    return log_action(user=actor, action=f'request_{action}', object_type='blood_request',
                      object_id=req.pk, detail=detail)
