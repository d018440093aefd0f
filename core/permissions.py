"""
Role based permission classes.
"""
from rest_framework.permissions import BasePermission

REVIEWER_ROLES = {"bloodbank", "admin"}
REQUESTER_ROLES = {"hospital", "admin"}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsAdminRole(BasePermission):
    """Platform administrators only."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "admin"


class IsHospitalOrAdmin(BasePermission):
    """Users that may raise or cancel blood requests."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in REQUESTER_ROLES


class IsBloodBankOrAdmin(BasePermission):
    """Users that may accept, reject or fulfil blood requests."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in REVIEWER_ROLES
