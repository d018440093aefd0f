"""
Domain errors and the DRF exception handler.

Services raise :class:`RequestNotFound`, :class:`InvalidTransition`,
``PermissionError`` or ``ValueError``; views turn them into
``{'ok': False, 'detail': ...}`` responses.  Errors raised by DRF itself
(validation, authentication, throttling) go through
:func:`api_exception_handler`.
"""
import logging

from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class RequestNotFound(LookupError):
    """No blood request with the given id is visible to the caller."""


class InvalidTransition(ValueError):
    """The blood request is not in a status that allows the action."""

    def __init__(self, action: str, status: str) -> None:
        super().__init__(f"Cannot {action} a request in {status} status")
        self.action = action
        self.status = status


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception("Unhandled API error in %s", context.get('view'), exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = str(resp.data)
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
