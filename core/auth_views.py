"""
Authentication views.

Username/password (or email/password) login returning both the DRF
token and a JWT pair, plus JWT refresh and logout.  Kept apart from the
domain views so DRF can load authentication classes without importing
them.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from core.serializers.auth import LoginSerializer
from core.services.audit import log_action

from .models import User

logger = logging.getLogger(__name__)


def _organisation(user: User) -> dict | None:
    if user.hospital_id:
        return {'type': 'hospital', 'id': user.hospital_id, 'name': user.hospital.name}
    if user.blood_bank_id:
        return {'type': 'bloodbank', 'id': user.blood_bank_id, 'name': user.blood_bank.name}
    return None


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """
    Login with username or email plus password.  The role always comes
    from the stored user, never from the request body.
    """
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    username = (vd.get('username') or '').strip()
    if not username and vd.get('email'):
        match = User.objects.filter(email__iexact=vd['email']).first()
        username = match.username if match else ''

    user = authenticate(request, username=username, password=vd['password']) if username else None
    ip = request.META.get('REMOTE_ADDR')
    if not user:
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'username': username, 'ip': ip})
        logger.info('login failed for %r from %s', username, ip)
        return Response({'ok': False, 'detail': 'Invalid credentials'}, status=400)

    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip})

    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)

    return Response({
        'ok': True,
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
        'role': user.role,
        'user': {
            'id': user.id,
            'username': user.username,
            'name': user.get_full_name() or user.username,
            'role': user.role,
            'organisation': _organisation(user),
        },
    }, status=200)

login_view.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from a refresh token."""
    resp = TokenRefreshView.as_view()(request._request)
    data = dict(resp.data)
    if 'access' in data and 'jwt_access' not in data:
        data['jwt_access'] = data.pop('access')
    return Response(data, status=resp.status_code)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist the given refresh token, or every outstanding one of the user."""
    refresh = request.data.get('refresh')
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            return Response({'ok': False, 'detail': str(e)}, status=400)
        return Response({'ok': True, 'blacklisted': 1})
    count = 0
    for token in OutstandingToken.objects.filter(user=request.user):
        _, created = BlacklistedToken.objects.get_or_create(token=token)
        count += int(created)
    return Response({'ok': True, 'blacklisted': count})
