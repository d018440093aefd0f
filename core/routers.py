"""
URL mappings for the blood bank API.

Paths carry no trailing slash, matching what the front-end calls.
"""
from django.urls import path, include

from .auth_views import login_view, jwt_refresh_view, jwt_logout_view
from .views import health
from .views.blood_requests import (
    blood_request_list,
    blood_request_create,
    blood_request_stats,
    blood_request_detail,
    blood_request_accept,
    blood_request_rejection_form,
    blood_request_reject,
    blood_request_fulfill,
    blood_request_cancel,
)
from .views.hospitals import hospital_list, hospital_retrieve, hospital_verify
from .views.stock import blood_bank_stock


urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),
    # Blood requests
    path('api/blood-requests', blood_request_list),
    path('api/blood-requests/create', blood_request_create),
    path('api/blood-requests/stats', blood_request_stats),
    path('api/blood-requests/<int:pk>', blood_request_detail),
    path('api/blood-requests/<int:pk>/accept', blood_request_accept),
    path('api/blood-requests/<int:pk>/rejection-form', blood_request_rejection_form),
    path('api/blood-requests/<int:pk>/reject', blood_request_reject),
    path('api/blood-requests/<int:pk>/fulfill', blood_request_fulfill),
    path('api/blood-requests/<int:pk>/cancel', blood_request_cancel),
    # Hospitals
    path('api/hospitals', hospital_list),
    path('api/hospitals/<int:pk>', hospital_retrieve),
    path('api/hospitals/<int:pk>/verify', hospital_verify),
    # Blood bank stock
    path('api/blood-banks/<int:pk>/stock', blood_bank_stock),
]
