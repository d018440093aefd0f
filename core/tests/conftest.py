import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from core.models import BloodBank, Hospital, HospitalBloodRequest, User
from core.services.blood_requests import calculate_priority


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttling counters live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def hospital(db):
    return Hospital.objects.create(name='City General', registration_number='H-001', city='Pune',
                                   verification_status=Hospital.STATUS_VERIFIED)


@pytest.fixture
def other_hospital(db):
    return Hospital.objects.create(name='Lakeside Clinic', registration_number='H-002', city='Mumbai')


@pytest.fixture
def blood_bank(db):
    return BloodBank.objects.create(name='Central Blood Bank', license_number='BB-001', city='Pune')


@pytest.fixture
def other_blood_bank(db):
    return BloodBank.objects.create(name='Red Cross Bank', license_number='BB-002', city='Mumbai')


@pytest.fixture
def hospital_user(hospital):
    return User.objects.create_user(username='hosp1', password='P@ssw0rd1', role=User.ROLE_HOSPITAL,
                                    hospital=hospital)


@pytest.fixture
def bank_user(blood_bank):
    return User.objects.create_user(username='bank1', password='P@ssw0rd1', role=User.ROLE_BLOODBANK,
                                    blood_bank=blood_bank)


@pytest.fixture
def other_bank_user(other_blood_bank):
    return User.objects.create_user(username='bank2', password='P@ssw0rd1', role=User.ROLE_BLOODBANK,
                                    blood_bank=other_blood_bank)


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin1', password='P@ssw0rd1', role=User.ROLE_ADMIN)


@pytest.fixture
def make_request(hospital, blood_bank):
    counter = {'n': 0}

    def _make(**kwargs):
        counter['n'] += 1
        urgency = kwargs.pop('urgency', HospitalBloodRequest.URGENCY_MEDIUM)
        blood_group = kwargs.pop('blood_group', 'O+')
        fields = {
            'hospital': hospital,
            'blood_bank': blood_bank,
            'request_code': f"REQ-TEST-{counter['n']}",
            'blood_group': blood_group,
            'units_required': 2,
            'urgency': urgency,
            'priority': calculate_priority(urgency, blood_group),
            'is_emergency': urgency == HospitalBloodRequest.URGENCY_CRITICAL,
        }
        fields.update(kwargs)
        return HospitalBloodRequest.objects.create(**fields)

    return _make


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(api_client):
    def _as(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _as
