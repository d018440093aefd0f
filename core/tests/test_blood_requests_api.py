"""
Integration tests for the blood request API.

Covers creation, visibility between organisations, the request
lifecycle and the reject endpoint, which runs the same reason workflow
as the WebSocket form.
"""

import pytest
from rest_framework.test import APITestCase

from core.models import AuditEvent, BloodBank, BloodStock, Hospital, HospitalBloodRequest, User
from core.services.blood_requests import calculate_priority, generate_request_code


class BloodRequestAPITests(APITestCase):
    def setUp(self) -> None:
        """Two hospitals, two blood banks and one user for each, plus an admin."""
        self.hospital = Hospital.objects.create(name='City General', registration_number='H-001',
                                                verification_status=Hospital.STATUS_VERIFIED)
        self.hospital2 = Hospital.objects.create(name='Lakeside Clinic', registration_number='H-002')
        self.bank = BloodBank.objects.create(name='Central Blood Bank', license_number='BB-001')
        self.bank2 = BloodBank.objects.create(name='Red Cross Bank', license_number='BB-002')

        self.hospital_user = User.objects.create_user(username='hosp1', password='pass12345',
                                                      role='hospital', hospital=self.hospital)
        self.hospital_user2 = User.objects.create_user(username='hosp2', password='pass12345',
                                                       role='hospital', hospital=self.hospital2)
        self.bank_user = User.objects.create_user(username='bank1', password='pass12345',
                                                  role='bloodbank', blood_bank=self.bank)
        self.bank_user2 = User.objects.create_user(username='bank2', password='pass12345',
                                                   role='bloodbank', blood_bank=self.bank2)
        self.admin_user = User.objects.create_user(username='admin1', password='pass12345', role='admin')

        self.pending = HospitalBloodRequest.objects.create(
            hospital=self.hospital, blood_bank=self.bank, request_code='REQ-1',
            blood_group='O-', units_required=3, urgency='CRITICAL',
            priority=calculate_priority('CRITICAL', 'O-'), is_emergency=True,
        )
        self.stock = BloodStock.objects.create(blood_bank=self.bank, blood_group='O-', units_available=5)

    def authenticate(self, user: User) -> None:
        self.client.force_authenticate(user=user)

    def reject(self, pk, reason):
        return self.client.post(f'/api/blood-requests/{pk}/reject', {'rejectionReason': reason}, format='json')

    # ------------------------------------------------------------------
    # Create / list
    # ------------------------------------------------------------------
    def test_hospital_creates_request(self):
        self.authenticate(self.hospital_user)
        resp = self.client.post('/api/blood-requests/create', {
            'bloodBankId': self.bank.id,
            'bloodGroup': 'AB-',
            'unitsRequired': 4,
            'urgency': 'HIGH',
            'patientInfo': {'age': 42, 'gender': 'F', 'condition': 'Surgery', 'department': 'Cardiology'},
            'hospitalNotes': '<b>urgent</b> case',
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        data = resp.data['data']
        self.assertEqual(data['hospitalId'], self.hospital.id)
        self.assertEqual(data['status'], 'PENDING')
        self.assertEqual(data['priority'], 85)
        self.assertFalse(data['isEmergency'])
        self.assertTrue(data['requestCode'].startswith('REQ-'))
        self.assertEqual(data['patientInfo']['department'], 'Cardiology')
        self.assertEqual(data['hospitalNotes'], 'urgent case')
        self.assertTrue(AuditEvent.objects.filter(action='request_create', object_id=data['id']).exists())

    def test_hospital_user_cannot_pick_another_hospital(self):
        self.authenticate(self.hospital_user)
        resp = self.client.post('/api/blood-requests/create', {
            'hospitalId': self.hospital2.id, 'bloodBankId': self.bank.id,
            'bloodGroup': 'A+', 'unitsRequired': 1,
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['hospitalId'], self.hospital.id)

    def test_admin_must_name_hospital(self):
        self.authenticate(self.admin_user)
        body = {'bloodBankId': self.bank.id, 'bloodGroup': 'A+', 'unitsRequired': 1}
        resp = self.client.post('/api/blood-requests/create', body, format='json')
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post('/api/blood-requests/create', {**body, 'hospitalId': self.hospital2.id},
                                format='json')
        self.assertEqual(resp.status_code, 201)

    def test_blood_bank_cannot_create(self):
        self.authenticate(self.bank_user)
        resp = self.client.post('/api/blood-requests/create', {
            'bloodBankId': self.bank.id, 'bloodGroup': 'A+', 'unitsRequired': 1,
        }, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_create_against_inactive_bank_fails(self):
        self.bank2.is_active = False
        self.bank2.save()
        self.authenticate(self.hospital_user)
        resp = self.client.post('/api/blood-requests/create', {
            'bloodBankId': self.bank2.id, 'bloodGroup': 'A+', 'unitsRequired': 1,
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_create_validates_units(self):
        self.authenticate(self.hospital_user)
        resp = self.client.post('/api/blood-requests/create', {
            'bloodBankId': self.bank.id, 'bloodGroup': 'A+', 'unitsRequired': 0,
        }, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.data['ok'])

    def test_list_is_scoped_and_ordered_by_priority(self):
        HospitalBloodRequest.objects.create(
            hospital=self.hospital, blood_bank=self.bank, request_code='REQ-2',
            blood_group='A+', units_required=1, urgency='LOW', priority=calculate_priority('LOW', 'A+'),
        )
        HospitalBloodRequest.objects.create(
            hospital=self.hospital2, blood_bank=self.bank2, request_code='REQ-3',
            blood_group='A+', units_required=1,
        )
        self.authenticate(self.hospital_user)
        resp = self.client.get('/api/blood-requests')
        self.assertEqual(resp.status_code, 200)
        codes = [r['requestCode'] for r in resp.data['data']]
        self.assertEqual(codes, ['REQ-1', 'REQ-2'])
        self.assertEqual(resp.data['pagination']['total'], 2)

        self.authenticate(self.bank_user2)
        resp = self.client.get('/api/blood-requests')
        self.assertEqual([r['requestCode'] for r in resp.data['data']], ['REQ-3'])

        self.authenticate(self.admin_user)
        resp = self.client.get('/api/blood-requests', {'critical': 'true'})
        self.assertEqual([r['requestCode'] for r in resp.data['data']], ['REQ-1'])

    def test_detail_hidden_from_other_organisations(self):
        self.authenticate(self.bank_user2)
        resp = self.client.get(f'/api/blood-requests/{self.pending.id}')
        self.assertEqual(resp.status_code, 404)
        self.authenticate(self.bank_user)
        resp = self.client.get(f'/api/blood-requests/{self.pending.id}')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['bloodGroup'], 'O-')

    # ------------------------------------------------------------------
    # Rejection
    # ------------------------------------------------------------------
    def test_rejection_form_view_model(self):
        self.authenticate(self.bank_user)
        resp = self.client.get(f'/api/blood-requests/{self.pending.id}/rejection-form')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data['canReject'])
        form = resp.data['form']
        self.assertEqual(form['requestCode'], 'REQ-1')
        self.assertEqual(form['reason'], '')
        self.assertEqual(len(form['quickReasons']), 4)
        self.assertTrue(form['submit']['disabled'])

    def test_reject_requires_reason(self):
        self.authenticate(self.bank_user)
        resp = self.reject(self.pending.id, '   ')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['detail'], 'Please provide a reason for rejection')
        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/reject', {}, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['detail'], 'Please provide a reason for rejection')
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, 'PENDING')

    def test_reject_requires_five_characters(self):
        self.authenticate(self.bank_user)
        resp = self.reject(self.pending.id, 'bad')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['detail'], 'Reason must be at least 5 characters long')
        self.assertFalse(AuditEvent.objects.filter(action='request_reject').exists())

    def test_reject_success_stores_trimmed_reason(self):
        self.authenticate(self.bank_user)
        resp = self.reject(self.pending.id, '  Incorrect blood group specified  ')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['status'], 'REJECTED')
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.rejection_reason, 'Incorrect blood group specified')
        self.assertEqual(self.pending.rejected_by, self.bank_user)
        self.assertIsNotNone(self.pending.rejected_at)
        event = AuditEvent.objects.get(action='request_reject')
        self.assertEqual(event.detail['reason'], 'Incorrect blood group specified')

    def test_reject_twice_conflicts(self):
        self.authenticate(self.bank_user)
        self.assertEqual(self.reject(self.pending.id, 'Insufficient blood stock available').status_code, 200)
        resp = self.reject(self.pending.id, 'Insufficient blood stock available')
        self.assertEqual(resp.status_code, 409)
        self.assertIn('REJECTED', resp.data['detail'])

    def test_reject_by_hospital_is_forbidden(self):
        self.authenticate(self.hospital_user)
        resp = self.reject(self.pending.id, 'Cannot fulfill at this time')
        self.assertEqual(resp.status_code, 403)

    def test_reject_by_other_bank_is_not_found(self):
        self.authenticate(self.bank_user2)
        resp = self.reject(self.pending.id, 'Cannot fulfill at this time')
        self.assertEqual(resp.status_code, 404)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, 'PENDING')

    def test_reject_keeps_ampersand_as_plain_text(self):
        self.authenticate(self.bank_user)
        resp = self.reject(self.pending.id, 'Stock & staff shortage')
        self.assertEqual(resp.status_code, 200)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.rejection_reason, 'Stock & staff shortage')

    def test_reject_validates_reason_after_markup_is_removed(self):
        self.authenticate(self.bank_user)
        resp = self.reject(self.pending.id, '<b></b><i></i><br>')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['detail'], 'Please provide a reason for rejection')
        resp = self.reject(self.pending.id, '<em>abc</em>')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['detail'], 'Reason must be at least 5 characters long')
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, 'PENDING')
        self.assertEqual(self.pending.rejection_reason, '')

        resp = self.reject(self.pending.id, '<script>alert(1)</script> wrong group')
        self.assertEqual(resp.status_code, 200)
        self.pending.refresh_from_db()
        self.assertNotIn('<', self.pending.rejection_reason)
        self.assertTrue(self.pending.rejection_reason.endswith('wrong group'))

    def test_reject_reason_too_long(self):
        self.authenticate(self.bank_user)
        resp = self.reject(self.pending.id, 'x' * 501)
        self.assertEqual(resp.status_code, 400)

    # ------------------------------------------------------------------
    # Accept / fulfil / cancel / stats
    # ------------------------------------------------------------------
    def test_accept_then_fulfill(self):
        self.authenticate(self.bank_user)
        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/accept',
                                {'bloodBankResponse': 'Dispatching now'}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['status'], 'ACCEPTED')

        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/fulfill', {'unitsFulfilled': 5},
                                format='json')
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/fulfill', {}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['status'], 'FULFILLED')
        self.assertEqual(resp.data['data']['unitsFulfilled'], 3)
        self.stock.refresh_from_db()
        self.assertEqual(self.stock.units_available, 2)

    def test_fulfill_refused_when_stock_is_short(self):
        self.stock.units_available = 1
        self.stock.save()
        self.authenticate(self.bank_user)
        self.client.post(f'/api/blood-requests/{self.pending.id}/accept', {}, format='json')
        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/fulfill', {'unitsFulfilled': 2},
                                format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertTrue(resp.data['detail'].startswith('Insufficient blood stock available'))
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, 'ACCEPTED')
        self.stock.refresh_from_db()
        self.assertEqual(self.stock.units_available, 1)

        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/fulfill', {'unitsFulfilled': 1},
                                format='json')
        self.assertEqual(resp.status_code, 200)
        self.stock.refresh_from_db()
        self.assertEqual(self.stock.units_available, 0)

    def test_fulfill_without_any_stock_row(self):
        self.stock.delete()
        self.authenticate(self.bank_user)
        self.client.post(f'/api/blood-requests/{self.pending.id}/accept', {}, format='json')
        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/fulfill', {}, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(BloodStock.objects.filter(blood_bank=self.bank).count(), 0)

    def test_stock_endpoint(self):
        url = f'/api/blood-banks/{self.bank.id}/stock'
        self.authenticate(self.bank_user)
        resp = self.client.get(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['stock']['O-'], 5)
        self.assertEqual(resp.data['data']['stock']['AB+'], 0)

        resp = self.client.post(url, {'bloodGroup': 'AB+', 'delta': 4, 'note': 'Donation camp'}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['stock']['AB+'], 4)
        resp = self.client.post(url, {'bloodGroup': 'AB+', 'delta': -5}, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertTrue(AuditEvent.objects.filter(action='stock_adjust', object_id=self.bank.id).exists())

        self.authenticate(self.bank_user2)
        self.assertEqual(self.client.get(url).status_code, 404)
        self.authenticate(self.hospital_user)
        self.assertEqual(self.client.get(url).status_code, 403)

    def test_fulfill_pending_conflicts(self):
        self.authenticate(self.bank_user)
        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/fulfill', {}, format='json')
        self.assertEqual(resp.status_code, 409)

    def test_hospital_cancels_accepted_request(self):
        self.authenticate(self.bank_user)
        self.client.post(f'/api/blood-requests/{self.pending.id}/accept', {}, format='json')
        self.authenticate(self.hospital_user)
        resp = self.client.post(f'/api/blood-requests/{self.pending.id}/cancel',
                                {'cancellationReason': 'Patient transferred'}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['status'], 'CANCELLED')
        # cannot reject a cancelled request
        self.authenticate(self.bank_user)
        self.assertEqual(self.reject(self.pending.id, 'Cannot fulfill at this time').status_code, 409)

    def test_stats(self):
        HospitalBloodRequest.objects.create(
            hospital=self.hospital, blood_bank=self.bank, request_code='REQ-9', blood_group='B+',
            units_required=1, units_fulfilled=1, status='FULFILLED',
        )
        self.authenticate(self.hospital_user)
        resp = self.client.get('/api/blood-requests/stats')
        self.assertEqual(resp.status_code, 200)
        data = resp.data['data']
        self.assertEqual(data['total'], 2)
        self.assertEqual(data['byStatus']['PENDING'], 1)
        self.assertEqual(data['byStatus']['FULFILLED'], 1)
        self.assertEqual(data['units'], {'requested': 4, 'fulfilled': 1, 'fulfillmentRate': 25.0})

    def test_unauthenticated_is_rejected(self):
        resp = self.client.get('/api/blood-requests')
        self.assertIn(resp.status_code, (401, 403))


@pytest.mark.parametrize('urgency,group,expected', [
    ('CRITICAL', 'O-', 110),
    ('HIGH', 'A+', 75),
    ('MEDIUM', 'AB-', 60),
    ('LOW', 'B+', 25),
    (None, 'O+', 50),
])
def test_calculate_priority(urgency, group, expected):
    assert calculate_priority(urgency, group) == expected


def test_generate_request_code():
    assert generate_request_code(1700000000.123) == 'REQ-1700000000123'
