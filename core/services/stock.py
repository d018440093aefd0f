"""
Blood stock held by each blood bank, per blood group.

Fulfilling a request takes its units out of stock; blood bank staff
record donations and corrections through :func:`adjust_stock`.
"""
from typing import Optional

from django.db import transaction

from core.models import BLOOD_GROUPS, BloodBank, BloodStock
from core.services.audit import log_action

INSUFFICIENT_STOCK_MESSAGE = 'Insufficient blood stock available'


def _locked_row(blood_bank_id: int, blood_group: str) -> BloodStock:
    BloodStock.objects.get_or_create(blood_bank_id=blood_bank_id, blood_group=blood_group)
    return BloodStock.objects.select_for_update().get(blood_bank_id=blood_bank_id, blood_group=blood_group)


def stock_levels(blood_bank: BloodBank) -> dict:
    """Units available for every blood group, zero where nothing is held."""
    levels = {g: 0 for g in BLOOD_GROUPS}
    for row in blood_bank.stock.all():
        levels[row.blood_group] = row.units_available
    return levels


@transaction.atomic
def consume_stock(blood_bank_id: int, blood_group: str, units: int) -> BloodStock:
    row = _locked_row(blood_bank_id, blood_group)
    if row.units_available < units:
        raise ValueError(f'{INSUFFICIENT_STOCK_MESSAGE}: {blood_group} has {row.units_available}, {units} needed')
    row.units_available -= units
    row.save(update_fields=['units_available', 'updated_at'])
    return row


@transaction.atomic
def adjust_stock(blood_bank: BloodBank, blood_group: str, delta: int, *, actor=None,
                 note: Optional[str] = None) -> BloodStock:
    if blood_group not in BLOOD_GROUPS:
        raise ValueError(f'Unknown blood group: {blood_group}')
    row = _locked_row(blood_bank.id, blood_group)
    if row.units_available + delta < 0:
        raise ValueError(f'{INSUFFICIENT_STOCK_MESSAGE}: {blood_group} has {row.units_available}')
    row.units_available += delta
    row.save(update_fields=['units_available', 'updated_at'])
    log_action(user=actor, action='stock_adjust', object_type='blood_bank', object_id=blood_bank.id,
               detail={'bloodGroup': blood_group, 'delta': delta, 'unitsAvailable': row.units_available,
                       'note': note or ''})
    return row
