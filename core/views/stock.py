"""
Blood bank stock levels.

Blood bank users see and adjust their own bank only; administrators
any bank.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from ..models import BloodBank
from ..permissions import IsBloodBankOrAdmin
from ..serializers.stock import StockAdjustSerializer
from ..services.stock import adjust_stock, stock_levels


def _bank_for(user, pk: int):
    bank = BloodBank.objects.filter(pk=pk).first()
    if bank is None:
        return None
    if user.role != user.ROLE_ADMIN and user.blood_bank_id != bank.id:
        return None
    return bank


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsBloodBankOrAdmin])
def blood_bank_stock(request, pk: int):
    bank = _bank_for(request.user, pk)
    if bank is None:
        return Response({'ok': False, 'detail': 'Blood bank not found'}, status=status.HTTP_404_NOT_FOUND)
    if request.method == 'POST':
        s = StockAdjustSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        try:
            adjust_stock(bank, vd['bloodGroup'], vd['delta'], actor=request.user, note=vd.get('note'))
        except ValueError as e:
            return Response({'ok': False, 'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'ok': True, 'data': {'bloodBankId': bank.id, 'stock': stock_levels(bank)}})
