"""Booking amount split between the platform and the worker"""

from decimal import ROUND_HALF_UP, Decimal

from ..config import COMMISSION_RATE


def calculate_commission(amount: float) -> int:
    """Platform commission, rounded half-up to whole Naira"""
    commission = Decimal(str(amount)) * Decimal(str(COMMISSION_RATE))
    return int(commission.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_amount(amount: float) -> tuple[int, float]:
    """
    Split a gross booking amount.

    Returns:
        (commission, worker_amount) where commission + worker_amount == amount
    """
    commission = calculate_commission(amount)
    return commission, amount - commission
