from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')
HUNDRED = Decimal('100')

SettlementSplit = namedtuple('SettlementSplit', ['commission', 'settlement_amount'])


def to_money(value):
    """Coerce int/str/Decimal to a Decimal rounded to cents. Floats go through str()."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_percent(value):
    if isinstance(value, float):
        value = str(value)
    return Decimal(value)


def compute(order_amount, commission_percent):
    """
    Split an order total into the platform commission and the seller's share.

    commission = order_amount * commission_percent / 100 (rounded half-up to cents)
    settlement_amount = order_amount - commission
    """
    amount = to_money(order_amount)
    commission = (amount * to_percent(commission_percent) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    return SettlementSplit(commission=commission, settlement_amount=amount - commission)


def platform_fee(amount, commission_percent):
    """Returns (fee, net_amount) charged on a withdrawal."""
    split = compute(amount, commission_percent)
    return split.commission, split.settlement_amount
