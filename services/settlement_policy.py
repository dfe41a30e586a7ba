from dataclasses import dataclass
from decimal import Decimal

from services.settlement_calculator import to_money, to_percent


@dataclass(frozen=True)
class SettlementPolicy:
    commission_percent: Decimal = Decimal('5.0')
    min_settlement_amount: Decimal = Decimal('100000.00')
    hold_period_days: int = 3
    retry_limit: int = 3
    retry_backoff_seconds: float = 0.05

    @classmethod
    def from_config(cls, config):
        return cls(
            commission_percent=to_percent(config.get('SETTLEMENT_COMMISSION_PERCENT', '5.0')),
            min_settlement_amount=to_money(config.get('SETTLEMENT_MIN_AMOUNT', '100000')),
            hold_period_days=int(config.get('SETTLEMENT_HOLD_PERIOD_DAYS', 3)),
            retry_limit=int(config.get('SETTLEMENT_RETRY_LIMIT', 3)),
            retry_backoff_seconds=float(config.get('SETTLEMENT_RETRY_BACKOFF_SECONDS', 0.05)),
        )
