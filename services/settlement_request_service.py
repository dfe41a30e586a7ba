import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from models.orderSettlement import OrderSettlement
from models.settlement import Settlement, SettlementMethod, SettlementStatus
from models.shop import Shop
from services.balance_ledger import BalanceLedger
from services.eligibility_scanner import EligibilityScanner
from services.errors import InsufficientBalanceError, NotFoundError, ValidationError
from services.settlement_calculator import compute, platform_fee, to_money
from services.utils import run_in_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

BANK_FIELDS = (
    ('bank_account', 50, "Bank account number"),
    ('bank_name', 100, "Bank name"),
    ('account_holder_name', 100, "Account holder name"),
)


def resolve_seller_shop(session, seller_id):
    """A seller owns exactly one shop."""
    shop = session.query(Shop).filter_by(seller_id=seller_id).first()
    if shop is None:
        raise NotFoundError("Shop", seller_id, "No shop found for this seller")
    return shop


def allocate_orders(candidates, amount, credit=ZERO):
    """
    Greedy oldest-first walk over ``(order, split)`` pairs.

    Starts the running total at ``credit`` and stops as soon as it reaches
    ``amount``. Orders are never split, so the selection may overshoot.
    """
    running_total = credit
    selected = []
    for order, split in candidates:
        if running_total >= amount:
            break
        selected.append((order, split))
        running_total += split.settlement_amount
    return selected


class SettlementRequestManager:

    def __init__(self, session, policy, ledger=None, scanner=None):
        self.session = session
        self.policy = policy
        self.ledger = ledger or BalanceLedger(session)
        self.scanner = scanner or EligibilityScanner(session)

    def validate_request(self, amount, method, bank_details=None):
        """Returns (amount, method, bank_details) normalized. Touches no database state."""
        if amount is None or isinstance(amount, bool):
            raise ValidationError("Amount is required", field="amount")
        try:
            amount = to_money(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Amount must be a number", field="amount")
        if not amount.is_finite() or amount <= ZERO:
            raise ValidationError("Amount must be greater than zero", field="amount")
        if amount < self.policy.min_settlement_amount:
            raise ValidationError(
                f"Minimum settlement amount is {self.policy.min_settlement_amount:,.0f}",
                field="amount",
            )

        parsed_method = SettlementMethod.parse(method)
        if parsed_method is None:
            raise ValidationError(f"Unsupported settlement method: {method}", field="method")

        bank_details = dict(bank_details or {})
        cleaned = {}
        for field, max_length, label in BANK_FIELDS:
            value = bank_details.get(field)
            value = value.strip() if isinstance(value, str) else value
            if parsed_method == SettlementMethod.BANK_TRANSFER and not value:
                raise ValidationError(
                    "Bank details are incomplete. Account number, bank name and account holder name are required.",
                    field=field,
                )
            if value and len(value) > max_length:
                raise ValidationError(f"{label} must be at most {max_length} characters", field=field)
            cleaned[field] = value or None

        return amount, parsed_method, cleaned

    def create_request(self, seller_id, amount, method, bank_details=None, notes=None, now=None):
        if not seller_id:
            raise ValidationError("Seller id is required", field="seller_id")
        amount, method, bank = self.validate_request(amount, method, bank_details)

        def work():
            return self._create(seller_id, amount, method, bank, notes, now or datetime.utcnow())

        try:
            settlement = run_in_transaction(
                self.session,
                work,
                retry_limit=self.policy.retry_limit,
                backoff_seconds=self.policy.retry_backoff_seconds,
                operation="create settlement request",
            )
        except InsufficientBalanceError as e:
            logger.warning(
                f"Settlement request refused: seller={seller_id} amount={amount} available={e.available}"
            )
            raise

        logger.info(
            f"Settlement request created: id={settlement.id} seller={seller_id} "
            f"amount={settlement.requested_amount} net={settlement.net_amount} "
            f"orders={len(settlement.allocations)}"
        )
        return settlement

    def _create(self, seller_id, amount, method, bank, notes, now):
        shop = resolve_seller_shop(self.session, seller_id)

        self.ledger.get_or_create(shop.id, seller_id)
        # Serializes every request of this shop until commit
        balance = self.ledger.lock_balance(shop.id)
        if balance.available_balance < amount:
            raise InsufficientBalanceError(amount, balance.available_balance)

        percent = self.policy.commission_percent
        hold = timedelta(days=self.policy.hold_period_days)
        eligible = self.scanner.get_eligible_orders(shop.id, self.policy.hold_period_days, now=now)
        candidates = [(order, compute(order.total_amount, percent)) for order in eligible]
        credit = self.scanner.unused_allocation_credit(shop.id)

        backing = credit + sum((split.settlement_amount for _, split in candidates), ZERO)
        if backing < amount:
            raise InsufficientBalanceError(
                amount,
                backing,
                "Eligible delivered orders cannot cover the requested amount",
            )

        selected = allocate_orders(candidates, amount, credit)

        fee, net_amount = platform_fee(amount, percent)
        settlement = Settlement(
            seller_id=seller_id,
            shop_id=shop.id,
            requested_amount=amount,
            platform_fee=fee,
            net_amount=net_amount,
            commission_percent=percent,
            status=SettlementStatus.PENDING,
            method=method,
            bank_account=bank.get('bank_account'),
            bank_name=bank.get('bank_name'),
            account_holder_name=bank.get('account_holder_name'),
            notes=notes,
            requested_at=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(settlement)
        self.session.flush()

        for order, split in selected:
            delivered_at = order.delivered_at
            self.session.add(OrderSettlement(
                order_id=order.id,
                settlement_id=settlement.id,
                order_amount=to_money(order.total_amount),
                commission=split.commission,
                commission_percent=percent,
                settlement_amount=split.settlement_amount,
                order_delivered_at=delivered_at,
                eligible_at=delivered_at + hold if delivered_at else None,
                created_at=now,
            ))
        self.session.flush()

        self.ledger.reserve_for_withdrawal(shop.id, amount)
        return settlement
