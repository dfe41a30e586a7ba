import logging
import uuid
from datetime import datetime
from models.settlement import Settlement, SettlementStatus
from services.balance_ledger import BalanceLedger
from services.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from services.utils import run_in_transaction

logger = logging.getLogger(__name__)

TRANSACTION_REFERENCE_MAX_LENGTH = 100

# action -> (states it may start from, state it leads to)
TRANSITIONS = {
    'approve': ((SettlementStatus.PENDING,), SettlementStatus.APPROVED),
    'process': ((SettlementStatus.APPROVED,), SettlementStatus.PROCESSING),
    'complete': ((SettlementStatus.PROCESSING,), SettlementStatus.COMPLETED),
    'reject': ((SettlementStatus.PENDING, SettlementStatus.APPROVED), SettlementStatus.CANCELLED),
}


def parse_settlement_id(settlement_id):
    if isinstance(settlement_id, uuid.UUID):
        return settlement_id
    try:
        return uuid.UUID(str(settlement_id))
    except (TypeError, ValueError):
        raise ValidationError("Invalid settlement id", field="settlement_id")


class SettlementStateMachine:
    """
    Drives a settlement through its lifecycle:

        pending -> approved -> processing -> completed
        pending | approved -> cancelled

    Each transition is one transaction covering the settlement row and the
    ledger move that goes with it. The settlement row is locked for the
    duration, and its version column rejects a concurrent writer that slipped
    past the lock, so of two racing admins exactly one wins and the other
    sees the new state.

    ``admin_id`` is taken as already authorized by the caller.
    """

    def __init__(self, session, policy, ledger=None, notifier=None):
        self.session = session
        self.policy = policy
        self.ledger = ledger or BalanceLedger(session)
        self.notifier = notifier

    def approve(self, settlement_id, admin_id):
        def apply(settlement, now):
            settlement.approved_at = now

        return self._transition('approve', settlement_id, admin_id, apply)

    def process(self, settlement_id, admin_id, transaction_reference, notes=None):
        reference = transaction_reference.strip() if isinstance(transaction_reference, str) else None
        if not reference:
            raise ValidationError("Transaction reference is required", field="transaction_reference")
        if len(reference) > TRANSACTION_REFERENCE_MAX_LENGTH:
            raise ValidationError(
                f"Transaction reference must be at most {TRANSACTION_REFERENCE_MAX_LENGTH} characters",
                field="transaction_reference",
            )

        def apply(settlement, now):
            # The payout itself happens outside; only its reference is recorded
            settlement.transaction_reference = reference
            settlement.processed_at = now
            if notes:
                settlement.notes = notes

        return self._transition('process', settlement_id, admin_id, apply)

    def complete(self, settlement_id, admin_id):
        def apply(settlement, now):
            settlement.completed_at = now
            self.ledger.finalize_withdrawal(settlement.shop_id, settlement.requested_amount)

        return self._transition('complete', settlement_id, admin_id, apply)

    def reject(self, settlement_id, admin_id, reason):
        reason = reason.strip() if isinstance(reason, str) else None
        if not reason:
            raise ValidationError("Rejection reason is required", field="reason")

        def apply(settlement, now):
            settlement.failure_reason = reason
            self.ledger.release_reservation(settlement.shop_id, settlement.requested_amount)

        return self._transition('reject', settlement_id, admin_id, apply)

    def _transition(self, action, settlement_id, admin_id, apply):
        if not admin_id:
            raise ValidationError("Admin id is required", field="admin_id")
        settlement_id = parse_settlement_id(settlement_id)
        allowed_from, target = TRANSITIONS[action]

        def work():
            now = datetime.utcnow()
            settlement = self._lock(settlement_id)
            if settlement.status not in allowed_from:
                raise InvalidStateTransitionError(action, settlement.status)
            previous = settlement.status
            settlement.status = target
            settlement.processed_by = admin_id
            settlement.updated_at = now
            apply(settlement, now)
            self.session.flush()
            return settlement, previous

        try:
            settlement, previous = run_in_transaction(
                self.session,
                work,
                retry_limit=self.policy.retry_limit,
                backoff_seconds=self.policy.retry_backoff_seconds,
                operation=f"{action} settlement {settlement_id}",
            )
        except InvalidStateTransitionError as e:
            logger.warning(f"Settlement {settlement_id}: {action} refused in state {e.current_state} (admin={admin_id})")
            raise

        logger.info(
            f"Settlement {settlement.id}: {previous} -> {settlement.status} "
            f"by admin={admin_id} amount={settlement.requested_amount}"
        )
        if self.notifier is not None:
            self.notifier.notify_status_change(settlement)
        return settlement

    def _lock(self, settlement_id):
        settlement = (
            self.session.query(Settlement)
            .filter_by(id=settlement_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if settlement is None:
            raise NotFoundError("Settlement", settlement_id)
        return settlement
