"""
Settlement error taxonomy.

Services raise these; the blueprint renders them. Messages are safe to show
to sellers and administrators and never carry internal exception text.
"""


class SettlementError(Exception):
    """Base class for every business failure raised by the settlement core."""

    code = "SETTLEMENT_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        return {
            'success': False,
            'error': self.code,
            'message': self.message,
            'retryable': self.retryable,
        }


class ValidationError(SettlementError):
    """Bad input shape or range. Raised before any write happens."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message, field=None):
        super().__init__(message, {'field': field} if field else None)
        self.field = field


class NotFoundError(SettlementError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity, entity_id, message=None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity} not found",
            {'entity': entity, 'entity_id': str(entity_id)},
        )


class InsufficientBalanceError(SettlementError):
    code = "INSUFFICIENT_BALANCE"
    status_code = 400

    def __init__(self, requested, available, message=None):
        self.requested = requested
        self.available = available
        super().__init__(
            message or "Insufficient available balance",
            {'requested': str(requested), 'available': str(available)},
        )


class InvalidStateTransitionError(SettlementError):
    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, action, current_state, message=None):
        self.action = action
        self.current_state = current_state
        super().__init__(
            message or f"Cannot {action} a settlement in state '{current_state}'",
            {'action': action, 'current_state': current_state},
        )


class InvalidLedgerStateError(SettlementError):
    """A ledger move would drive a bucket below zero."""

    code = "INVALID_LEDGER_STATE"
    status_code = 409


class AlreadySettledError(SettlementError):
    code = "ALREADY_SETTLED"
    status_code = 409


class PreconditionFailedError(SettlementError):
    code = "PRECONDITION_FAILED"
    status_code = 412


class UnauthorizedError(SettlementError):
    code = "UNAUTHORIZED"
    status_code = 403


class ConcurrencyConflictError(SettlementError):
    code = "CONCURRENCY_CONFLICT"
    status_code = 409
    retryable = True

    def __init__(self, message="The record was modified concurrently, please retry"):
        super().__init__(message)


class PersistenceError(SettlementError):
    code = "PERSISTENCE_ERROR"
    status_code = 500

    def __init__(self, message="Internal server error. Please try again."):
        super().__init__(message)
