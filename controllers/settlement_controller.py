from datetime import datetime
from functools import wraps
from flask import Blueprint, request, jsonify, current_app
from db.extensions import db
from services.earning_service import EarningService
from services.errors import SettlementError, UnauthorizedError, ValidationError
from services.settlement_notification import SettlementNotificationService
from services.settlement_policy import SettlementPolicy
from services.settlement_query_service import SettlementQueryService
from services.settlement_request_service import SettlementRequestManager
from services.settlement_state_machine import SettlementStateMachine

settlement_bp = Blueprint('settlement', __name__)

ROLE_SELLER = 'seller'
ROLE_ADMIN = 'admin'
ROLE_SERVICE = 'service'


# Identity is resolved by the gateway and forwarded in headers
def require_role(*roles):
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            caller_id = request.headers.get('X-User-Id')
            caller_role = (request.headers.get('X-User-Role') or '').strip().lower()
            if not caller_id:
                raise UnauthorizedError("Unable to identify the caller. Please sign in again.")
            if caller_role not in roles:
                raise UnauthorizedError("You are not allowed to perform this action.")
            return view(caller_id, *args, **kwargs)
        return wrapper
    return decorator


@settlement_bp.errorhandler(SettlementError)
def handle_settlement_error(e):
    if e.status_code >= 500:
        current_app.logger.error(f"❌ Settlement failure: {e.code}")
    return jsonify(e.to_dict()), e.status_code


def _policy():
    return SettlementPolicy.from_config(current_app.config)


def _state_machine():
    return SettlementStateMachine(
        db.session,
        _policy(),
        notifier=SettlementNotificationService(db.session),
    )


def _parse_date(name):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date", field=name)


def _ok(data, message, status=200):
    return jsonify({'success': True, 'message': message, 'data': data}), status


def _page(result):
    return {
        'items': [s.to_dict() for s in result['items']],
        'page': result['page'],
        'page_size': result['page_size'],
        'total_count': result['total_count'],
    }


# ---------------------------------------------------------------- seller

@settlement_bp.route('/settlements/balance', methods=['GET'])
@require_role(ROLE_SELLER)
def my_balance(seller_id):
    balance = SettlementQueryService(db.session).get_seller_balance(seller_id)
    return _ok(balance.to_dict(), "Balance loaded")


@settlement_bp.route('/settlements/request', methods=['POST'])
@require_role(ROLE_SELLER)
def create_settlement_request(seller_id):
    data = request.get_json(silent=True) or {}
    settlement = SettlementRequestManager(db.session, _policy()).create_request(
        seller_id,
        data.get('amount'),
        data.get('method'),
        bank_details={
            'bank_account': data.get('bank_account'),
            'bank_name': data.get('bank_name'),
            'account_holder_name': data.get('account_holder_name'),
        },
        notes=data.get('notes'),
    )
    return _ok(settlement.to_dict(include_allocations=True), "Settlement request created", 201)


@settlement_bp.route('/settlements/mine', methods=['GET'])
@require_role(ROLE_SELLER)
def my_settlements(seller_id):
    result = SettlementQueryService(db.session).list_settlements(
        seller_id=seller_id,
        status=request.args.get('status'),
        start_date=_parse_date('start_date'),
        end_date=_parse_date('end_date'),
        page=request.args.get('page', 1),
        page_size=request.args.get('page_size', 20),
    )
    return _ok(_page(result), "Settlements loaded")


@settlement_bp.route('/settlements/mine/<settlement_id>', methods=['GET'])
@require_role(ROLE_SELLER)
def my_settlement_detail(seller_id, settlement_id):
    settlement = SettlementQueryService(db.session).get_settlement(settlement_id, seller_id=seller_id)
    return _ok(settlement.to_dict(include_allocations=True), "Settlement loaded")


# ---------------------------------------------------------------- admin

@settlement_bp.route('/settlements/admin/pending', methods=['GET'])
@require_role(ROLE_ADMIN)
def pending_settlements(admin_id):
    settlements = SettlementQueryService(db.session).list_pending_settlements()
    return _ok([s.to_dict() for s in settlements], "Pending settlements loaded")


@settlement_bp.route('/settlements/admin/all', methods=['GET'])
@require_role(ROLE_ADMIN)
def all_settlements(admin_id):
    result = SettlementQueryService(db.session).list_settlements(
        seller_id=request.args.get('seller_id'),
        status=request.args.get('status'),
        start_date=_parse_date('start_date'),
        end_date=_parse_date('end_date'),
        page=request.args.get('page', 1),
        page_size=request.args.get('page_size', 20),
    )
    return _ok(_page(result), "Settlements loaded")


@settlement_bp.route('/settlements/admin/statistics', methods=['GET'])
@require_role(ROLE_ADMIN)
def settlement_statistics(admin_id):
    stats = SettlementQueryService(db.session).get_statistics(
        start_date=_parse_date('start_date'),
        end_date=_parse_date('end_date'),
    )
    return _ok({
        'settlements_by_status': stats['settlements_by_status'],
        'total_settled_amount': str(stats['total_settled_amount']),
        'start_date': stats['start_date'].isoformat() if stats['start_date'] else None,
        'end_date': stats['end_date'].isoformat() if stats['end_date'] else None,
    }, "Statistics loaded")


@settlement_bp.route('/settlements/admin/<settlement_id>', methods=['GET'])
@require_role(ROLE_ADMIN)
def settlement_detail(admin_id, settlement_id):
    settlement = SettlementQueryService(db.session).get_settlement(settlement_id)
    return _ok(settlement.to_dict(include_allocations=True), "Settlement loaded")


@settlement_bp.route('/settlements/admin/<settlement_id>/approve', methods=['POST'])
@require_role(ROLE_ADMIN)
def approve_settlement(admin_id, settlement_id):
    settlement = _state_machine().approve(settlement_id, admin_id)
    return _ok(settlement.to_dict(), "Settlement approved")


@settlement_bp.route('/settlements/admin/<settlement_id>/process', methods=['POST'])
@require_role(ROLE_ADMIN)
def process_settlement(admin_id, settlement_id):
    data = request.get_json(silent=True) or {}
    settlement = _state_machine().process(
        settlement_id,
        admin_id,
        data.get('transaction_reference'),
        notes=data.get('notes'),
    )
    return _ok(settlement.to_dict(), "Payout processing started")


@settlement_bp.route('/settlements/admin/<settlement_id>/complete', methods=['POST'])
@require_role(ROLE_ADMIN)
def complete_settlement(admin_id, settlement_id):
    settlement = _state_machine().complete(settlement_id, admin_id)
    return _ok(settlement.to_dict(), "Settlement completed")


@settlement_bp.route('/settlements/admin/<settlement_id>/reject', methods=['POST'])
@require_role(ROLE_ADMIN)
def reject_settlement(admin_id, settlement_id):
    data = request.get_json(silent=True) or {}
    settlement = _state_machine().reject(settlement_id, admin_id, data.get('reason'))
    return _ok(settlement.to_dict(), "Settlement rejected")


# ---------------------------------------------------------------- internal

@settlement_bp.route('/internal/orders/<order_id>/settlement', methods=['POST'])
@require_role(ROLE_SERVICE, ROLE_ADMIN)
def calculate_order_settlement(caller_id, order_id):
    credit = EarningService(db.session, _policy()).calculate_settlement_for_order(order_id)
    return _ok({
        'order_id': str(credit.order_id),
        'commission': str(credit.commission),
        'amount': str(credit.amount),
        'held_until': credit.available_at.isoformat() if credit.released_at is None else None,
    }, "Settlement calculated for order")
