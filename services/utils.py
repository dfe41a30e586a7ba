# services/utils.py

import logging
import time
from flask_mail import Message
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from db.extensions import mail
from services.errors import ConcurrencyConflictError, PersistenceError, SettlementError

logger = logging.getLogger(__name__)

# SQLSTATE unique_violation
UNIQUE_VIOLATION = '23505'


def is_unique_violation(error):
    """True when an IntegrityError comes from a unique key, i.e. a lost insert race."""
    orig = getattr(error, 'orig', None)
    if getattr(orig, 'pgcode', None) == UNIQUE_VIOLATION:
        return True
    return 'unique' in str(orig).lower()


def run_in_transaction(session, work, retry_limit=3, backoff_seconds=0.05, operation="operation"):
    """
    Run ``work()`` as one unit of work on ``session`` and commit it.

    Any failure rolls the whole unit back before propagating. Collisions with
    concurrent writers (version mismatch, unique-key race) are retried up to
    ``retry_limit`` times with exponential backoff, then surface as
    ``ConcurrencyConflictError``. Other database failures, including CHECK,
    NOT NULL and foreign-key violations, surface as ``PersistenceError``.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work()
            session.commit()
            return result
        except (StaleDataError, IntegrityError, ConcurrencyConflictError) as e:
            session.rollback()
            if isinstance(e, IntegrityError) and not is_unique_violation(e):
                logger.error(f"❌ {operation}: integrity violation: {str(e)}", exc_info=True)
                raise PersistenceError() from e
            if attempt > retry_limit:
                logger.warning(f"⚠️  {operation}: concurrency conflict persisted after {retry_limit} retries")
                if isinstance(e, ConcurrencyConflictError):
                    raise
                raise ConcurrencyConflictError() from e
            logger.warning(f"⚠️  {operation}: concurrency conflict, retry {attempt}/{retry_limit}")
            if backoff_seconds:
                time.sleep(backoff_seconds * (2 ** (attempt - 1)))
        except SettlementError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"❌ {operation}: transaction failed: {str(e)}", exc_info=True)
            raise PersistenceError() from e
        except Exception:
            session.rollback()
            raise


def send_email(subject, recipients, body, html=None):
    msg = Message(subject, recipients=recipients)
    msg.body = body
    if html:
        msg.html = html
    try:
        mail.send(msg)
        logger.info(f"Mail sent to {recipients}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email: {e}")
        return False
