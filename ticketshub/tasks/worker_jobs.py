import logging
from datetime import datetime, timezone, timedelta
from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from ticketshub.core.config import settings
from ticketshub.core.errors import CheckoutError
from ticketshub.db.session import SessionLocal
from ticketshub.models.payment import Payment, PaymentStatus, CheckoutState
from ticketshub.services.audit_service import WORKER_ACTOR, log_audit
from ticketshub.services.checkout_service import retry_commit

logger = logging.getLogger(__name__)


def find_stuck_payments(db: Session, older_than: datetime, limit: int = 50) -> list[str]:
    """Verified payments whose commit never ran (crash between verify and commit)."""
    return list(db.execute(
        select(Payment.id).where(
            Payment.status == PaymentStatus.VERIFIED.value,
            Payment.checkout_state == CheckoutState.VERIFIED.value,
            Payment.updated_at < older_than,
        ).order_by(Payment.updated_at.asc()).limit(limit)
    ).scalars().all())


def reconcile_verified_payments(limit: int = 50, session_factory=SessionLocal) -> dict:
    """Replay the booking commit for stuck payments. COMMIT_FAILED ones are left for ops."""
    db: Session = session_factory()
    try:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.RECONCILE_AFTER_MINUTES)
        try:
            payment_ids = find_stuck_payments(db, cutoff, limit)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        committed, failed = 0, 0
        for payment_id in payment_ids:
            log_audit(db, actor_user_id=WORKER_ACTOR, action="commit_retry_requested", entity_type="payment", entity_id=payment_id)
            db.commit()
            try:
                retry_commit(db, payment_id)
                committed += 1
            except CheckoutError as e:
                logger.warning("reconcile: payment %s still uncommitted: %s", payment_id, e)
                failed += 1
        return {"processed": len(payment_ids), "committed": committed, "failed": failed}
    finally:
        db.close()
