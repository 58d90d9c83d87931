import uuid, json
from sqlalchemy.orm import Session
from ticketshub.models.audit_log import AuditLog

GATEWAY_ACTOR = "razorpay"
PUBLIC_ACTOR = "public"
WORKER_ACTOR = "worker"

def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id: str, details: dict | None = None):
    """Stage an audit row on the caller's session; it lands with the caller's commit."""
    db.add(AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id or PUBLIC_ACTOR,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    ))
