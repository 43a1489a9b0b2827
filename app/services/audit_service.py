import uuid
from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog

def record_admin_action(db: Session, actor_id: str, action: str, entity_type: str, entity_id: str, **details) -> AuditLog:
    """Stage an audit row in the caller's transaction; the caller commits."""
    entry = AuditLog(
        id=str(uuid.uuid4()),
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details={k: (str(v) if v is not None and not isinstance(v, (int, float, bool, str, list, dict)) else v) for k, v in details.items()},
    )
    db.add(entry)
    return entry
