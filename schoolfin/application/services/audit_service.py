from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolfin.application.ports import AuditSink, AuditValue
from schoolfin.application.services.authorization_service import Identity, TenantScope, ensure_permission
from schoolfin.application.services.pagination_service import paginate_scalars
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.models import AuditLog
from schoolfin.infrastructure.logging import get_logger
from schoolfin.infrastructure.repositories.audit_repository import SqlAlchemyAuditSink
from schoolfin.interfaces.api.v1.schemas.pagination import PaginationMeta

logger = get_logger(__name__)


def record_audit_entry(
    sink: AuditSink,
    *,
    actor_user_id: int,
    entity: str,
    entity_id: str | int,
    old_value: AuditValue,
    new_value: AuditValue,
    reason: str | None = None,
    school_id: int | None = None,
) -> AuditLog | None:
    entry = AuditLog(
        school_id=school_id,
        actor_user_id=actor_user_id,
        entity=entity,
        entity_id=str(entity_id),
        old_value=old_value,
        new_value=new_value,
        reason=reason,
    )
    try:
        sink.append(entry)
        sink.commit()
    except SQLAlchemyError as exc:
        sink.rollback()
        # The business change is already committed; an audit gap is an operational alarm.
        logger.error(
            "audit_write_failed",
            actor_user_id=actor_user_id,
            entity=entity,
            entity_id=str(entity_id),
            error=str(exc),
        )
        return None
    logger.info("audit_entry_recorded", audit_id=entry.id, entity=entity, entity_id=str(entity_id))
    return entry


def record_audit(db: Session, **kwargs: Any) -> AuditLog | None:
    return record_audit_entry(SqlAlchemyAuditSink(db), **kwargs)


def serialize_audit_entry(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "school_id": entry.school_id,
        "actor_user_id": entry.actor_user_id,
        "entity": entry.entity,
        "entity_id": entry.entity_id,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "reason": entry.reason,
        "created_at": entry.created_at,
    }


def build_audit_log_query(*, scope: TenantScope, entity: str | None = None, entity_id: str | None = None):
    query = select(AuditLog).where(scope.filter(AuditLog.school_id)).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if entity is not None:
        query = query.where(AuditLog.entity == entity)
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    return query


def list_audit_logs(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    offset: int,
    limit: int,
    entity: str | None = None,
    entity_id: str | None = None,
    search: str | None = None,
) -> tuple[list[AuditLog], PaginationMeta]:
    ensure_permission(identity, [Permission.fees_read, Permission.payments_read])
    return paginate_scalars(
        db,
        build_audit_log_query(scope=scope, entity=entity, entity_id=entity_id),
        offset=offset,
        limit=limit,
        search=search,
        search_columns=[AuditLog.entity, AuditLog.entity_id, AuditLog.reason],
    )
