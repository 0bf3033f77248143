from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from schoolfin.application.services.audit_service import list_audit_logs, serialize_audit_entry
from schoolfin.application.services.authorization_service import Identity, TenantScope
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.session import get_db
from schoolfin.interfaces.api.v1.dependencies.auth import get_current_identity, get_tenant_scope, require_permissions
from schoolfin.interfaces.api.v1.dependencies.pagination import get_pagination_params
from schoolfin.interfaces.api.v1.schemas.audit import AuditLogListResponse
from schoolfin.interfaces.api.v1.schemas.pagination import PaginationParams

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get(
    "",
    response_model=AuditLogListResponse,
    dependencies=[Depends(require_permissions(Permission.fees_read, Permission.payments_read))],
    summary="List audit log entries",
    description="Audit entries in the active tenant scope, newest first, filterable by entity and entity id.",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Missing permission"}},
)
def get_audit_logs(
    entity: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    pagination: PaginationParams = Depends(get_pagination_params),
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    items, meta = list_audit_logs(
        db,
        identity=identity,
        scope=scope,
        offset=pagination.offset,
        limit=pagination.limit,
        entity=entity,
        entity_id=entity_id,
        search=pagination.search,
    )
    return {"items": [serialize_audit_entry(item) for item in items], "pagination": meta}
