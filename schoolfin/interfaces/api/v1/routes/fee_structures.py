from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from schoolfin.application.services.authorization_service import Identity, TenantScope, require_selected_school
from schoolfin.application.services.fee_structure_service import (
    apply_structure_to_class,
    create_structure_line,
    deactivate_structure_line,
    get_structure_line_in_scope,
    list_structure_lines,
    preview_structure_application,
    serialize_structure_line,
    serialize_structure_target,
    update_structure_line,
)
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.session import get_db
from schoolfin.infrastructure.tasks.fee_structure_tasks import enqueue_fee_structure_apply_task
from schoolfin.interfaces.api.v1.dependencies.auth import get_current_identity, get_tenant_scope, require_permissions
from schoolfin.interfaces.api.v1.schemas.fee_structure import (
    FeeStructureApplyQueuedResponse,
    FeeStructureApplyRequest,
    FeeStructureApplyResponse,
    FeeStructureLineCreate,
    FeeStructureLineListResponse,
    FeeStructureLineResponse,
    FeeStructureLineUpdate,
    FeeStructurePreviewResponse,
)

router = APIRouter(prefix="/fee-structures", tags=["fee-structures"])

_AUTH_RESPONSES = {401: {"description": "Unauthorized"}, 403: {"description": "Missing permission"}}


@router.get(
    "",
    response_model=FeeStructureLineListResponse,
    dependencies=[Depends(require_permissions(Permission.fees_read))],
    summary="List fee structure lines",
    description="List structure lines visible in the active tenant scope, optionally filtered by class and year.",
    responses=_AUTH_RESPONSES,
)
def get_structure_lines(
    class_id: int | None = Query(default=None),
    academic_year: int | None = Query(default=None),
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    lines = list_structure_lines(db, identity=identity, scope=scope, class_id=class_id, academic_year=academic_year)
    return {"items": [serialize_structure_line(line) for line in lines]}


@router.post(
    "",
    response_model=FeeStructureLineResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(Permission.fees_write))],
    summary="Create fee structure line",
    description="Create a structure line for the selected school. Duplicate class/category/term/year is a conflict.",
    responses={**_AUTH_RESPONSES, 409: {"description": "Structure line already exists"}},
)
def create_structure_line_endpoint(
    payload: FeeStructureLineCreate,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    line = create_structure_line(db, identity=identity, scope=scope, payload=payload)
    return serialize_structure_line(line)


@router.post(
    "/preview",
    response_model=FeeStructurePreviewResponse,
    dependencies=[Depends(require_permissions(Permission.fees_read))],
    summary="Preview structure application",
    description="List the student fee rows an apply would target, without changing anything.",
    responses={**_AUTH_RESPONSES, 404: {"description": "Class not found"}},
)
def preview_structure_endpoint(
    payload: FeeStructureApplyRequest,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    targets = preview_structure_application(db, identity=identity, scope=scope, payload=payload)
    return {"items": [serialize_structure_target(target) for target in targets], "count": len(targets)}


@router.post(
    "/apply",
    response_model=FeeStructureApplyResponse,
    dependencies=[Depends(require_permissions(Permission.fees_write))],
    summary="Apply structure to a class",
    description=(
        "Reconcile every student of the class against the active structure lines. "
        "Rows already paid beyond the new amount are locked; locked rows keep their balances."
    ),
    responses={**_AUTH_RESPONSES, 404: {"description": "Class not found"}},
)
def apply_structure_endpoint(
    payload: FeeStructureApplyRequest,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    return apply_structure_to_class(db, identity=identity, scope=scope, payload=payload)


@router.post(
    "/apply/async",
    response_model=FeeStructureApplyQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue structure application",
    description="Queue a background structure application for the selected school.",
    responses=_AUTH_RESPONSES,
)
def apply_structure_async_endpoint(
    payload: FeeStructureApplyRequest,
    identity: Identity = Depends(require_permissions(Permission.fees_write)),
    scope: TenantScope = Depends(get_tenant_scope),
):
    school_id = require_selected_school(scope)
    task_id = enqueue_fee_structure_apply_task(actor_user_id=identity.user_id, school_id=school_id, payload=payload)
    return {"task_id": task_id}


@router.get(
    "/{line_id}",
    response_model=FeeStructureLineResponse,
    dependencies=[Depends(require_permissions(Permission.fees_read))],
    summary="Get fee structure line",
    responses={**_AUTH_RESPONSES, 404: {"description": "Structure line not found"}},
)
def get_structure_line_endpoint(
    line_id: int,
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    return serialize_structure_line(get_structure_line_in_scope(db, line_id=line_id, scope=scope))


@router.patch(
    "/{line_id}",
    response_model=FeeStructureLineResponse,
    dependencies=[Depends(require_permissions(Permission.fees_write))],
    summary="Update fee structure line",
    description="Change the amount or active flag. Existing student fee rows change only when the structure is applied.",
    responses={**_AUTH_RESPONSES, 404: {"description": "Structure line not found"}},
)
def update_structure_line_endpoint(
    line_id: int,
    payload: FeeStructureLineUpdate,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    line = update_structure_line(db, identity=identity, scope=scope, line_id=line_id, payload=payload)
    return serialize_structure_line(line)


@router.delete(
    "/{line_id}",
    response_model=FeeStructureLineResponse,
    dependencies=[Depends(require_permissions(Permission.fees_write))],
    summary="Deactivate fee structure line",
    description="Structure lines are never deleted; this marks the line inactive.",
    responses={**_AUTH_RESPONSES, 404: {"description": "Structure line not found"}},
)
def deactivate_structure_line_endpoint(
    line_id: int,
    reason: str | None = Query(default=None, max_length=500),
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    line = deactivate_structure_line(db, identity=identity, scope=scope, line_id=line_id, reason=reason)
    return serialize_structure_line(line)
