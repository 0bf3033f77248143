from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from schoolfin.application.services.authorization_service import Identity, TenantScope
from schoolfin.application.services.context_service import describe_context, select_current_school
from schoolfin.config import settings
from schoolfin.infrastructure.db.session import get_db
from schoolfin.infrastructure.repositories.membership_repository import SqlAlchemyMembershipReader
from schoolfin.interfaces.api.v1.dependencies.auth import get_current_identity, get_tenant_scope
from schoolfin.interfaces.api.v1.schemas.context import AuthContextResponse, CurrentSchoolUpdate

router = APIRouter(tags=["context"])


@router.get(
    "/me/context",
    response_model=AuthContextResponse,
    summary="Resolved authorization context",
    description=(
        "Return the caller's role, permission tokens and the active tenant scope resolved from "
        "the `currentSchoolId` cookie or `X-School-Id` header."
    ),
    responses={401: {"description": "Unauthorized"}},
)
def get_my_context(
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return describe_context(identity, scope)


@router.post(
    "/current-school",
    summary="Select active school",
    description=(
        "Store the active school in the `currentSchoolId` cookie. Requires a membership in that school; "
        "`school_id: null` clears the selection and is reserved for super admins."
    ),
    responses={401: {"description": "Unauthorized"}, 403: {"description": "No membership"}},
)
def set_current_school(
    payload: CurrentSchoolUpdate,
    response: Response,
    identity: Identity | None = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    cookie_value = select_current_school(
        SqlAlchemyMembershipReader(db),
        identity=identity,
        school_id=payload.school_id,
    )
    response.set_cookie(settings.tenant_cookie_name, cookie_value, httponly=True, samesite="lax", path="/")
    return {"ok": True, "school_id": payload.school_id}
