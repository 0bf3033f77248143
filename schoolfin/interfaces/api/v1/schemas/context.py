from pydantic import BaseModel

from schoolfin.application.services.authorization_service import ScopeMode
from schoolfin.domain.permissions import Permission
from schoolfin.domain.roles import BaseRole


class TenantScopeResponse(BaseModel):
    tenant_id: int | None
    is_super_admin: bool
    mode: ScopeMode


class AuthContextResponse(BaseModel):
    user_id: int
    role: BaseRole
    permissions: list[Permission]
    catalog_version: str
    scope: TenantScopeResponse


class CurrentSchoolUpdate(BaseModel):
    school_id: int | None
