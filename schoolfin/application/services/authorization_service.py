from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import false, true
from sqlalchemy.sql.elements import ColumnElement

from schoolfin.application.errors import ForbiddenError, UnauthorizedError, ValidationError
from schoolfin.application.ports import MembershipReader
from schoolfin.domain.permissions import Permission, PermissionSet, has_permission, normalize_required, permissions_for_role
from schoolfin.domain.roles import BaseRole, TenantRole
from schoolfin.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: BaseRole


@dataclass(frozen=True)
class AuthContext:
    user_id: int
    role: BaseRole
    permissions: PermissionSet


class ScopeMode(str, Enum):
    school = "school"
    global_ = "global"
    no_access = "no_access"


@dataclass(frozen=True)
class TenantScope:
    tenant_id: int | None
    is_super_admin: bool
    mode: ScopeMode

    @classmethod
    def for_school(cls, tenant_id: int, *, is_super_admin: bool = False) -> "TenantScope":
        return cls(tenant_id=tenant_id, is_super_admin=is_super_admin, mode=ScopeMode.school)

    @classmethod
    def global_scope(cls) -> "TenantScope":
        return cls(tenant_id=None, is_super_admin=True, mode=ScopeMode.global_)

    @classmethod
    def no_access(cls) -> "TenantScope":
        return cls(tenant_id=None, is_super_admin=False, mode=ScopeMode.no_access)

    @property
    def is_global(self) -> bool:
        return self.mode == ScopeMode.global_

    def allows(self, school_id: int | None) -> bool:
        if self.mode == ScopeMode.global_:
            return True
        if self.mode == ScopeMode.no_access or school_id is None:
            return False
        return school_id == self.tenant_id

    def filter(self, school_column) -> ColumnElement[bool]:
        if self.mode == ScopeMode.global_:
            return true()
        if self.mode == ScopeMode.no_access:
            return false()
        return school_column == self.tenant_id


def resolve_context(identity: Identity | None) -> AuthContext | None:
    if identity is None:
        return None
    return AuthContext(
        user_id=identity.user_id,
        role=identity.role,
        permissions=permissions_for_role(identity.role),
    )


def parse_tenant_signal(signal: str | int | None) -> int | None:
    if signal is None:
        return None
    if isinstance(signal, int):
        return signal
    try:
        return int(signal.strip(), 10)
    except ValueError:
        return None


def resolve_tenant_scope(memberships: MembershipReader, user_id: int, tenant_selection_signal: str | int | None) -> TenantScope:
    records = memberships.list_for_user(user_id)
    is_super_admin = any(record.role == TenantRole.super_admin for record in records)

    selected_id = parse_tenant_signal(tenant_selection_signal)
    if selected_id is not None:
        for record in records:
            if record.school_id == selected_id:
                return TenantScope.for_school(record.school_id, is_super_admin=is_super_admin)
        logger.info("tenant_selection_ignored", user_id=user_id, requested_school_id=selected_id)

    if is_super_admin:
        return TenantScope.global_scope()

    if records:
        return TenantScope.for_school(records[0].school_id)

    # No memberships: scoped to nothing rather than to everything.
    return TenantScope.no_access()


def ensure_permission(identity: Identity | None, required: Permission | str | Iterable[Permission | str]) -> AuthContext:
    context = resolve_context(identity)
    if context is None:
        raise UnauthorizedError("Unauthorized")
    if not has_permission(context.permissions, required):
        missing = sorted(token.value for token in normalize_required(required) - context.permissions)
        logger.warning("permission_denied", user_id=context.user_id, role=context.role.value, missing=missing)
        raise ForbiddenError("Forbidden")
    return context


def require_selected_school(scope: TenantScope) -> int:
    if scope.mode != ScopeMode.school or scope.tenant_id is None:
        raise ValidationError("Select a school before performing this operation")
    return scope.tenant_id
