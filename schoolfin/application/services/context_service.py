from schoolfin.application.errors import ForbiddenError, UnauthorizedError
from schoolfin.application.ports import MembershipReader
from schoolfin.application.services.authorization_service import Identity, TenantScope, resolve_context
from schoolfin.domain.permissions import CATALOG_VERSION
from schoolfin.domain.roles import TenantRole
from schoolfin.infrastructure.logging import get_logger

logger = get_logger(__name__)


def describe_context(identity: Identity | None, scope: TenantScope) -> dict:
    context = resolve_context(identity)
    if context is None:
        raise UnauthorizedError("Unauthorized")
    return {
        "user_id": context.user_id,
        "role": context.role,
        "permissions": sorted(context.permissions, key=lambda token: token.value),
        "catalog_version": CATALOG_VERSION,
        "scope": {
            "tenant_id": scope.tenant_id,
            "is_super_admin": scope.is_super_admin,
            "mode": scope.mode,
        },
    }


def select_current_school(memberships: MembershipReader, *, identity: Identity | None, school_id: int | None) -> str:
    """Validate a tenant switch and return the cookie value to store ("" clears it)."""
    if identity is None:
        raise UnauthorizedError("Unauthorized")
    records = memberships.list_for_user(identity.user_id)

    if school_id is None:
        if not any(record.role == TenantRole.super_admin for record in records):
            raise ForbiddenError("Only super admins can switch to all schools")
        logger.info("current_school_cleared", user_id=identity.user_id)
        return ""

    if not any(record.school_id == school_id for record in records):
        raise ForbiddenError("No membership in the requested school")
    logger.info("current_school_selected", user_id=identity.user_id, school_id=school_id)
    return str(school_id)
