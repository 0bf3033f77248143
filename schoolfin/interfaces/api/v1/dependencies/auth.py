import hmac
from collections.abc import Callable

from fastapi import Depends, Header, Query, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from schoolfin.application.errors import UnauthorizedError
from schoolfin.application.services.authorization_service import (
    Identity,
    TenantScope,
    ensure_permission,
    resolve_tenant_scope,
)
from schoolfin.application.services.security_service import decode_access_token, load_identity
from schoolfin.config import settings
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.session import get_db
from schoolfin.infrastructure.logging import bind_request_context
from schoolfin.infrastructure.repositories.membership_repository import SqlAlchemyMembershipReader

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


def get_current_identity(token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Identity | None:
    if not token:
        return None
    identity = load_identity(db, decode_access_token(token))
    if identity is not None:
        bind_request_context(user_id=identity.user_id)
    return identity



def get_tenant_selection_signal(
    request: Request,
    x_school_id: str | None = Header(default=None, alias="X-School-Id"),
) -> str | None:
    cookie_value = request.cookies.get(settings.tenant_cookie_name)
    if cookie_value:
        return cookie_value
    return x_school_id


def get_tenant_scope(
    identity: Identity | None = Depends(get_current_identity),
    signal: str | None = Depends(get_tenant_selection_signal),
    db: Session = Depends(get_db),
) -> TenantScope:
    if identity is None:
        return TenantScope.no_access()
    scope = resolve_tenant_scope(SqlAlchemyMembershipReader(db), identity.user_id, signal)
    bind_request_context(tenant_id=scope.tenant_id, tenant_mode=scope.mode.value)
    return scope


def require_permissions(*required: Permission) -> Callable:
    def checker(identity: Identity | None = Depends(get_current_identity)) -> Identity:
        ensure_permission(identity, required)
        return identity

    return checker


def verify_mpesa_callback_token(
    x_callback_token: str | None = Header(default=None, alias="X-Callback-Token"),
    token: str | None = Query(default=None),
) -> None:
    expected = settings.mpesa_callback_token
    if expected is None:
        return
    provided = x_callback_token or token
    if provided is None or not hmac.compare_digest(provided, expected):
        raise UnauthorizedError("Invalid callback token")
