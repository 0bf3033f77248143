from datetime import datetime
from typing import Any

from pydantic import BaseModel

from schoolfin.interfaces.api.v1.schemas.pagination import PaginationMeta


class AuditLogResponse(BaseModel):
    id: int
    school_id: int | None
    actor_user_id: int
    entity: str
    entity_id: str
    old_value: Any = None
    new_value: Any = None
    reason: str | None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogResponse]
    pagination: PaginationMeta
