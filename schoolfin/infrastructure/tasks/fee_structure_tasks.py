from schoolfin.application.errors import ForbiddenError
from schoolfin.application.services.authorization_service import resolve_tenant_scope
from schoolfin.application.services.fee_structure_service import apply_structure_to_class
from schoolfin.application.services.security_service import load_identity
from schoolfin.infrastructure.db.session import SessionLocal
from schoolfin.infrastructure.repositories.membership_repository import SqlAlchemyMembershipReader
from schoolfin.infrastructure.tasks.celery_app import celery_app
from schoolfin.interfaces.api.v1.schemas.fee_structure import FeeStructureApplyRequest


@celery_app.task(name="fee_structures.apply_for_class")
def apply_fee_structure_for_class_task(actor_user_id: int, school_id: int, payload: dict) -> dict:
    db = SessionLocal()
    try:
        # Permissions and membership are re-checked at execution time, not trusted from enqueue time.
        identity = load_identity(db, actor_user_id)
        scope = resolve_tenant_scope(SqlAlchemyMembershipReader(db), actor_user_id, school_id)
        if scope.tenant_id != school_id:
            raise ForbiddenError("No membership in the requested school")
        return apply_structure_to_class(
            db,
            identity=identity,
            scope=scope,
            payload=FeeStructureApplyRequest.model_validate(payload),
        )
    finally:
        db.close()


def enqueue_fee_structure_apply_task(*, actor_user_id: int, school_id: int, payload: FeeStructureApplyRequest) -> str:
    task = apply_fee_structure_for_class_task.delay(
        actor_user_id=actor_user_id,
        school_id=school_id,
        payload=payload.model_dump(mode="json"),
    )
    return str(task.id)
