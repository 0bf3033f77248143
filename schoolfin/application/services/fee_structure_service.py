from dataclasses import asdict, dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from schoolfin.application.errors import ConflictError, NotFoundError
from schoolfin.application.services.audit_service import record_audit
from schoolfin.application.services.authorization_service import (
    Identity,
    TenantScope,
    ensure_permission,
    require_selected_school,
)
from schoolfin.application.services.fee_summary_service import invalidate_fee_summary_cache
from schoolfin.domain.fee_engine import FeeRowState, apply_structure_change
from schoolfin.domain.fee_enums import ApplyScope, Term
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.models import FeeCategory, FeeStructureLine, SchoolClass, Student, StudentFee
from schoolfin.infrastructure.logging import get_logger
from schoolfin.interfaces.api.v1.schemas.fee_structure import (
    FeeStructureApplyRequest,
    FeeStructureLineCreate,
    FeeStructureLineUpdate,
)

logger = get_logger(__name__)

STRUCTURE_LINE_ENTITY = "fee_structure_line"
STRUCTURE_APPLY_ENTITY = "fee_structure_apply"


@dataclass(frozen=True)
class StructureTarget:
    student_id: int
    category_id: int
    term: Term
    academic_year: int
    amount_minor: int
    source_structure_line_id: int


def serialize_structure_line(line: FeeStructureLine) -> dict:
    return {
        "id": line.id,
        "school_id": line.school_id,
        "class_id": line.class_id,
        "category_id": line.category_id,
        "term": line.term,
        "academic_year": line.academic_year,
        "amount_minor": line.amount_minor,
        "is_active": line.is_active,
        "created_at": line.created_at,
        "updated_at": line.updated_at,
    }


def _line_snapshot(line: FeeStructureLine) -> dict:
    return {
        "class_id": line.class_id,
        "category_id": line.category_id,
        "term": line.term.value if line.term is not None else None,
        "academic_year": line.academic_year,
        "amount_minor": line.amount_minor,
        "is_active": line.is_active,
    }


def get_structure_line_in_scope(db: Session, *, line_id: int, scope: TenantScope) -> FeeStructureLine:
    line = db.execute(
        select(FeeStructureLine).where(FeeStructureLine.id == line_id, scope.filter(FeeStructureLine.school_id))
    ).scalar_one_or_none()
    if line is None:
        raise NotFoundError("Fee structure line not found")
    return line


def _get_class_in_school(db: Session, *, class_id: int, school_id: int) -> SchoolClass:
    school_class = db.execute(
        select(SchoolClass).where(SchoolClass.id == class_id, SchoolClass.school_id == school_id)
    ).scalar_one_or_none()
    if school_class is None:
        raise NotFoundError("Class not found")
    return school_class


def _get_category_in_school(db: Session, *, category_id: int, school_id: int) -> FeeCategory:
    category = db.execute(
        select(FeeCategory).where(FeeCategory.id == category_id, FeeCategory.school_id == school_id)
    ).scalar_one_or_none()
    if category is None:
        raise NotFoundError("Fee category not found")
    return category


def _get_line_by_natural_key(
    db: Session,
    *,
    school_id: int,
    class_id: int,
    category_id: int,
    term: Term | None,
    academic_year: int,
) -> FeeStructureLine | None:
    term_clause = FeeStructureLine.term.is_(None) if term is None else FeeStructureLine.term == term
    return db.execute(
        select(FeeStructureLine).where(
            FeeStructureLine.school_id == school_id,
            FeeStructureLine.class_id == class_id,
            FeeStructureLine.category_id == category_id,
            term_clause,
            FeeStructureLine.academic_year == academic_year,
        )
    ).scalar_one_or_none()


def list_structure_lines(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    class_id: int | None = None,
    academic_year: int | None = None,
) -> list[FeeStructureLine]:
    ensure_permission(identity, Permission.fees_read)
    query = select(FeeStructureLine).where(scope.filter(FeeStructureLine.school_id))
    if class_id is not None:
        query = query.where(FeeStructureLine.class_id == class_id)
    if academic_year is not None:
        query = query.where(FeeStructureLine.academic_year == academic_year)
    return list(db.execute(query.order_by(FeeStructureLine.id)).scalars().all())


def create_structure_line(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    payload: FeeStructureLineCreate,
) -> FeeStructureLine:
    context = ensure_permission(identity, Permission.fees_write)
    school_id = require_selected_school(scope)
    _get_class_in_school(db, class_id=payload.class_id, school_id=school_id)
    _get_category_in_school(db, category_id=payload.category_id, school_id=school_id)

    existing = _get_line_by_natural_key(
        db,
        school_id=school_id,
        class_id=payload.class_id,
        category_id=payload.category_id,
        term=payload.term,
        academic_year=payload.academic_year,
    )
    if existing is not None:
        raise ConflictError("Fee structure line already exists")

    line = FeeStructureLine(
        school_id=school_id,
        class_id=payload.class_id,
        category_id=payload.category_id,
        term=payload.term,
        academic_year=payload.academic_year,
        amount_minor=payload.amount_minor,
        is_active=payload.is_active,
    )
    db.add(line)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Fee structure line already exists") from exc
    db.refresh(line)

    record_audit(
        db,
        actor_user_id=context.user_id,
        entity=STRUCTURE_LINE_ENTITY,
        entity_id=line.id,
        old_value=None,
        new_value=_line_snapshot(line),
        school_id=school_id,
    )
    logger.info("fee_structure_line_created", line_id=line.id, school_id=school_id, actor_user_id=context.user_id)
    return line


def update_structure_line(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    line_id: int,
    payload: FeeStructureLineUpdate,
) -> FeeStructureLine:
    context = ensure_permission(identity, Permission.fees_write)
    line = get_structure_line_in_scope(db, line_id=line_id, scope=scope)
    before = _line_snapshot(line)

    if payload.amount_minor is not None:
        line.amount_minor = payload.amount_minor
    if payload.is_active is not None:
        line.is_active = payload.is_active

    after = _line_snapshot(line)
    if after == before:
        return line

    db.commit()
    db.refresh(line)
    record_audit(
        db,
        actor_user_id=context.user_id,
        entity=STRUCTURE_LINE_ENTITY,
        entity_id=line.id,
        old_value=before,
        new_value=after,
        reason=payload.reason,
        school_id=line.school_id,
    )
    logger.info("fee_structure_line_updated", line_id=line.id, actor_user_id=context.user_id)
    return line


def deactivate_structure_line(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    line_id: int,
    reason: str | None = None,
) -> FeeStructureLine:
    context = ensure_permission(identity, Permission.fees_write)
    line = get_structure_line_in_scope(db, line_id=line_id, scope=scope)
    if not line.is_active:
        return line

    before = _line_snapshot(line)
    line.is_active = False
    db.commit()
    db.refresh(line)
    record_audit(
        db,
        actor_user_id=context.user_id,
        entity=STRUCTURE_LINE_ENTITY,
        entity_id=line.id,
        old_value=before,
        new_value=_line_snapshot(line),
        reason=reason,
        school_id=line.school_id,
    )
    logger.info("fee_structure_line_deactivated", line_id=line.id, actor_user_id=context.user_id)
    return line


def _target_term(line_term: Term | None, scope: ApplyScope, requested_term: Term | None) -> Term | None:
    if scope == ApplyScope.all:
        return line_term or Term.term1
    if line_term is None:
        # Yearly charges are billed under the first term.
        return Term.term1 if requested_term == Term.term1 else None
    return line_term if line_term == requested_term else None


def build_structure_targets(
    db: Session,
    *,
    school_id: int,
    class_id: int,
    academic_year: int,
    scope: ApplyScope,
    term: Term | None,
) -> list[StructureTarget]:
    _get_class_in_school(db, class_id=class_id, school_id=school_id)

    lines = (
        db.execute(
            select(FeeStructureLine).where(
                FeeStructureLine.school_id == school_id,
                FeeStructureLine.class_id == class_id,
                FeeStructureLine.academic_year == academic_year,
                FeeStructureLine.is_active.is_(True),
            )
        )
        .scalars()
        .all()
    )
    # Term-specific lines override a yearly line for the same category under TERM1.
    ordered_lines = sorted(lines, key=lambda line: (line.term is not None, line.id))
    student_ids = (
        db.execute(
            select(Student.id).where(Student.school_id == school_id, Student.class_id == class_id).order_by(Student.id)
        )
        .scalars()
        .all()
    )

    targets: dict[tuple[int, int, Term], StructureTarget] = {}
    for student_id in student_ids:
        for line in ordered_lines:
            target_term = _target_term(line.term, scope, term)
            if target_term is None:
                continue
            targets[(student_id, line.category_id, target_term)] = StructureTarget(
                student_id=student_id,
                category_id=line.category_id,
                term=target_term,
                academic_year=academic_year,
                amount_minor=line.amount_minor,
                source_structure_line_id=line.id,
            )
    return list(targets.values())


def preview_structure_application(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    payload: FeeStructureApplyRequest,
) -> list[StructureTarget]:
    ensure_permission(identity, Permission.fees_read)
    school_id = require_selected_school(scope)
    return build_structure_targets(
        db,
        school_id=school_id,
        class_id=payload.class_id,
        academic_year=payload.academic_year,
        scope=payload.scope,
        term=payload.term,
    )


def serialize_structure_target(target: StructureTarget) -> dict:
    return asdict(target)


def structure_apply_entity_id(payload: FeeStructureApplyRequest) -> str:
    term = payload.term.value if payload.term is not None else "-"
    return f"{payload.class_id}:{payload.academic_year}:{payload.scope.value}:{term}"


def apply_structure_to_class(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    payload: FeeStructureApplyRequest,
) -> dict[str, int]:
    """
    Reconcile every student of a class against the active structure lines.

    Rows are locked one at a time and the whole run commits once. Counts:
    created (new rows), locked (rows locked after the run, either already or by
    overpayment), updated (unlocked rows whose due or status moved), unchanged.
    """
    context = ensure_permission(identity, Permission.fees_write)
    school_id = require_selected_school(scope)
    targets = build_structure_targets(
        db,
        school_id=school_id,
        class_id=payload.class_id,
        academic_year=payload.academic_year,
        scope=payload.scope,
        term=payload.term,
    )

    counts = {"created": 0, "updated": 0, "locked": 0, "unchanged": 0}
    affected_student_ids: set[int] = set()
    logger.info(
        "fee_structure_apply_started",
        school_id=school_id,
        class_id=payload.class_id,
        academic_year=payload.academic_year,
        scope=payload.scope.value,
        targets=len(targets),
    )
    try:
        for target in targets:
            row = db.execute(
                select(StudentFee)
                .where(
                    StudentFee.student_id == target.student_id,
                    StudentFee.category_id == target.category_id,
                    StudentFee.term == target.term,
                    StudentFee.academic_year == target.academic_year,
                )
                .with_for_update()
            ).scalar_one_or_none()

            existing = None
            if row is not None:
                existing = FeeRowState(
                    amount_due_minor=row.amount_due_minor,
                    amount_paid_minor=row.amount_paid_minor,
                    locked=row.locked,
                    status=row.status,
                )
            result = apply_structure_change(existing, target.amount_minor)

            if row is None:
                db.add(
                    StudentFee(
                        school_id=school_id,
                        student_id=target.student_id,
                        category_id=target.category_id,
                        source_structure_line_id=target.source_structure_line_id,
                        term=target.term,
                        academic_year=target.academic_year,
                        base_amount_minor=target.amount_minor,
                        amount_due_minor=result.amount_due_minor,
                        amount_paid_minor=result.amount_paid_minor,
                        locked=result.locked,
                        status=result.status,
                    )
                )
                counts["created"] += 1
                affected_student_ids.add(target.student_id)
                continue

            row.source_structure_line_id = target.source_structure_line_id
            if result.changed:
                row.base_amount_minor = target.amount_minor
                row.amount_due_minor = result.amount_due_minor
                row.amount_paid_minor = result.amount_paid_minor
                row.locked = result.locked
                row.status = result.status
                affected_student_ids.add(target.student_id)

            if result.locked:
                counts["locked"] += 1
            elif result.changed:
                counts["updated"] += 1
            else:
                counts["unchanged"] += 1
        db.commit()
    except IntegrityError as exc:
        # Another apply for the same class inserted one of these rows first.
        db.rollback()
        logger.warning("fee_structure_apply_conflict", school_id=school_id, class_id=payload.class_id)
        raise ConflictError("Fee structure is being applied concurrently; retry") from exc
    except SQLAlchemyError:
        db.rollback()
        logger.exception("fee_structure_apply_failed", school_id=school_id, class_id=payload.class_id)
        raise

    for student_id in affected_student_ids:
        invalidate_fee_summary_cache(student_id=student_id)

    record_audit(
        db,
        actor_user_id=context.user_id,
        entity=STRUCTURE_APPLY_ENTITY,
        entity_id=structure_apply_entity_id(payload),
        old_value=None,
        new_value={
            "class_id": payload.class_id,
            "academic_year": payload.academic_year,
            "scope": payload.scope.value,
            "term": payload.term.value if payload.term is not None else None,
            **counts,
        },
        reason=payload.reason,
        school_id=school_id,
    )
    logger.info("fee_structure_apply_completed", school_id=school_id, class_id=payload.class_id, **counts)
    return counts
