from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfin.application.services.authorization_service import Identity, TenantScope
from schoolfin.application.services.fee_structure_service import apply_structure_to_class
from schoolfin.application.services.security_service import hash_password
from schoolfin.domain.fee_enums import Term
from schoolfin.domain.roles import BaseRole, TenantRole
from schoolfin.infrastructure.db.models import (
    FeeCategory,
    FeeStructureLine,
    School,
    SchoolClass,
    SchoolMembership,
    Student,
    User,
)
from schoolfin.infrastructure.db.session import SessionLocal
from schoolfin.infrastructure.logging import configure_logging, get_logger
from schoolfin.interfaces.api.v1.schemas.fee_structure import FeeStructureApplyRequest

logger = get_logger(__name__)

ACADEMIC_YEAR = 2026


def create_user_if_missing(db: Session, username: str, password: str, role: BaseRole) -> User:
    existing = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if existing is not None:
        return existing

    user = User(username=username, hashed_password=hash_password(password), role=role, is_active=True)
    db.add(user)
    db.flush()
    return user


def create_school_if_missing(db: Session, name: str, slug: str) -> School:
    school = db.execute(select(School).where(School.slug == slug)).scalar_one_or_none()
    if school is not None:
        return school

    school = School(name=name, slug=slug, is_active=True)
    db.add(school)
    db.flush()
    return school


def create_membership_if_missing(db: Session, user_id: int, school_id: int, role: TenantRole) -> None:
    existing = db.execute(
        select(SchoolMembership).where(
            SchoolMembership.user_id == user_id,
            SchoolMembership.school_id == school_id,
            SchoolMembership.role == role,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return
    db.add(SchoolMembership(user_id=user_id, school_id=school_id, role=role))


def create_class_if_missing(db: Session, school_id: int, name: str) -> SchoolClass:
    school_class = db.execute(
        select(SchoolClass).where(SchoolClass.school_id == school_id, SchoolClass.name == name)
    ).scalar_one_or_none()
    if school_class is not None:
        return school_class

    school_class = SchoolClass(school_id=school_id, name=name)
    db.add(school_class)
    db.flush()
    return school_class


def create_student_if_missing(
    db: Session,
    school_id: int,
    class_id: int,
    admission_number: str,
    name: tuple[str, str],
) -> Student:
    student = db.execute(
        select(Student).where(Student.school_id == school_id, Student.admission_number == admission_number)
    ).scalar_one_or_none()
    if student is not None:
        return student

    student = Student(
        school_id=school_id,
        class_id=class_id,
        admission_number=admission_number,
        first_name=name[0],
        last_name=name[1],
    )
    db.add(student)
    db.flush()
    return student


def create_category_if_missing(db: Session, school_id: int, name: str, code: str) -> FeeCategory:
    category = db.execute(
        select(FeeCategory).where(FeeCategory.school_id == school_id, FeeCategory.code == code)
    ).scalar_one_or_none()
    if category is not None:
        return category

    category = FeeCategory(school_id=school_id, name=name, code=code)
    db.add(category)
    db.flush()
    return category


def create_structure_line_if_missing(
    db: Session,
    school_class: SchoolClass,
    category: FeeCategory,
    amount_minor: int,
    term: Term | None = None,
) -> None:
    term_clause = FeeStructureLine.term.is_(None) if term is None else FeeStructureLine.term == term
    existing = db.execute(
        select(FeeStructureLine).where(
            FeeStructureLine.class_id == school_class.id,
            FeeStructureLine.category_id == category.id,
            FeeStructureLine.academic_year == ACADEMIC_YEAR,
            term_clause,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return
    db.add(
        FeeStructureLine(
            school_id=school_class.school_id,
            class_id=school_class.id,
            category_id=category.id,
            term=term,
            academic_year=ACADEMIC_YEAR,
            amount_minor=amount_minor,
            is_active=True,
        )
    )


def main() -> None:
    configure_logging()
    db = SessionLocal()
    try:
        admin = create_user_if_missing(db, "admin", "admin123", BaseRole.admin)
        bursar = create_user_if_missing(db, "bursar", "bursar123", BaseRole.accountant)
        teacher = create_user_if_missing(db, "teacher", "teacher123", BaseRole.teacher)
        owner = create_user_if_missing(db, "owner", "owner123", BaseRole.admin)

        north_school = create_school_if_missing(db, "North High", "north-high")
        south_school = create_school_if_missing(db, "South High", "south-high")

        create_membership_if_missing(db, admin.id, north_school.id, TenantRole.school_admin)
        create_membership_if_missing(db, admin.id, south_school.id, TenantRole.school_admin)
        create_membership_if_missing(db, bursar.id, north_school.id, TenantRole.accountant)
        create_membership_if_missing(db, owner.id, north_school.id, TenantRole.super_admin)

        north_grade = create_class_if_missing(db, north_school.id, "Grade 4")
        south_grade = create_class_if_missing(db, south_school.id, "Grade 4")
        create_student_if_missing(db, north_school.id, north_grade.id, "ADM001", ("Amani", "Otieno"))
        create_student_if_missing(db, north_school.id, north_grade.id, "ADM002", ("Wanjiru", "Kamau"))
        create_student_if_missing(db, south_school.id, south_grade.id, "ADM900", ("Baraka", "Mwangi"))

        for school_class in (north_grade, south_grade):
            tuition = create_category_if_missing(db, school_class.school_id, "Tuition", "TUI")
            meals = create_category_if_missing(db, school_class.school_id, "Meals", "MEA")
            create_structure_line_if_missing(db, school_class, tuition, 4500000)
            for term in Term:
                create_structure_line_if_missing(db, school_class, meals, 800000, term=term)
        db.commit()

        for school_class in (north_grade, south_grade):
            counts = apply_structure_to_class(
                db,
                identity=Identity(user_id=admin.id, role=admin.role),
                scope=TenantScope.for_school(school_class.school_id),
                payload=FeeStructureApplyRequest(
                    class_id=school_class.id,
                    academic_year=ACADEMIC_YEAR,
                    reason="Seed data",
                ),
            )
            logger.info("seed_structure_applied", class_id=school_class.id, **counts)
    finally:
        db.close()


if __name__ == "__main__":
    main()
