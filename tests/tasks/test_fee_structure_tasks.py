import pytest
from sqlalchemy.orm import sessionmaker

from schoolfin.application.errors import ForbiddenError
from schoolfin.infrastructure.tasks import fee_structure_tasks
from schoolfin.interfaces.api.v1.schemas.fee_structure import FeeStructureApplyRequest
from tests.helpers.factories import create_structure_line, list_student_fees_for_student


@pytest.fixture
def task_sessions(engine, monkeypatch):
    monkeypatch.setattr(
        "schoolfin.infrastructure.tasks.fee_structure_tasks.SessionLocal",
        sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine),
    )


def test_task_applies_structure_for_member(db_session, seeded_users, task_sessions):
    """
    Validate the background application task.

    1. Seed a yearly tuition line for the north class.
    2. Run the task for the accountant and the north school.
    3. Validate the returned counts.
    4. Validate fee rows exist for the class students.
    """
    create_structure_line(
        db_session,
        school_id=seeded_users["north_school"].id,
        class_id=seeded_users["north_class"].id,
        category_id=seeded_users["tuition"].id,
        academic_year=2026,
        amount_minor=2500,
    )
    counts = fee_structure_tasks.apply_fee_structure_for_class_task(
        seeded_users["accountant"].id,
        seeded_users["north_school"].id,
        {"class_id": seeded_users["north_class"].id, "academic_year": 2026},
    )
    assert counts == {"created": 2, "updated": 0, "locked": 0, "unchanged": 0}
    assert [fee.amount_due_minor for fee in list_student_fees_for_student(db_session, student_id=seeded_users["child_two"].id)] == [
        2500
    ]


def test_task_rechecks_membership(db_session, seeded_users, task_sessions):
    """
    Validate the task does not trust its enqueue-time tenant.

    1. Run the task for the accountant against the south school.
    2. Validate ForbiddenError is raised.
    3. Load the south student's fee rows.
    4. Validate nothing was created.
    """
    with pytest.raises(ForbiddenError):
        fee_structure_tasks.apply_fee_structure_for_class_task(
            seeded_users["accountant"].id,
            seeded_users["south_school"].id,
            {"class_id": seeded_users["south_class"].id, "academic_year": 2026},
        )
    assert list_student_fees_for_student(db_session, student_id=seeded_users["south_child"].id) == []


def test_enqueue_sends_json_payload(monkeypatch):
    """
    Validate the enqueue helper.

    1. Replace the task's delay with a recorder.
    2. Enqueue an application request with a term scope.
    3. Validate the task id is returned as text.
    4. Validate the payload was serialised to plain JSON values.
    """
    sent: list[dict] = []

    class FakeResult:
        id = "abc-1"

    def fake_delay(**kwargs):
        sent.append(kwargs)
        return FakeResult()

    monkeypatch.setattr(fee_structure_tasks.apply_fee_structure_for_class_task, "delay", fake_delay)
    task_id = fee_structure_tasks.enqueue_fee_structure_apply_task(
        actor_user_id=3,
        school_id=9,
        payload=FeeStructureApplyRequest(class_id=4, academic_year=2026, scope="term", term="TERM2"),
    )
    assert task_id == "abc-1"
    assert sent == [
        {
            "actor_user_id": 3,
            "school_id": 9,
            "payload": {"class_id": 4, "academic_year": 2026, "scope": "term", "term": "TERM2", "reason": None},
        }
    ]
