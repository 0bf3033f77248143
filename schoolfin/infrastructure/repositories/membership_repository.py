from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfin.application.ports import MembershipRecord
from schoolfin.infrastructure.db.models import SchoolMembership


class SqlAlchemyMembershipReader:
    def __init__(self, db: Session) -> None:
        self._db = db

    def list_for_user(self, user_id: int) -> list[MembershipRecord]:
        rows = (
            self._db.execute(
                select(SchoolMembership)
                .where(SchoolMembership.user_id == user_id)
                .order_by(SchoolMembership.id)
            )
            .scalars()
            .all()
        )
        return [MembershipRecord(school_id=row.school_id, role=row.role) for row in rows]
