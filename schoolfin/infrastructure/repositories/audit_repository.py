from sqlalchemy.orm import Session

from schoolfin.infrastructure.db.models import AuditLog


class SqlAlchemyAuditSink:
    def __init__(self, db: Session) -> None:
        self._db = db

    def append(self, entry: AuditLog) -> None:
        self._db.add(entry)

    def commit(self) -> None:
        self._db.commit()

    def rollback(self) -> None:
        self._db.rollback()
