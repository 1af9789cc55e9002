"""Approver directory backed by the ``users`` table."""

from typing import Iterable, Set
from uuid import UUID

from sqlalchemy.orm import Session

from formflow.db.models import User


class UserDirectory:

    def resolve_active_users(self, db: Session, ids: Iterable[UUID]) -> Set[UUID]:
        ids = list(ids)
        if not ids:
            return set()
        rows = db.query(User.id).filter(
            User.id.in_(ids),
            User.is_active.is_(True),
        ).all()
        return {row.id for row in rows}
