from __future__ import annotations

from typing import Callable, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from expedientes.models.security import AreaResponsible


class SqlResponsibilityRepository:
    """Area responsibility repository over the ``area_responsibles`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def list(self, area_id: int) -> frozenset[int]:
        with self._session_factory() as session:
            return frozenset(
                session.scalars(select(AreaResponsible.user_id).where(AreaResponsible.area_id == area_id)).all()
            )

    def list_for_user(self, user_id: int) -> frozenset[int]:
        with self._session_factory() as session:
            return frozenset(
                session.scalars(select(AreaResponsible.area_id).where(AreaResponsible.user_id == user_id)).all()
            )

    def assign(self, area_id: int, user_id: int) -> None:
        with self._session_factory() as session, session.begin():
            if session.get(AreaResponsible, (area_id, user_id)) is None:
                session.add(AreaResponsible(area_id=area_id, user_id=user_id))

    def remove(self, area_id: int, user_id: int) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(
                delete(AreaResponsible).where(
                    AreaResponsible.area_id == area_id,
                    AreaResponsible.user_id == user_id,
                )
            )

    def replace(self, area_id: int, user_ids: Iterable[int]) -> frozenset[int]:
        with self._session_factory() as session, session.begin():
            previous = frozenset(
                session.scalars(select(AreaResponsible.user_id).where(AreaResponsible.area_id == area_id)).all()
            )
            session.execute(delete(AreaResponsible).where(AreaResponsible.area_id == area_id))
            session.add_all([AreaResponsible(area_id=area_id, user_id=u) for u in sorted(set(user_ids))])
            return previous
