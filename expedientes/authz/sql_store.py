from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from expedientes.authz.rules import ContextualRule
from expedientes.models.security import ContextualRuleRow

logger = logging.getLogger(__name__)


class SqlRuleStore:
    """
    Contextual rule store over the ``contextual_rules`` table.

    Rows are decoded into ``ContextualRule`` here; a row that does not decode
    raises, which the permission engine treats as an unavailable store.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def fetch_rule(self, role_id: int, area_id: int, resource_type: str) -> ContextualRule | None:
        resource = resource_type.upper()
        with self._session_factory() as session:
            rows = session.scalars(
                select(ContextualRuleRow)
                .where(
                    ContextualRuleRow.role_id == role_id,
                    ContextualRuleRow.resource_type == resource,
                    ContextualRuleRow.active.is_(True),
                    or_(ContextualRuleRow.area_id == area_id, ContextualRuleRow.area_id.is_(None)),
                )
                .order_by(ContextualRuleRow.id)
            ).all()

        exact = [r for r in rows if r.area_id is not None]
        candidates = exact or rows
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                "Several active rules for role=%s area=%s type=%s; using id=%s",
                role_id,
                area_id,
                resource,
                candidates[0].id,
            )
        row = candidates[0]
        return ContextualRule.build(row.role_id, row.area_id, row.resource_type, row.condition, row.action)

    def add(self, rule: ContextualRule, active: bool = True) -> int:
        """Insert a rule row; rule management itself lives outside the core."""
        with self._session_factory() as session, session.begin():
            row = ContextualRuleRow(
                role_id=rule.role_id,
                area_id=rule.area_id,
                resource_type=rule.resource_type,
                condition=rule.condition.value,
                action=rule.action,
                active=active,
            )
            session.add(row)
            session.flush()
            return row.id
