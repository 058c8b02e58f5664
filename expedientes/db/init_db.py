from __future__ import annotations

from sqlalchemy import Engine

from expedientes.db.base import Base
from expedientes.models import security as _security  # noqa: F401  (register tables)


def init_db(engine: Engine) -> None:
    """Create the contextual rule and area responsibility tables if missing."""

    Base.metadata.create_all(bind=engine)
