from __future__ import annotations

from typing import Any
from datetime import datetime
from sqlalchemy import func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from relation_scopes.Database.Relation import Relation
from relation_scopes.Traits.HasNamedScopes import HasNamedScopes


class Base(DeclarativeBase):
    pass


class BaseModel(HasNamedScopes, Base):
    __abstract__ = True

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    def __init__(self, **kwargs: Any) -> None:
        # Attributes fixed by the current or default scope; explicit values win
        attributes = {**Relation.scope_attributes_for(type(self)), **kwargs}
        super().__init__(**attributes)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id}>"
