from __future__ import annotations

from typing import Any, Set


def where_sql(relation: Any) -> Set[str]:
    """The compiled filter predicates of a relation, order-independent."""
    return {
        str(clause.compile(compile_kwargs={"literal_binds": True}))
        for clause in relation.with_default_scope().where_clauses
    }
