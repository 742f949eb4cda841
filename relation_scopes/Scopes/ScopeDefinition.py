from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from .Criteria import Criteria, ParameterizedCriteria
from .Extension import ExtensionModule


@dataclass(frozen=True)
class ScopeDefinition:
    """One named scope of a model: its criteria source and optional extension."""

    name: str
    criteria: Criteria
    owner: Type[Any]
    extension: Optional[ExtensionModule] = None

    @property
    def parameterized(self) -> bool:
        return isinstance(self.criteria, ParameterizedCriteria)

    @property
    def doc(self) -> Optional[str]:
        if isinstance(self.criteria, ParameterizedCriteria):
            return self.criteria.fn.__doc__
        return None

    def describe(self) -> Dict[str, Any]:
        """Summary used by ``ScopeRegistry.debug_info``."""
        return {
            'name': self.name,
            'owner': self.owner.__name__,
            'criteria': type(self.criteria).__name__,
            'arity': self.criteria.expected_arity() if isinstance(self.criteria, ParameterizedCriteria) else '0',
            'extension': self.extension.name if self.extension else None,
        }
