from __future__ import annotations

"""
Named, composable query scopes.

Classes:
- ScopeRegistry: Named and default scopes owned by a model class
- ScopeAccessor: Class attribute resolving a scope name at call time
- ScopeInvoker: Callable that builds the relation for one scope call
- ScopeDefinition: One registered scope
- ScopeContext: Current scope per model, per execution context
- ExtensionModule: Extra members attached to a scope's relations
- StaticCriteria, ParameterizedCriteria, LegacyOptions: Criteria sources

Usage:
    from relation_scopes.Scopes import named_scope

    class Shirt(BaseModel):
        @named_scope
        def colored(cls, color):
            return cls.where(color=color)

    Shirt.scope('red', {'color': 'red'})
    Shirt.red().colored('blue')
"""

from .Criteria import Criteria, LegacyOptions, ParameterizedCriteria, StaticCriteria, coerce_criteria
from .Decorators import NamedScopeDeclaration, named_scope
from .Errors import ArityError, DeprecatedUsageWarning, InvalidNameError, NameCollisionWarning
from .Extension import ExtensionModule
from .ScopeContext import ScopeContext
from .ScopeDefinition import ScopeDefinition
from .ScopeInvoker import ScopeInvoker, apply_criteria, evaluate_criteria
from .ScopeRegistry import ScopeAccessor, ScopeRegistry

__all__ = [
    'ArityError',
    'Criteria',
    'DeprecatedUsageWarning',
    'ExtensionModule',
    'InvalidNameError',
    'LegacyOptions',
    'NameCollisionWarning',
    'NamedScopeDeclaration',
    'ParameterizedCriteria',
    'ScopeAccessor',
    'ScopeContext',
    'ScopeDefinition',
    'ScopeInvoker',
    'ScopeRegistry',
    'StaticCriteria',
    'apply_criteria',
    'coerce_criteria',
    'evaluate_criteria',
    'named_scope',
]
