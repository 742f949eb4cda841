from __future__ import annotations

"""
Named, composable query scopes for SQLAlchemy models.

Usage:
    from relation_scopes import BaseModel, named_scope

    class Post(BaseModel):
        __tablename__ = 'posts'

        @named_scope
        def by_author(cls, author_id):
            return cls.where(author_id=author_id)

    Post.scope('published', {'published': True})
    Post.published().by_author(1).order('created_at desc').all(session)
"""

from .Scopes import (
    ArityError,
    DeprecatedUsageWarning,
    ExtensionModule,
    InvalidNameError,
    LegacyOptions,
    NameCollisionWarning,
    ParameterizedCriteria,
    ScopeContext,
    ScopeRegistry,
    StaticCriteria,
    named_scope,
)
from .Database import (
    MissingSessionException,
    Relation,
    RelationException,
    UnknownFinderOptionException,
)
from .Traits import HasNamedScopes
from .Models import Base, BaseModel

__version__ = '0.1.0'

__all__ = [
    'ArityError',
    'Base',
    'BaseModel',
    'DeprecatedUsageWarning',
    'ExtensionModule',
    'HasNamedScopes',
    'InvalidNameError',
    'LegacyOptions',
    'MissingSessionException',
    'NameCollisionWarning',
    'ParameterizedCriteria',
    'Relation',
    'RelationException',
    'ScopeContext',
    'ScopeRegistry',
    'StaticCriteria',
    'UnknownFinderOptionException',
    'named_scope',
]
