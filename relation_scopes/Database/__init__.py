from .Exceptions import (
    InvalidJoinException,
    MissingSessionException,
    RelationException,
    RelationshipNotFoundException,
    UnknownFinderOptionException,
)
from .FinderOptions import VALID_FIND_OPTIONS, apply_finder_options
from .Relation import Relation

__all__ = [
    'InvalidJoinException',
    'MissingSessionException',
    'Relation',
    'RelationException',
    'RelationshipNotFoundException',
    'UnknownFinderOptionException',
    'VALID_FIND_OPTIONS',
    'apply_finder_options',
]
