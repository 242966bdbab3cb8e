"""Entity model and field normalization for Jira payloads."""

from src.models.entities import (
    Attachment,
    Board,
    Comment,
    EntityBatch,
    Issue,
    Project,
    Worklog,
)
from src.models.normalizer import FieldNormalizer, ReferenceLists
from src.models.payload import lookup, lookup_first, resolve, wrap

__all__ = [
    'Attachment',
    'Board',
    'Comment',
    'EntityBatch',
    'Issue',
    'Project',
    'Worklog',
    'FieldNormalizer',
    'ReferenceLists',
    'lookup',
    'lookup_first',
    'resolve',
    'wrap',
]
