"""Org-style outline documents: sections, drawers, clocks and files."""

from .document import OutlineDocument
from .errors import (
    DocumentFilesystemError,
    IdentityNotFoundError,
    OutlineError,
    RegionError,
)
from .models import ClockBlock, ClockEntry, HeadlineParts, Region, Section, SectionSnapshot
from .store import DocumentStore

__all__ = [
    'OutlineDocument',
    'DocumentStore',
    'OutlineError',
    'IdentityNotFoundError',
    'RegionError',
    'DocumentFilesystemError',
    'ClockBlock',
    'ClockEntry',
    'HeadlineParts',
    'Region',
    'Section',
    'SectionSnapshot',
]
