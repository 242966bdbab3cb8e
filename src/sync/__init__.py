"""Synchronization engine between Jira and the local outline."""

from .comment_reconciler import CommentReconciler
from .engine import SyncEngine
from .models import (
    RenderReport,
    SearchEntry,
    SectionLayout,
    SyncConfig,
    WorklogReconcileResult,
)
from .renderer import IdentityRenderer
from .search_index import SearchIndex, SearchPicker
from .session import SyncSession
from .worklog_reconciler import WorklogReconciler

__all__ = [
    'SyncEngine',
    'SyncSession',
    'SyncConfig',
    'IdentityRenderer',
    'WorklogReconciler',
    'CommentReconciler',
    'SearchIndex',
    'SearchPicker',
    'RenderReport',
    'SearchEntry',
    'SectionLayout',
    'WorklogReconcileResult',
]
