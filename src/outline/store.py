"""File layout of the working directory.

Each project's issues live in <working_dir>/<PROJECT>.org unless the config
maps the project to another file. Project, board and head-only issue lists
live in fixed files next to them.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional

from .document import OutlineDocument
from .errors import DocumentFilesystemError

logger = logging.getLogger(__name__)

PROJECTS_FILE = "projects-list.org"
BOARDS_FILE = "boards-list.org"
HEADONLY_FILE = "issues-headonly.org"
ORG_SUFFIX = ".org"


class DocumentStore:
    """Opens, caches and saves the outline documents of a working directory.

    A document is read from disk at most once per store; every command edits
    the cached buffer and saves all modified documents at the end.
    """

    def __init__(
        self,
        working_dir: str,
        project_files: Optional[Dict[str, str]] = None,
        todo_keywords: Optional[Iterable[str]] = None,
    ):
        self.working_dir = os.path.abspath(working_dir)
        self.project_files = dict(project_files or {})
        self.todo_keywords = set(todo_keywords or ())
        self._documents: Dict[str, OutlineDocument] = {}

    def filename_for(self, project_key: str) -> str:
        """File name holding a project's issues (EX -> EX.org)."""
        return self.project_files.get(project_key, f"{project_key}{ORG_SUFFIX}")

    def path_for(self, filename: str) -> str:
        if os.path.isabs(filename):
            return filename
        return os.path.join(self.working_dir, filename)

    def open(self, filename: str) -> OutlineDocument:
        path = self.path_for(filename)
        document = self._documents.get(path)
        if document is None:
            document = OutlineDocument.load(path, todo_keywords=self.todo_keywords)
            self._documents[path] = document
            logger.debug(f"Opened {path}")
        return document

    def open_project(self, project_key: str) -> OutlineDocument:
        return self.open(self.filename_for(project_key))

    def add_keywords(self, keywords: Iterable[str]) -> None:
        """Register headline keywords with the store and every open document."""
        new = {k for k in keywords if k}
        self.todo_keywords |= new
        for document in self._documents.values():
            document.todo_keywords |= new

    def save_all(self) -> List[str]:
        """Save every modified document; returns the saved paths."""
        saved = []
        for path, document in self._documents.items():
            if document.modified:
                document.save(path)
                saved.append(path)
        if saved:
            logger.info(f"Saved {len(saved)} document(s)")
        return saved

    def org_files(self) -> List[str]:
        """Paths of all outline files in the working directory, sorted.

        Raises:
            DocumentFilesystemError: If the directory cannot be listed
        """
        if not os.path.isdir(self.working_dir):
            return []
        try:
            names = os.listdir(self.working_dir)
        except OSError as e:
            raise DocumentFilesystemError(self.working_dir, 'list', str(e))
        return sorted(
            os.path.join(self.working_dir, name)
            for name in names
            if name.endswith(ORG_SUFFIX)
        )

    def documents(self) -> List[OutlineDocument]:
        """Every outline file of the working directory, through the cache."""
        return [self.open(path) for path in self.org_files()]
