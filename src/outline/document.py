"""Outline document: an org-style text buffer edited section by section.

The document is a single text buffer. Sections are located by scanning
headline lines (one or more stars followed by a space) and are addressed by
the offset of their first star. A section consists of:

    ** TODO [#B] Headline title            <- headline line
    :PROPERTIES:                           <- property drawer
    :CUSTOM_ID: EX-12
    :END:
    :LOGBOOK:                              <- other drawers (timer block)
    CLOCK: [2024-03-01 Fri 10:00]--[2024-03-01 Fri 11:00] =>  1:00
    :END:
    Body text ...                          <- body region
    *** Child headline                     <- children

All edits go through replace(), which enforces that regions are well-formed
and lie inside the visible (narrowed) part of the buffer. edit_region() is a
context manager that narrows to a subtree and restores the previous view on
every exit path, so a single upsert can only touch its own subtree.
"""

import logging
import os
import re
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .errors import DocumentFilesystemError, IdentityNotFoundError, OutlineError, RegionError
from .models import DrawerRegion, HeadlineParts, Region, Section, SectionSnapshot

logger = logging.getLogger(__name__)

# Identity is written under both names; lookups try them in this order
IDENTITY_PROPERTIES = ('CUSTOM_ID', 'ID')

DEFAULT_TODO_KEYWORDS = frozenset({'TODO', 'DONE'})

HEADLINE_PATTERN = re.compile(r'^(\*+)(?:[ \t]+(.*?))?[ \t]*$', re.MULTILINE)
DRAWER_OPEN_PATTERN = re.compile(r'^[ \t]*:([A-Za-z][\w-]*):[ \t]*$')
DRAWER_END_PATTERN = re.compile(r'^[ \t]*:END:[ \t]*$', re.IGNORECASE)
PROPERTY_PATTERN = re.compile(r'^[ \t]*:([^\s:]+):(?:[ \t]+(.*?))?[ \t]*$')
PLANNING_PATTERN = re.compile(r'^[ \t]*(?:DEADLINE|SCHEDULED|CLOSED):')
PRIORITY_PATTERN = re.compile(r'^\[#([A-Z0-9])\][ \t]*')
# An undeclared upper-case word followed by a priority cookie is a keyword
KEYWORD_PATTERN = re.compile(r'^[A-Z][A-Z0-9_-]*$')
TAGS_PATTERN = re.compile(r'[ \t]+(:[\w@#%:]+:)[ \t]*$')
TODO_DECLARATION_PATTERN = re.compile(
    r'^#\+(?:SEQ_|TYP_)?TODO:(.*)$', re.MULTILINE | re.IGNORECASE
)


class OutlineDocument:
    """An outline buffer with section-level editing primitives.

    Attributes:
        path: File the document was loaded from / is saved to
        modified: True when the buffer changed since load or save
        todo_keywords: Keywords recognized at the start of headlines

    Example:
        >>> doc = OutlineDocument("* EX-Tickets\\n")
        >>> project = doc.sections()[0]
        >>> issue = doc.insert_child(project, "TODO Fix login")
        >>> doc.set_property(issue, "CUSTOM_ID", "EX-1")
    """

    def __init__(
        self,
        text: str = "",
        path: Optional[str] = None,
        todo_keywords: Optional[Iterable[str]] = None,
    ):
        self._text = text
        self._begin = 0
        self._end = len(text)
        self.path = path
        self.modified = False
        self.todo_keywords: Set[str] = set(DEFAULT_TODO_KEYWORDS) | set(todo_keywords or ())
        self.todo_keywords |= self._declared_keywords()

    # ------------------------------------------------------------------ files

    @classmethod
    def load(
        cls,
        path: str,
        todo_keywords: Optional[Iterable[str]] = None,
    ) -> "OutlineDocument":
        """Load a document; a missing file yields an empty document bound to path.

        Raises:
            DocumentFilesystemError: If the file exists but cannot be read
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                text = f.read()
        except FileNotFoundError:
            text = ""
        except PermissionError:
            raise DocumentFilesystemError(path, 'read', 'Permission denied')
        except OSError as e:
            raise DocumentFilesystemError(path, 'read', str(e))
        return cls(text, path=path, todo_keywords=todo_keywords)

    def save(self, path: Optional[str] = None) -> None:
        """Write the whole buffer to path (default: the path it was loaded from).

        Raises:
            DocumentFilesystemError: If the file cannot be written
        """
        target = path or self.path
        if not target:
            raise DocumentFilesystemError('<unnamed>', 'write', 'Document has no file path')

        directory = os.path.dirname(target)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(target, 'w', encoding='utf-8') as f:
                f.write(self._text)
        except PermissionError:
            raise DocumentFilesystemError(target, 'write', 'Permission denied')
        except OSError as e:
            raise DocumentFilesystemError(target, 'write', str(e))

        self.path = target
        self.modified = False
        logger.debug(f"Saved {target} ({len(self._text)} chars)")

    def _declared_keywords(self) -> Set[str]:
        keywords: Set[str] = set()
        for match in TODO_DECLARATION_PATTERN.finditer(self._text):
            for token in match.group(1).split():
                if token == '|':
                    continue
                keywords.add(token.split('(', 1)[0])
        return keywords

    def declare_todo_keywords(self, keywords: Iterable[str]) -> List[str]:
        """Write keywords the file does not declare into its #+TODO: line.

        The first declaration line is extended (before its "|" when it has
        one); without one, "#+TODO: TODO <keywords> | DONE" is inserted at
        the top of the buffer. Must be called on a widened document, before
        sections are located: the insertion shifts every offset.

        Returns:
            The keywords that were added

        Raises:
            RegionError: If the declaration position is not visible
        """
        wanted = {k for k in keywords if k}
        missing = sorted(wanted - self._declared_keywords() - DEFAULT_TODO_KEYWORDS)
        self.todo_keywords |= wanted
        if not missing:
            return []

        match = TODO_DECLARATION_PATTERN.search(self._text)
        if match is None:
            self.insert(0, f"#+TODO: TODO {' '.join(missing)} | DONE\n")
        else:
            tokens = match.group(1).split()
            split = tokens.index('|') if '|' in tokens else len(tokens)
            tokens[split:split] = missing
            self.replace(match.start(1), match.end(1), " " + " ".join(tokens))
        logger.debug(f"Declared keywords {', '.join(missing)} in {self.path or '<buffer>'}")
        return missing

    # ----------------------------------------------------------- buffer access

    @property
    def text(self) -> str:
        """The whole buffer, regardless of narrowing."""
        return self._text

    @property
    def visible(self) -> Region:
        return Region(self._begin, self._end)

    @property
    def visible_text(self) -> str:
        return self._text[self._begin:self._end]

    def _check_region(self, start: int, end: int) -> None:
        if not (self._begin <= start <= end <= self._end):
            raise RegionError(start, end, self._begin, self._end)

    def replace(self, start: int, end: int, new_text: str) -> None:
        """Replace [start, end) with new_text; the region must be visible.

        Raises:
            RegionError: If the region is malformed or outside the visible part
        """
        self._check_region(start, end)
        self._text = self._text[:start] + new_text + self._text[end:]
        self._end += len(new_text) - (end - start)
        self.modified = True

    def insert(self, pos: int, new_text: str) -> None:
        self.replace(pos, pos, new_text)

    def delete(self, start: int, end: int) -> None:
        self.replace(start, end, "")

    def _line_end(self, pos: int) -> int:
        index = self._text.find('\n', pos)
        return len(self._text) if index == -1 else index

    def _next_line(self, pos: int) -> int:
        return min(self._line_end(pos) + 1, len(self._text))

    def _line(self, pos: int) -> str:
        return self._text[pos:self._line_end(pos)]

    def _insert_lines(self, pos: int, lines: List[str]) -> int:
        """Insert whole lines at pos; returns the offset of the first inserted line."""
        chunk = "\n".join(lines) + "\n"
        offset = 0
        if pos > 0 and self._text[pos - 1] != '\n':
            chunk = "\n" + chunk
            offset = 1
        self.insert(pos, chunk)
        return pos + offset

    # ------------------------------------------------------------- narrowing

    def narrow(self, start: int, end: int) -> None:
        """Restrict the visible part of the buffer to [start, end)."""
        if not (0 <= start <= end <= len(self._text)):
            raise RegionError(start, end, 0, len(self._text))
        self._begin = start
        self._end = end

    def widen(self) -> None:
        self._begin = 0
        self._end = len(self._text)

    def narrow_to_subtree(self, section: Section) -> None:
        self.narrow(section.start, section.end)

    @contextmanager
    def edit_region(self, section: Optional[Section] = None) -> Iterator["OutlineDocument"]:
        """Narrow to section's subtree for the duration of the block.

        The previous view is restored on exit, including when the block
        raises. Text before the region and after it is not editable inside
        the block, so the saved bounds stay valid.
        """
        saved_begin = self._begin
        saved_tail = len(self._text) - self._end
        if section is not None:
            self.narrow_to_subtree(section)
        try:
            yield self
        finally:
            end = len(self._text) - saved_tail
            if 0 <= saved_begin <= end <= len(self._text):
                self._begin, self._end = saved_begin, end
            else:
                logger.warning("Saved view no longer valid, widening")
                self.widen()

    # -------------------------------------------------------------- sections

    def _subtree_end(self, start: int, level: int) -> int:
        pos = self._next_line(start)
        if pos >= self._end:
            return self._end
        for match in HEADLINE_PATTERN.finditer(self._text, pos, self._end):
            if len(match.group(1)) <= level:
                return match.start()
        return self._end

    def _make_section(self, match: "re.Match") -> Section:
        level = len(match.group(1))
        return Section(
            start=match.start(),
            level=level,
            headline=match.group(2) or "",
            end=self._subtree_end(match.start(), level),
        )

    def section_at(self, pos: int) -> Section:
        """Return the section whose headline starts at pos.

        Raises:
            RegionError: If pos is outside the visible buffer
            OutlineError: If no headline starts at pos
        """
        if not (self._begin <= pos < self._end):
            raise RegionError(pos, pos, self._begin, self._end)
        match = HEADLINE_PATTERN.match(self._text, pos, self._line_end(pos))
        if match is None or (pos > 0 and self._text[pos - 1] != '\n'):
            raise OutlineError(f"No headline at offset {pos}")
        return self._make_section(match)

    def sections(self, scope: Optional[Section] = None) -> List[Section]:
        """All headlines inside scope's subtree (scope excluded), or in the visible buffer."""
        if scope is not None:
            start, end = self._next_line(scope.start), min(scope.end, self._end)
        else:
            start, end = self._begin, self._end
        if start >= end:
            return []
        return [self._make_section(m) for m in HEADLINE_PATTERN.finditer(self._text, start, end)]

    def children(self, scope: Optional[Section] = None) -> List[Section]:
        """Direct children of scope (top-level sections when scope is None)."""
        result: List[Section] = []
        for section in self.sections(scope):
            if result and section.start < result[-1].end:
                continue
            result.append(section)
        return result

    def _own_end(self, section: Section) -> int:
        """End of the section's own text: its first child or its subtree end."""
        start = self._next_line(section.start)
        if start >= section.end:
            return section.end
        match = HEADLINE_PATTERN.search(self._text, start, section.end)
        return match.start() if match else section.end

    def _find_drawer_end(self, pos: int, limit: int) -> Optional[int]:
        while pos < limit:
            line = self._line(pos)
            if DRAWER_END_PATTERN.match(line):
                return pos
            nxt = self._next_line(pos)
            if nxt == pos:
                break
            pos = nxt
        return None

    def _meta(self, section: Section) -> Tuple[int, List[DrawerRegion]]:
        """Parse planning line and drawers following the headline.

        Returns:
            (offset where the body starts, drawers found in order)
        """
        pos = self._next_line(section.start)
        own_end = self._own_end(section)
        drawers: List[DrawerRegion] = []
        first = True
        while pos < own_end:
            line = self._line(pos)
            if first and PLANNING_PATTERN.match(line):
                pos = self._next_line(pos)
                first = False
                continue
            first = False
            match = DRAWER_OPEN_PATTERN.match(line)
            if match is None or match.group(1).upper() == 'END':
                break
            content_start = self._next_line(pos)
            end_line = self._find_drawer_end(content_start, own_end)
            if end_line is None:
                break
            after = self._next_line(end_line)
            drawers.append(DrawerRegion(
                name=match.group(1).upper(),
                start=pos,
                content=Region(content_start, end_line),
                end=after,
            ))
            pos = after
        return min(pos, own_end), drawers

    # -------------------------------------------------------------- headlines

    def split_headline(
        self,
        headline: str,
        keywords: Optional[Iterable[str]] = None,
    ) -> HeadlineParts:
        """Split headline text into keyword, priority cookie, title and tags."""
        known = self.todo_keywords | set(keywords or ())
        text = headline.strip()

        keyword = ""
        first, _, rest = text.partition(' ')
        if first in known or (
            KEYWORD_PATTERN.match(first) and PRIORITY_PATTERN.match(rest.lstrip())
        ):
            keyword, text = first, rest.lstrip()

        priority = ""
        match = PRIORITY_PATTERN.match(text)
        if match:
            priority = match.group(1)
            text = text[match.end():]

        tags: Tuple[str, ...] = ()
        match = TAGS_PATTERN.search(text)
        if match:
            tags = tuple(tag for tag in match.group(1).split(':') if tag)
            text = text[:match.start()]

        return HeadlineParts(keyword=keyword, priority=priority, title=text.strip(), tags=tags)

    @staticmethod
    def join_headline(parts: HeadlineParts) -> str:
        pieces = []
        if parts.keyword:
            pieces.append(parts.keyword)
        if parts.priority:
            pieces.append(f"[#{parts.priority}]")
        if parts.title:
            pieces.append(" ".join(parts.title.split()))
        if parts.tags:
            pieces.append(":" + ":".join(parts.tags) + ":")
        return " ".join(pieces)

    def set_headline(self, section: Section, headline: str) -> Section:
        """Rewrite the headline text, keeping the level; returns the updated section."""
        line = "*" * section.level + " " + " ".join(headline.split())
        self.replace(section.start, self._line_end(section.start), line.rstrip())
        return self.section_at(section.start)

    # ------------------------------------------------------------- properties

    def drawer(self, section: Section, name: str) -> Optional[DrawerRegion]:
        _, drawers = self._meta(section)
        for region in drawers:
            if region.name == name.upper():
                return region
        return None

    def drawer_lines(self, section: Section, name: str) -> List[str]:
        region = self.drawer(section, name)
        if region is None:
            return []
        return self._text[region.content.start:region.content.end].splitlines()

    def replace_drawer(self, section: Section, name: str, lines: List[str]) -> None:
        """Replace a drawer's content; an empty list removes the drawer."""
        region = self.drawer(section, name)
        if not lines:
            if region is not None:
                self.delete(region.start, region.end)
            return
        if region is not None:
            self.replace(region.content.start, region.content.end, "\n".join(lines) + "\n")
            return
        body_start, _ = self._meta(section)
        self._insert_lines(body_start, [f":{name.upper()}:", *lines, ":END:"])

    def delete_drawer(self, section: Section, name: str) -> None:
        self.replace_drawer(section, name, [])

    def properties(self, section: Section) -> Dict[str, str]:
        """Property drawer content as an ordered name -> value mapping."""
        props: Dict[str, str] = {}
        for line in self.drawer_lines(section, 'PROPERTIES'):
            match = PROPERTY_PATTERN.match(line)
            if match and match.group(1).upper() != 'END':
                props[match.group(1)] = match.group(2) or ""
        return props

    def get_property(
        self,
        section: Section,
        name: str,
        default: Optional[str] = None,
    ) -> Optional[str]:
        for key, value in self.properties(section).items():
            if key.upper() == name.upper():
                return value
        return default

    def set_property(self, section: Section, name: str, value: str) -> None:
        """Create or replace a property line (names compare case-insensitively)."""
        text = " ".join(str(value).split())
        new_line = f":{name}: {text}".rstrip()
        region = self.drawer(section, 'PROPERTIES')

        if region is None:
            pos = self._next_line(section.start)
            if pos < self._own_end(section) and PLANNING_PATTERN.match(self._line(pos)):
                pos = self._next_line(pos)
            self._insert_lines(pos, [":PROPERTIES:", new_line, ":END:"])
            return

        pos = region.content.start
        while pos < region.content.end:
            match = PROPERTY_PATTERN.match(self._line(pos))
            if match and match.group(1).upper() == name.upper():
                self.replace(pos, self._line_end(pos), new_line)
                return
            pos = self._next_line(pos)
        self._insert_lines(region.content.end, [new_line])

    def delete_property(self, section: Section, name: str) -> bool:
        region = self.drawer(section, 'PROPERTIES')
        if region is None:
            return False
        pos = region.content.start
        while pos < region.content.end:
            match = PROPERTY_PATTERN.match(self._line(pos))
            if match and match.group(1).upper() == name.upper():
                self.delete(pos, self._next_line(pos))
                return True
            pos = self._next_line(pos)
        return False

    # ------------------------------------------------------------------- body

    def body_region(self, section: Section) -> Region:
        start, _ = self._meta(section)
        end = self._own_end(section)
        return Region(min(start, end), end)

    def get_body(self, section: Section) -> str:
        region = self.body_region(section)
        return self._text[region.start:region.end]

    def replace_body(self, section: Section, body: str) -> None:
        """Replace the section's own text (children are kept).

        Body lines that would parse as headlines are indented by one space.
        """
        lines = []
        for line in body.rstrip('\n').splitlines():
            if HEADLINE_PATTERN.match(line):
                line = " " + line
            lines.append(line)
        new_text = "\n".join(lines) + "\n" if lines else ""

        region = self.body_region(section)
        if new_text and region.start > 0 and self._text[region.start - 1] != '\n':
            new_text = "\n" + new_text
        self.replace(region.start, region.end, new_text)

    # ------------------------------------------------------------ structure

    def insert_child(self, parent: Optional[Section], headline: str) -> Section:
        """Append a new child headline at the end of parent (or of the visible buffer)."""
        level = parent.level + 1 if parent is not None else 1
        pos = parent.end if parent is not None else self._end
        start = self._insert_lines(pos, ["*" * level + " " + " ".join(headline.split())])
        return self.section_at(start)

    def delete_subtree(self, section: Section) -> None:
        self.delete(section.start, section.end)

    # --------------------------------------------------------------- identity

    def identity(self, section: Section) -> Optional[str]:
        props = {k.upper(): v for k, v in self.properties(section).items()}
        for name in IDENTITY_PROPERTIES:
            if props.get(name):
                return props[name]
        return None

    def find_by_identity(
        self,
        identity: str,
        scope: Optional[Section] = None,
        direct: bool = False,
    ) -> Optional[Section]:
        """First section inside scope (or the visible buffer) carrying identity.

        Args:
            identity: Value of CUSTOM_ID (or ID) to look for
            scope: Section whose subtree is searched
            direct: Only consider direct children of scope
        """
        wanted = str(identity)
        candidates = self.children(scope) if direct else self.sections(scope)
        for section in candidates:
            if self.identity(section) == wanted:
                return section
        return None

    def require_identity(self, identity: str, scope: Optional[Section] = None) -> Section:
        """Like find_by_identity, but a missing section is an error.

        Raises:
            IdentityNotFoundError: If no section carries identity
        """
        section = self.find_by_identity(identity, scope)
        if section is None:
            raise IdentityNotFoundError(str(identity), self.path or "document")
        return section

    def snapshot(
        self,
        section: Section,
        keywords: Optional[Iterable[str]] = None,
    ) -> SectionSnapshot:
        """Detach identity, title and properties of a section from the buffer."""
        return SectionSnapshot(
            identity=self.identity(section) or "",
            title=self.split_headline(section.headline, keywords).title,
            properties=self.properties(section),
            position=section.start,
            level=section.level,
        )
