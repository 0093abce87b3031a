"""
Tool catalog: one name-indexed view over every tool provider.

Providers are layered by precedence (lower wins).  Local tools use :data:`LOCAL_PRECEDENCE`
and MCP servers :data:`MCP_PRECEDENCE`, so a remote tool can never shadow a local one.  Each
collision is logged and kept in :attr:`ToolCatalog.collisions`.
"""

import logging
from dataclasses import dataclass
from typing import (
    Dict,
    Iterable,
    List,
    Tuple,
)

from coworker.core.capability import ToolProvider
from coworker.core.errors import ToolNotFound
from coworker.core.prompt import build_system_prompt
from coworker.core.schema import ToolDefinition
from coworker.skills import (
    SkillInfo,
    SkillsProvider,
)

logger = logging.getLogger(__name__)

LOCAL_PRECEDENCE = 0
MCP_PRECEDENCE = 10


@dataclass(frozen=True)
class CatalogEntry:
    """A tool definition and the provider that runs it."""

    definition: ToolDefinition
    provider: ToolProvider
    precedence: int

    @property
    def source(self) -> str:
        return self.provider.source


@dataclass(frozen=True)
class Collision:
    """Two providers offered the same tool name; *kept* won."""

    name: str
    kept: str
    dropped: str


class ToolCatalog:
    """Read-mostly registry shared by every agent run."""

    def __init__(self, skills: SkillsProvider | None = None):
        self._providers: List[Tuple[int, ToolProvider]] = []
        self._registered: List[CatalogEntry] = []
        self._entries: Dict[str, CatalogEntry] = {}
        self._skills = skills
        self.collisions: List[Collision] = []

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def add_provider(self, provider: ToolProvider, precedence: int) -> None:
        """Attach *provider* and pull its tools in."""
        self._providers.append((precedence, provider))
        self.refresh()

    def register(
        self, definition: ToolDefinition, provider: ToolProvider, precedence: int = LOCAL_PRECEDENCE
    ) -> None:
        """Register a single definition served by *provider*."""
        self._registered.append(CatalogEntry(definition, provider, precedence))
        self.refresh()

    def refresh(self) -> None:
        """
        Rebuild the table from individual registrations and every provider.

        The new table is swapped in with a single assignment, so concurrent runs never observe a
        half-built catalog.
        """
        candidates: List[CatalogEntry] = list(self._registered)
        for precedence, provider in self._providers:
            candidates.extend(
                CatalogEntry(definition, provider, precedence)
                for definition in provider.list_tools()
            )

        entries: Dict[str, CatalogEntry] = {}
        collisions: List[Collision] = []
        # Stable sort keeps registration order among equal precedences.
        for entry in sorted(candidates, key=lambda e: e.precedence):
            self._insert(entries, collisions, entry)
        self._entries = entries
        self.collisions = collisions
        logger.info(
            "Tool catalog refreshed: %d tools from %d providers (%d collisions)",
            len(entries),
            len(self._providers),
            len(collisions),
        )

    @staticmethod
    def _insert(
        entries: Dict[str, CatalogEntry], collisions: List[Collision], entry: CatalogEntry
    ) -> None:
        name = entry.definition.name
        existing = entries.get(name)
        if existing is None:
            entries[name] = entry
            return

        if entry.precedence < existing.precedence:
            kept, dropped = entry, existing
        else:
            kept, dropped = existing, entry
        entries[name] = kept
        collisions.append(Collision(name=name, kept=kept.source, dropped=dropped.source))
        logger.warning(
            "Tool name collision on '%s': keeping %s, dropping %s", name, kept.source, dropped.source
        )

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def list_tools(self, allowed: Iterable[str] | None = None) -> List[ToolDefinition]:
        """Definitions in registration order, restricted to *allowed* when given."""
        entries = self._entries
        if allowed is None:
            return [entry.definition for entry in entries.values()]
        allowed_set = set(allowed)
        return [entry.definition for name, entry in entries.items() if name in allowed_set]

    def resolve(self, name: str) -> CatalogEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFound(name)
        return entry

    def names(self, source: str | None = None) -> List[str]:
        """Tool names, optionally only those served by *source*."""
        return [
            name
            for name, entry in self._entries.items()
            if source is None or entry.source == source
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------ #
    # Prompt support
    # ------------------------------------------------------------------ #
    def describe_skills(self) -> List[SkillInfo]:
        """Snapshot of discovered skills (name/description only, nothing is executed)."""
        if self._skills is None:
            return []
        return self._skills.list_skills()

    def system_prompt(self) -> str:
        """System prompt text including the dynamic skills section."""
        root = self._skills.skills_root_path() if self._skills is not None else ""
        return build_system_prompt(self.describe_skills(), root)
