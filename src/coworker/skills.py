"""
Skills discovery.

A skill is a directory holding a ``SKILL.md`` file whose front matter names and describes it::

    ---
    name: pdf
    description: Extract text and tables from PDF files
    ---

The agent never executes skills itself; their name/description pairs only feed the system prompt.
"""

import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Protocol,
)

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
)

logger = logging.getLogger(__name__)


class SkillInfo(BaseModel):
    """Name and one-line description of a discovered skill."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str


class SkillsProvider(Protocol):
    """Anything that can enumerate skills and say where they live."""

    def list_skills(self) -> List[SkillInfo]: ...

    def skills_root_path(self) -> str: ...


class DirectorySkills:
    """Skills stored as ``<root>/<skill>/SKILL.md``."""

    def __init__(self, root: str | Path):
        self._root = Path(root).expanduser()

    def skills_root_path(self) -> str:
        return str(self._root)

    def list_skills(self) -> List[SkillInfo]:
        if not self._root.is_dir():
            logger.debug("Skills directory %s does not exist", self._root)
            return []

        skills: List[SkillInfo] = []
        for skill_dir in sorted(p for p in self._root.iterdir() if p.is_dir()):
            skill_file = skill_dir / "SKILL.md"
            if not skill_file.is_file():
                continue
            try:
                meta = _read_front_matter(skill_file.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as exc:
                logger.warning("Could not read %s: %s", skill_file, exc)
                continue
            skills.append(
                SkillInfo(
                    name=str(meta.get("name") or skill_dir.name),
                    description=" ".join(str(meta.get("description") or "").split()),
                )
            )
        return skills


class StaticSkills:
    """Fixed skills snapshot, handy for tests and embedding."""

    def __init__(self, skills: List[SkillInfo], root: str = "/skills"):
        self._skills = list(skills)
        self._root = root

    def list_skills(self) -> List[SkillInfo]:
        return list(self._skills)

    def skills_root_path(self) -> str:
        return self._root


def _read_front_matter(text: str) -> Dict[str, Any]:
    """Parse the YAML mapping between leading ``---`` fences; raises ``yaml.YAMLError``."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}
    block: List[str] = []
    for line in lines[1:]:
        if line.strip() == "---":
            break
        block.append(line)
    meta = yaml.safe_load("\n".join(block))
    return meta if isinstance(meta, dict) else {}
