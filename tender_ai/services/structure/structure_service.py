"""Read-side queries over a document's section hierarchy."""

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Section
from tender_ai.repositories.section_repository import SectionRepository
from tender_ai.schemas.document import StructureStats
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


def build_tree(sections: Iterable[Section]) -> List[Dict[str, Any]]:
    """Nest sections under their parents.

    Sections whose parent is missing from the input are treated as roots.
    """
    sections = list(sections)
    nodes: Dict[UUID, Dict[str, Any]] = {}
    for section in sections:
        nodes[section.id] = {
            "id": str(section.id),
            "level": section.level,
            "number": section.number,
            "title": section.title,
            "page_number": section.page_number,
            "children": [],
        }

    roots: List[Dict[str, Any]] = []
    for section in sections:
        node = nodes[section.id]
        parent = nodes.get(section.parent_id) if section.parent_id else None
        if parent is None:
            roots.append(node)
        else:
            parent["children"].append(node)
    return roots


def max_depth(sections: Iterable[Section]) -> int:
    """Depth of the deepest section (a root alone has depth 1, none is 0)."""
    parents = {section.id: section.parent_id for section in sections}
    depths: Dict[UUID, int] = {}

    def depth(section_id: UUID) -> int:
        # Walk up iteratively; parent chains are acyclic once persisted
        chain = []
        current: Optional[UUID] = section_id
        while current is not None and current in parents and current not in depths:
            chain.append(current)
            current = parents[current]
            if current in chain:
                break
        base = depths.get(current, 0) if current is not None else 0
        for offset, node in enumerate(reversed(chain), start=1):
            depths[node] = base + offset
        return depths[section_id]

    return max((depth(section_id) for section_id in parents), default=0)


class StructureService:
    """Hierarchy tree, breadcrumbs and statistics for a document outline."""

    def __init__(self, session: AsyncSession):
        self.section_repo = SectionRepository(session)

    async def get_tree(self, document_id: UUID) -> List[Dict[str, Any]]:
        sections = await self.section_repo.get_by_document(document_id)
        return build_tree(sections)

    async def get_breadcrumb(self, section_id: UUID) -> List[Section]:
        """Path from the root down to ``section_id`` (inclusive)."""
        path: List[Section] = []
        seen: set = set()
        current = await self.section_repo.get_by_id(section_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append(current)
            current = await self.section_repo.get_by_id(current.parent_id) if current.parent_id else None
        return list(reversed(path))

    async def get_by_page(self, document_id: UUID, page_number: int) -> List[Section]:
        return await self.section_repo.get_by_page(document_id, page_number)

    async def get_stats(self, document_id: UUID) -> StructureStats:
        sections = await self.section_repo.get_by_document(document_id)
        by_level: Dict[str, int] = {}
        for section in sections:
            by_level[section.level] = by_level.get(section.level, 0) + 1
        return StructureStats(
            total_sections=len(sections),
            by_level=by_level,
            max_depth=max_depth(sections),
        )
