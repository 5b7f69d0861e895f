"""Builds the section hierarchy batch by batch.

Sections proposed for a batch get fresh ids first; parent numbers are then
resolved against the same batch and, failing that, against sections created
by earlier batches of the run. A parent that is still unknown when the batch
ends leaves the section as a root: it is never re-parented later.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from tender_ai.database.models import Section
from tender_ai.repositories.section_repository import SectionRepository
from tender_ai.schemas.extraction import ExtractedSection
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class SectionBatchResult:
    sections: List[Section] = field(default_factory=list)
    orphans: int = 0


def order_by_level(sections: List[ExtractedSection]) -> List[ExtractedSection]:
    """Stable sort, outermost level (CHAPTER) first."""
    return sorted(sections, key=lambda s: s.level.order)


class SectionArena:
    """Run-scoped index of created sections, keyed by id and by number."""

    def __init__(self, section_repo: SectionRepository, document_id: UUID):
        self.section_repo = section_repo
        self.document_id = document_id
        self._ids_by_number: Dict[str, UUID] = {}
        self._rows: List[Dict[str, Any]] = []

    @property
    def sections(self) -> List[Dict[str, Any]]:
        """Every section created so far, as ``{id, number, title, level}``."""
        return [
            {"id": str(row["id"]), "number": row["number"], "title": row["title"], "level": row["level"]}
            for row in self._rows
        ]

    def section_ids_by_page(self) -> Dict[int, List[str]]:
        by_page: Dict[int, List[str]] = {}
        for row in self._rows:
            by_page.setdefault(row["page_number"], []).append(str(row["id"]))
        return by_page

    def resolve(
        self, sections: List[ExtractedSection]
    ) -> tuple[List[Dict[str, Any]], int]:
        """Assign ids and resolve parents for one batch without persisting.

        Returns:
            Rows in insertion order (parents before children) and the
            orphan count
        """
        ordered = order_by_level(sections)
        ids = [uuid.uuid4() for _ in ordered]

        batch_ids: Dict[str, UUID] = {}
        for section, section_id in zip(ordered, ids):
            if section.number and section.number not in batch_ids:
                batch_ids[section.number] = section_id

        rows: List[Dict[str, Any]] = []
        orphans = 0
        for section, section_id in zip(ordered, ids):
            parent_id: Optional[UUID] = None
            if section.parent_number:
                parent_id = batch_ids.get(section.parent_number) or self._ids_by_number.get(section.parent_number)
                if parent_id == section_id:
                    parent_id = None
                if parent_id is None:
                    orphans += 1
                    LOGGER.debug(
                        f"Unresolved parent {section.parent_number!r} for section "
                        f"{section.number!r} {section.title!r}; keeping it as a root"
                    )
            rows.append({
                "id": section_id,
                "document_id": self.document_id,
                "level": section.level.value,
                "number": section.number,
                "title": section.title,
                "summary": section.summary,
                "parent_id": parent_id,
                "page_number": section.page_number,
                "line_start": section.line_start,
                "line_end": section.line_end,
            })

        return self._parents_first(rows), orphans

    @staticmethod
    def _parents_first(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Order rows so a parent from the same batch is inserted before its children.

        Cycles between sections of one batch are broken by dropping the
        parent link of the remaining members.
        """
        pending = list(rows)
        batch_ids = {row["id"] for row in rows}
        emitted: set = set()
        ordered: List[Dict[str, Any]] = []

        while pending:
            progress = False
            remaining = []
            for row in pending:
                parent_id = row["parent_id"]
                if parent_id is None or parent_id not in batch_ids or parent_id in emitted:
                    ordered.append(row)
                    emitted.add(row["id"])
                    progress = True
                else:
                    remaining.append(row)
            if not progress:
                LOGGER.warning(f"Breaking parent cycle among {len(remaining)} sections")
                for row in remaining:
                    row["parent_id"] = None
            pending = remaining

        return ordered

    async def add_batch(self, sections: List[ExtractedSection], batch_number: int) -> SectionBatchResult:
        """Persist one batch's sections and register their numbers.

        Args:
            sections: Sections proposed by the oracle for the batch
            batch_number: Batch being processed (for logging)

        Returns:
            SectionBatchResult with the created rows and orphan count
        """
        if not sections:
            return SectionBatchResult()

        rows, orphans = self.resolve(sections)
        created = await self.section_repo.create_many(rows)

        for row in rows:
            self._rows.append(row)
            # Numbers repeat across chapters; the most recent one wins
            if row["number"]:
                self._ids_by_number[row["number"]] = row["id"]

        if orphans:
            LOGGER.info(
                f"Batch {batch_number}: {orphans} sections kept as roots (unresolved parent)",
                extra={"document_id": str(self.document_id), "orphans": orphans},
            )
        return SectionBatchResult(sections=created, orphans=orphans)
