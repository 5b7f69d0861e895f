"""Per-run memory carried from one batch to the next.

The context is what lets batch N reuse semantic keys and parent sections
discovered in batches 1..N-1. It lives for one processing run only.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple


@dataclass
class EntitySummary:
    type: str
    semantic_key: str
    name: str


@dataclass
class SectionSummary:
    number: Optional[str]
    title: str
    level: str


@dataclass
class ExtractionContext:
    """Accumulated knowledge of a single document run.

    Every ``add_*`` method is idempotent: adding the same key, section or
    risk twice leaves the context unchanged.
    """

    entity_limit: int = 50
    semantic_keys: Set[str] = field(default_factory=set)
    entity_summaries: List[EntitySummary] = field(default_factory=list)
    sections: List[SectionSummary] = field(default_factory=list)
    timeline_event_keys: Set[str] = field(default_factory=set)
    risk_ids: Set[str] = field(default_factory=set)
    _section_keys: Set[Tuple[Optional[str], str]] = field(default_factory=set, repr=False)

    def add_entity(self, entity_type: str, semantic_key: str, name: str) -> None:
        if semantic_key in self.semantic_keys:
            return
        self.semantic_keys.add(semantic_key)
        self.entity_summaries.append(EntitySummary(entity_type, semantic_key, name))

    def add_section(self, number: Optional[str], title: str, level: str) -> None:
        key = (number, title)
        if key in self._section_keys:
            return
        self._section_keys.add(key)
        self.sections.append(SectionSummary(number, title, level))

    def add_timeline_key(self, key: str) -> None:
        if key:
            self.timeline_event_keys.add(key)

    def add_risk(self, category: str, title: str) -> None:
        self.risk_ids.add(f"{category}:{title}")

    def has_semantic_key(self, semantic_key: str) -> bool:
        return semantic_key in self.semantic_keys

    def section_dicts(self) -> List[Dict[str, Optional[str]]]:
        return [
            {"number": s.number, "title": s.title, "level": s.level}
            for s in self.sections
        ]

    def to_prompt(self) -> str:
        """Render the context block appended to the Stage 2 prompt.

        Returns:
            Markdown text, or an empty string when nothing is known yet
        """
        parts: List[str] = []

        if self.entity_summaries:
            total = len(self.entity_summaries)
            lines = [
                f"## ENTITIES ALREADY EXTRACTED ({total} total)",
                "Reuse these semantic keys when the same entity appears again; do not repeat them as new entities.",
                "",
            ]
            lines.extend(
                f"- [{e.type}] {e.semantic_key}: {e.name}"
                for e in self.entity_summaries[: self.entity_limit]
            )
            if total > self.entity_limit:
                lines.append(f"... and {total - self.entity_limit} more")
            parts.append("\n".join(lines))

        if self.sections:
            lines = ["## DOCUMENT STRUCTURE", ""]
            lines.extend(
                f"- [{s.level}] {s.number or ''} {s.title}".replace("  ", " ")
                for s in self.sections
            )
            parts.append("\n".join(lines))

        if self.timeline_event_keys:
            lines = [
                f"## TIMELINE EVENTS ALREADY CREATED ({len(self.timeline_event_keys)} total)",
                "Do not create duplicate events for these keys.",
                "",
            ]
            lines.extend(f"- {key}" for key in sorted(self.timeline_event_keys))
            parts.append("\n".join(lines))

        return "\n\n".join(parts)
