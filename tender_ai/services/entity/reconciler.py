"""Entity reconciliation: one live entity per (document, semantic key).

A new semantic key creates an entity. A known key is a collision: the two
values are compared through their normalized forms, equal or acceptably
close values only merge provenance, and real disagreements are recorded as
conflicts and settled by the configured ``ConflictPolicy``.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Optional
from uuid import UUID

from tender_ai.database.models import Entity, EntityConflict
from tender_ai.repositories.entity_repository import EntityConflictRepository, EntityRepository
from tender_ai.schemas.enums import ConflictResolution, ConflictType
from tender_ai.schemas.extraction import ExtractedEntity
from tender_ai.services.entity.conflict_policies import ConflictPolicy, KeepExistingPolicy
from tender_ai.utils.logging import get_logger
from tender_ai.utils.normalizers import normalize_value

LOGGER = get_logger(__name__)

EXCERPT_MAX_CHARS = 200
NUMERIC_TOLERANCE = 0.001


@dataclass
class ReconciliationOutcome:
    entity: Entity
    created: bool
    conflict: Optional[EntityConflict] = None


@dataclass
class BatchReconciliationResult:
    created: int = 0
    updated: int = 0
    conflicts_resolved: int = 0
    conflicts: List[EntityConflict] = field(default_factory=list)
    entities: List[Entity] = field(default_factory=list)


def _as_float(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def is_acceptable_variation(a: str, b: str) -> bool:
    """Whether two differing normalized values still denote the same thing.

    Numbers within 0.1% relative tolerance, or strings equal once every
    non-alphanumeric character is removed, are accepted.
    """
    x, y = _as_float(a), _as_float(b)
    if x is not None and y is not None:
        scale = max(abs(x), abs(y))
        return scale == 0 or abs(x - y) <= NUMERIC_TOLERANCE * scale

    left, right = _alnum(a), _alnum(b)
    return bool(left) and left == right


def _alnum(value: str) -> str:
    return re.sub(r"[^0-9A-Za-z]", "", value or "").upper()


def provenance_entry(page_number: int, excerpt: str, confidence: float) -> Dict[str, Any]:
    return {
        "page_number": page_number,
        "excerpt": (excerpt or "")[:EXCERPT_MAX_CHARS],
        "confidence": confidence,
    }


def merge_provenance(existing: List[Dict[str, Any]], incoming: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Append incoming entries not already present by (page_number, excerpt)."""
    merged = list(existing or [])
    seen = {(p.get("page_number"), p.get("excerpt")) for p in merged}
    for entry in incoming:
        key = (entry.get("page_number"), entry.get("excerpt"))
        if key not in seen:
            seen.add(key)
            merged.append(entry)
    return merged


def merge_related_keys(existing: List[Dict[str, Any]], incoming: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    merged = list(existing or [])
    seen = {(r.get("semantic_key"), r.get("relationship")) for r in merged}
    for entry in incoming:
        key = (entry.get("semantic_key"), entry.get("relationship"))
        if key not in seen:
            seen.add(key)
            merged.append(entry)
    return merged


def metadata_differs(existing: Dict[str, Any], incoming: Dict[str, Any]) -> bool:
    if existing.get("kind") != incoming.get("kind"):
        return False
    return any(
        value is not None and value != {} and existing.get(key) != value
        for key, value in incoming.items()
    )


def fill_missing_metadata(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Incoming fields fill only keys the existing metadata lacks."""
    merged = dict(existing or {})
    for key, value in incoming.items():
        if merged.get(key) in (None, "", {}) and value is not None:
            merged[key] = value
    return merged


def entity_snapshot(entity: Any) -> Dict[str, Any]:
    """JSON-safe view of either side of a conflict."""
    if isinstance(entity, ExtractedEntity):
        return {
            "type": entity.type.value,
            "name": entity.name,
            "raw_value": entity.raw_value,
            "metadata": entity.metadata.model_dump(mode="json"),
            "confidence": entity.confidence,
            "page_number": entity.page_number,
        }
    return {
        "id": str(entity.id),
        "type": entity.type,
        "name": entity.name,
        "raw_value": entity.raw_value,
        "normalized_value": entity.normalized_value,
        "metadata": entity.entity_metadata,
        "confidence": entity.confidence,
    }


class EntityReconciler:
    """Creates, merges and audits entities as batches arrive."""

    def __init__(
        self,
        entity_repo: EntityRepository,
        conflict_repo: EntityConflictRepository,
        policy: Optional[ConflictPolicy] = None,
    ):
        self.entity_repo = entity_repo
        self.conflict_repo = conflict_repo
        self.policy = policy or KeepExistingPolicy()

    @staticmethod
    def _section_uuid(section_id: Optional[str], valid_section_ids: Optional[Collection[str]]) -> Optional[UUID]:
        if not section_id:
            return None
        if valid_section_ids is not None and section_id not in valid_section_ids:
            return None
        try:
            return UUID(section_id)
        except ValueError:
            return None

    async def _related_keys(self, document_id: UUID, extracted: ExtractedEntity) -> List[Dict[str, Any]]:
        if not extracted.related_keys:
            return []
        known = await self.entity_repo.get_by_keys(
            document_id, [r.semantic_key for r in extracted.related_keys]
        )
        ids = {entity.semantic_key: str(entity.id) for entity in known}
        return [
            {
                "semantic_key": r.semantic_key,
                "relationship": r.relationship.value,
                "entity_id": ids.get(r.semantic_key),
            }
            for r in extracted.related_keys
            if r.semantic_key != extracted.semantic_key
        ]

    async def reconcile(
        self,
        document_id: UUID,
        extracted: ExtractedEntity,
        valid_section_ids: Optional[Collection[str]] = None,
    ) -> ReconciliationOutcome:
        """Create or merge one extracted entity.

        Args:
            document_id: Owning document
            extracted: Entity parsed from the oracle output
            valid_section_ids: Ids a ``section_id`` may reference; others are dropped

        Returns:
            ReconciliationOutcome with the live entity and any recorded conflict
        """
        metadata = extracted.metadata.model_dump(mode="json")
        normalized = normalize_value(extracted.type.value, extracted.raw_value, metadata)
        provenance = [provenance_entry(extracted.page_number, extracted.excerpt, extracted.confidence)]
        related = await self._related_keys(document_id, extracted)

        existing = await self.entity_repo.get_by_key(document_id, extracted.semantic_key)
        if existing is None:
            entity = await self.entity_repo.create(
                document_id=document_id,
                type=extracted.type.value,
                name=extracted.name,
                raw_value=extracted.raw_value,
                normalized_value=normalized,
                semantic_key=extracted.semantic_key,
                section_id=self._section_uuid(extracted.section_id, valid_section_ids),
                entity_metadata=metadata,
                obligation_details=(
                    extracted.obligation_details.model_dump(mode="json")
                    if extracted.obligation_details else None
                ),
                related_keys=related,
                confidence=extracted.confidence,
                provenance=provenance,
            )
            return ReconciliationOutcome(entity=entity, created=True)

        return await self._merge(document_id, existing, extracted, normalized, metadata, provenance, related, valid_section_ids)

    async def _merge(
        self,
        document_id: UUID,
        existing: Entity,
        extracted: ExtractedEntity,
        normalized: str,
        metadata: Dict[str, Any],
        provenance: List[Dict[str, Any]],
        related: List[Dict[str, Any]],
        valid_section_ids: Optional[Collection[str]],
    ) -> ReconciliationOutcome:
        fields: Dict[str, Any] = {
            "provenance": merge_provenance(existing.provenance, provenance),
            "related_keys": merge_related_keys(existing.related_keys, related),
        }
        conflict_type: Optional[ConflictType] = None
        resolution: Optional[ConflictResolution] = None
        snapshot = entity_snapshot(existing)

        same_value = normalized == existing.normalized_value or is_acceptable_variation(
            normalized, existing.normalized_value
        )
        if not same_value:
            conflict_type = ConflictType.VALUE_MISMATCH
            resolution = self.policy.resolve(existing, extracted)
            if resolution == ConflictResolution.REPLACED_WITH_INCOMING:
                fields.update(
                    type=extracted.type.value,
                    name=extracted.name,
                    raw_value=extracted.raw_value,
                    normalized_value=normalized,
                    entity_metadata=metadata,
                    confidence=extracted.confidence,
                )
                if extracted.obligation_details:
                    fields["obligation_details"] = extracted.obligation_details.model_dump(mode="json")
                section_uuid = self._section_uuid(extracted.section_id, valid_section_ids)
                if section_uuid:
                    fields["section_id"] = section_uuid
        elif metadata_differs(existing.entity_metadata or {}, metadata):
            conflict_type = ConflictType.METADATA_CONFLICT
            resolution = ConflictResolution.MERGED
            fields["entity_metadata"] = fill_missing_metadata(existing.entity_metadata, metadata)

        if existing.section_id is None and "section_id" not in fields:
            section_uuid = self._section_uuid(extracted.section_id, valid_section_ids)
            if section_uuid:
                fields["section_id"] = section_uuid

        entity = await self.entity_repo.save(existing, **fields)

        conflict = None
        if conflict_type is not None:
            conflict = await self.conflict_repo.create(
                document_id=document_id,
                semantic_key=extracted.semantic_key,
                existing_entity=snapshot,
                incoming_entity=entity_snapshot(extracted),
                conflict_type=conflict_type.value,
                resolution=resolution.value,
            )
            LOGGER.info(
                f"Conflict on {extracted.semantic_key}: {conflict_type.value} -> {resolution.value}",
                extra={"document_id": str(document_id), "policy": self.policy.name},
            )
        return ReconciliationOutcome(entity=entity, created=False, conflict=conflict)

    async def reconcile_batch(
        self,
        document_id: UUID,
        entities: List[ExtractedEntity],
        valid_section_ids: Optional[Collection[str]] = None,
    ) -> BatchReconciliationResult:
        """Reconcile a batch's entities in order."""
        result = BatchReconciliationResult()
        for extracted in entities:
            outcome = await self.reconcile(document_id, extracted, valid_section_ids)
            result.entities.append(outcome.entity)
            if outcome.created:
                result.created += 1
            else:
                result.updated += 1
            if outcome.conflict is not None:
                result.conflicts_resolved += 1
                result.conflicts.append(outcome.conflict)
        return result

    async def resolve_pending_relationships(self, document_id: UUID, final: bool = False) -> Dict[str, int]:
        """Fill ``entity_id`` of related keys that now exist.

        Args:
            document_id: Document whose entities are scanned
            final: Drop keys that are still unknown (end of run)

        Returns:
            Dict with ``resolved`` and ``dropped`` counts
        """
        entities = await self.entity_repo.get_by_document(document_id)
        ids = {entity.semantic_key: str(entity.id) for entity in entities}
        resolved = dropped = 0
        changed = False

        for entity in entities:
            related = entity.related_keys or []
            if all(r.get("entity_id") for r in related):
                continue
            updated = []
            for ref in related:
                if ref.get("entity_id"):
                    updated.append(ref)
                elif ref.get("semantic_key") in ids:
                    updated.append({**ref, "entity_id": ids[ref["semantic_key"]]})
                    resolved += 1
                elif final:
                    dropped += 1
                    LOGGER.warning(
                        f"Dropping unresolved relationship {entity.semantic_key} -> {ref.get('semantic_key')}",
                        extra={"document_id": str(document_id)},
                    )
                else:
                    updated.append(ref)
            if updated != related:
                entity.related_keys = updated
                changed = True

        if changed:
            await self.entity_repo.commit()
        return {"resolved": resolved, "dropped": dropped}
