"""Policies deciding which attributes survive a semantic-key collision."""

from abc import ABC, abstractmethod
from typing import Dict

from tender_ai.core.exceptions import ConfigurationError
from tender_ai.database.models import Entity
from tender_ai.schemas.enums import ConflictResolution
from tender_ai.schemas.extraction import ExtractedEntity


class ConflictPolicy(ABC):
    """Base strategy for resolving a VALUE_MISMATCH between two extractions."""

    name: str = ""

    @abstractmethod
    def resolve(self, existing: Entity, incoming: ExtractedEntity) -> ConflictResolution:
        """Decide which side's attributes are kept.

        Provenance is merged by the reconciler regardless of the outcome.

        Args:
            existing: The live entity for the semantic key
            incoming: The newly extracted entity

        Returns:
            KEPT_EXISTING or REPLACED_WITH_INCOMING
        """
        pass


class KeepExistingPolicy(ConflictPolicy):
    """First extraction wins."""

    name = "keep_existing"

    def resolve(self, existing: Entity, incoming: ExtractedEntity) -> ConflictResolution:
        return ConflictResolution.KEPT_EXISTING


class HigherConfidencePolicy(ConflictPolicy):
    """Incoming attributes replace existing ones only with strictly higher confidence."""

    name = "higher_confidence"

    def resolve(self, existing: Entity, incoming: ExtractedEntity) -> ConflictResolution:
        if incoming.confidence > (existing.confidence or 0.0):
            return ConflictResolution.REPLACED_WITH_INCOMING
        return ConflictResolution.KEPT_EXISTING


_POLICIES: Dict[str, type] = {
    KeepExistingPolicy.name: KeepExistingPolicy,
    HigherConfidencePolicy.name: HigherConfidencePolicy,
}


def get_policy(name: str) -> ConflictPolicy:
    """Instantiate a policy by its configuration name.

    Raises:
        ConfigurationError: If no policy has that name
    """
    try:
        return _POLICIES[name]()
    except KeyError as e:
        raise ConfigurationError(f"Unknown reconciliation policy: {name}") from e
