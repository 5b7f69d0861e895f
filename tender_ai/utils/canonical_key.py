"""Stable identifiers for semantic keys and provenance deduplication."""

import hashlib
from typing import Optional


def slugify(text: str, prefix: Optional[str] = None) -> str:
    """Normalize text into a lowercase snake_case slug.

    Args:
        text: Text to normalize (e.g., "Prazo de Entrega")
        prefix: Optional prefix (e.g., "deadline")

    Returns:
        str: Slug (e.g., "deadline_prazo_de_entrega")
    """
    if not text:
        return ""

    normalized = text.lower().replace(' ', '_').replace('-', '_').replace('/', '_')
    normalized = ''.join(c if c.isalnum() or c == '_' else '_' for c in normalized)

    while '__' in normalized:
        normalized = normalized.replace('__', '_')

    normalized = normalized.strip('_')

    return f"{prefix}_{normalized}" if prefix else normalized


def deduplication_key(entity_type: str, normalized_value: str, context: Optional[str] = None) -> str:
    """Hash of type + normalized value (+ context), 16 hex chars."""
    parts = [entity_type, normalized_value]
    if context:
        parts.append(context)
    return hashlib.sha256(":".join(parts).encode()).hexdigest()[:16]
