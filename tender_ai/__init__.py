"""tender-ai: extraction and consolidation pipeline for public tender documents."""
