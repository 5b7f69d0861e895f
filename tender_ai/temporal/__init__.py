"""Temporal workflows, activities and worker for document processing."""
