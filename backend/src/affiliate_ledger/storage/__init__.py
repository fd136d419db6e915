"""Persistence layer: models, database sessions and repositories."""
