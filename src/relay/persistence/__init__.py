"""Ingestion buffer and batch writer."""

from relay.persistence.writer import EventPersistenceService

__all__ = ["EventPersistenceService"]
