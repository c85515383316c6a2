"""Persistence layer: repositories for projects, personas and stage runs."""

from workflow_engine.store.base import PersonaRepository, ProjectRepository, StageRunRepository, Store
from workflow_engine.store.database import Database
from workflow_engine.store.memory import InMemoryStore
from workflow_engine.store.models import Document, Persona, Project, StageRun, decode_document, encode_document
from workflow_engine.store.postgres import PostgresStore

__all__ = [
    "Database",
    "Document",
    "InMemoryStore",
    "Persona",
    "PersonaRepository",
    "PostgresStore",
    "Project",
    "ProjectRepository",
    "StageRun",
    "StageRunRepository",
    "Store",
    "decode_document",
    "encode_document",
]
