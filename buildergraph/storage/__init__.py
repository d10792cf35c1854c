"""Relational persistence for records, publish operations and analyses."""

from buildergraph.storage.db import Base, Database
from buildergraph.storage.repository import RecordStore

__all__ = ["Base", "Database", "RecordStore"]
