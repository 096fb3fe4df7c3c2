"""Durable storage backends for accounts, sessions, and OAuth links."""

from storage.base import StorageBackend, StorageError
from storage.postgres import PostgresBackend
from storage.valkey import ValkeyBackend
