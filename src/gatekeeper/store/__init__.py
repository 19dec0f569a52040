"""Key store backends."""

from gatekeeper.store.base import KeyStore
from gatekeeper.store.memory import InMemoryKeyStore
from gatekeeper.store.dynamodb import DynamoDBKeyStore

__all__ = ["KeyStore", "InMemoryKeyStore", "DynamoDBKeyStore"]
