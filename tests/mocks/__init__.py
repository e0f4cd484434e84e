"""Test mocks for coa-deployer.

Provides in-process implementations for testing:
- FakeCluster / FakeChannel: cluster API and exec websocket
- InMemoryDocumentStore: remote values document store
- RecordingSleep: retry delay recorder
"""

from .cluster import FakeChannel, FakeCluster, InMemoryDocumentStore, RecordingSleep

__all__ = ["FakeChannel", "FakeCluster", "InMemoryDocumentStore", "RecordingSleep"]
