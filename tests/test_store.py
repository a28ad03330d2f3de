import pytest

from powerhub.db import make_engine
from powerhub.errors import StoreError
from powerhub.store import NODES, RELAY_COMMANDS, DocumentStore


def test_load_missing_document_returns_empty(store):
    assert store.load(NODES) == {"nodes": {}}


def test_save_then_load_from_fresh_store(store, engine):
    store.save(RELAY_COMMANDS, {"nodes": {"n1": {"state": "on", "timestamp": 1}}})

    reopened = DocumentStore(engine)
    assert reopened.load(RELAY_COMMANDS) == {"nodes": {"n1": {"state": "on", "timestamp": 1}}}


def test_save_replaces_whole_document(store):
    store.save(NODES, {"nodes": {"a": {"name": "a"}, "b": {"name": "b"}}})
    store.save(NODES, {"nodes": {"b": {"name": "b"}}})

    assert store.load(NODES) == {"nodes": {"b": {"name": "b"}}}


def test_domains_are_independent(store):
    store.save(NODES, {"nodes": {"a": {"name": "a"}}})
    assert store.load(RELAY_COMMANDS) == {"nodes": {}}


def test_saved_document_is_detached_from_caller(store):
    doc = {"nodes": {"a": {"name": "a"}}}
    store.save(NODES, doc)
    doc["nodes"]["a"]["name"] = "changed"

    assert store.load(NODES)["nodes"]["a"]["name"] == "a"


def test_unwritable_database_raises_store_error():
    broken = DocumentStore(make_engine("sqlite:////nonexistent-powerhub-dir/powerhub.db"))
    with pytest.raises(StoreError):
        broken.save(NODES, {"nodes": {}})
