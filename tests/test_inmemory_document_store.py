# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Tests for the in-memory document store."""

import threading

import pytest
from bson import ObjectId

from docstore_crud import (
    BulkInsertError,
    CollectionNotFoundError,
    DeleteResult,
    DocumentConversionError,
    DocumentNotFoundError,
    DocumentStore,
    FindOptions,
    InMemoryDocumentStore,
    UnsupportedFilterError,
    UpdateResult,
)


@pytest.fixture
def store():
    """Connected store with an empty "users" collection."""
    store = InMemoryDocumentStore()
    store.connect()
    store.create_collection("users")
    return store


class TestInMemoryLifecycle:
    """Tests for connection and collection management."""

    def test_is_document_store(self):
        assert isinstance(InMemoryDocumentStore(), DocumentStore)

    def test_connect(self):
        store = InMemoryDocumentStore()

        store.connect()

        assert store.connected is True

    def test_disconnect(self):
        store = InMemoryDocumentStore()
        store.connect()

        store.disconnect()

        assert store.connected is False

    def test_create_collection_is_idempotent(self, store):
        store.insert_document("users", {"_id": "a"})

        store.create_collection("users")

        assert store.find_document("users", {"_id": "a"}) == {"_id": "a"}

    def test_list_collections(self, store):
        store.create_collection("products")

        assert sorted(store.list_collections()) == ["products", "users"]

    def test_drop_collection(self, store):
        store.insert_document("users", {"_id": "a"})

        store.drop_collection("users")

        assert store.list_collections() == []
        assert store.query_documents("users", {}) == []

    def test_drop_missing_collection_is_noop(self, store):
        store.drop_collection("missing")

        assert store.list_collections() == ["users"]


class TestInMemoryInsert:
    """Tests for inserting documents."""

    def test_insert_returns_id(self, store):
        assert store.insert_document("users", {"_id": "user-123", "name": "Bob"}) == "user-123"

    def test_insert_generates_object_id(self, store):
        doc_id = store.insert_document("users", {"name": "Alice"})

        assert isinstance(doc_id, ObjectId)
        assert store.find_document("users", {"_id": doc_id})["name"] == "Alice"

    def test_insert_does_not_modify_input(self, store):
        doc = {"name": "Alice"}

        store.insert_document("users", doc)

        assert doc == {"name": "Alice"}

    def test_insert_into_missing_collection_fails(self, store):
        with pytest.raises(CollectionNotFoundError):
            store.insert_document("missing", {"_id": "a"})

        assert "missing" not in store.list_collections()

    def test_insert_overwrites_on_id_collision(self, store):
        store.insert_document("users", {"_id": "a", "name": "first"})
        store.insert_document("users", {"_id": "a", "name": "second"})

        results = store.query_documents("users", {})

        assert results == [{"_id": "a", "name": "second"}]

    def test_array_id_rejected(self, store):
        with pytest.raises(DocumentConversionError):
            store.insert_document("users", {"_id": ["a"]})

    def test_embedded_document_id_accepted(self, store):
        store.insert_document("users", {"_id": {"k": 1}, "name": "x"})

        assert store.find_document("users", {"_id": {"k": 1}})["name"] == "x"

    def test_ids_of_different_types_are_distinct(self, store):
        store.insert_document("users", {"_id": 1, "v": "int"})
        store.insert_document("users", {"_id": True, "v": "bool"})
        store.insert_document("users", {"_id": 1.0, "v": "float"})

        assert len(store.query_documents("users", {})) == 3
        assert store.find_document("users", {"_id": 1})["v"] == "int"
        assert store.find_document("users", {"_id": True})["v"] == "bool"
        assert store.find_document("users", {"_id": 1.0})["v"] == "float"

    def test_embedded_ids_with_different_value_types_are_distinct(self, store):
        store.insert_document("users", {"_id": {"k": 1}})
        store.insert_document("users", {"_id": {"k": True}})

        assert len(store.query_documents("users", {})) == 2

    def test_insert_documents(self, store):
        ids = store.insert_documents("users", [{"_id": "a"}, {"_id": "b"}])

        assert ids == ["a", "b"]
        assert len(store.query_documents("users", {})) == 2

    def test_insert_documents_continues_past_rejected_document(self, store):
        with pytest.raises(BulkInsertError) as exc_info:
            store.insert_documents("users", [{"_id": "a"}, {"_id": ["bad"]}, {"_id": "c"}])

        assert exc_info.value.inserted_ids == ["a", "c"]
        assert [index for index, _ in exc_info.value.failures] == [1]
        assert isinstance(exc_info.value.failures[0][1], DocumentConversionError)
        assert store.query_documents("users", {}) == [{"_id": "a"}, {"_id": "c"}]

    def test_insert_documents_into_missing_collection_fails(self, store):
        with pytest.raises(CollectionNotFoundError):
            store.insert_documents("missing", [{"_id": "a"}])


class TestInMemoryFind:
    """Tests for finding documents."""

    def test_find_document(self, store):
        store.insert_document("users", {"_id": "a", "name": "x"})

        assert store.find_document("users", {"name": "x"}) == {"_id": "a", "name": "x"}

    def test_find_document_not_found(self, store):
        store.insert_document("users", {"_id": "a", "name": "x"})

        with pytest.raises(DocumentNotFoundError):
            store.find_document("users", {"name": "y"})

    def test_find_document_missing_collection(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.find_document("missing", {})

    def test_query_documents_multiple_filters(self, store):
        store.insert_document("users", {"name": "Alice", "age": 30, "city": "NYC"})
        store.insert_document("users", {"name": "Bob", "age": 25, "city": "LA"})
        store.insert_document("users", {"name": "Charlie", "age": 30, "city": "LA"})

        results = store.query_documents("users", {"age": 30, "city": "NYC"})

        assert len(results) == 1
        assert results[0]["name"] == "Alice"

    def test_query_documents_with_in(self, store):
        store.insert_document("users", {"name": "Alice", "city": "NYC"})
        store.insert_document("users", {"name": "Bob", "city": "LA"})
        store.insert_document("users", {"name": "Charlie", "city": "SF"})

        results = store.query_documents("users", {"city": {"$in": ["NYC", "SF"]}})

        assert sorted(doc["name"] for doc in results) == ["Alice", "Charlie"]

    def test_query_documents_missing_collection(self, store):
        assert store.query_documents("missing", {"a": 1}) == []

    def test_unsupported_filter_raises(self, store):
        store.insert_document("users", {"age": 30})

        with pytest.raises(UnsupportedFilterError):
            store.query_documents("users", {"age": {"$gte": 18}})
        with pytest.raises(UnsupportedFilterError):
            store.find_document("users", {"$or": [{"age": 30}]})

    def test_query_with_limit_and_skip(self, store):
        for i in range(10):
            store.insert_document("users", {"_id": i, "type": "test"})

        results = store.query_documents("users", {"type": "test"}, FindOptions(skip=2, limit=3))

        assert [doc["_id"] for doc in results] == [2, 3, 4]

    def test_query_with_zero_limit(self, store):
        store.insert_document("users", {"_id": "a"})

        assert store.query_documents("users", {}, FindOptions(limit=0)) == []

    def test_query_with_sort(self, store):
        store.insert_document("users", {"_id": "a", "age": 30, "name": "b"})
        store.insert_document("users", {"_id": "b", "age": 25})
        store.insert_document("users", {"_id": "c", "age": 30, "name": "a"})
        store.insert_document("users", {"_id": "d"})

        results = store.query_documents("users", {}, FindOptions(sort=(("age", -1), ("name", 1))))

        assert [doc["_id"] for doc in results] == ["c", "a", "b", "d"]

    def test_find_document_with_sort(self, store):
        store.insert_document("users", {"_id": "a", "age": 30})
        store.insert_document("users", {"_id": "b", "age": 25})

        doc = store.find_document("users", {}, FindOptions(sort=(("age", 1),)))

        assert doc["_id"] == "b"

    def test_returned_documents_are_isolated(self, store):
        store.insert_document("users", {
            "_id": "a",
            "metadata": {"tags": ["python"], "scores": {"skill": 85}},
        })

        retrieved = store.find_document("users", {"_id": "a"})
        retrieved["metadata"]["tags"].append("hacker")
        retrieved["metadata"]["scores"]["skill"] = 100

        again = store.find_document("users", {"_id": "a"})
        assert again["metadata"] == {"tags": ["python"], "scores": {"skill": 85}}


class TestInMemoryUpdateDelete:
    """Tests for replacing and deleting documents."""

    def test_update_replaces_first_match(self, store):
        store.insert_document("users", {"_id": "a", "name": "x", "age": 1})

        result = store.update_documents("users", {"_id": "a"}, {"_id": "a", "name": "y"})

        assert result == UpdateResult(matched_count=1, modified_count=1)
        assert store.find_document("users", {"_id": "a"}) == {"_id": "a", "name": "y"}

    def test_update_without_id_keeps_matched_id(self, store):
        store.insert_document("users", {"_id": "a", "name": "x"})

        store.update_documents("users", {"name": "x"}, {"name": "y"})

        assert store.query_documents("users", {}) == [{"name": "y", "_id": "a"}]

    def test_update_with_new_id_moves_document(self, store):
        store.insert_document("users", {"_id": "a", "name": "x"})

        store.update_documents("users", {"_id": "a"}, {"_id": "b", "name": "y"})

        with pytest.raises(DocumentNotFoundError):
            store.find_document("users", {"_id": "a"})
        assert store.find_document("users", {"_id": "b"})["name"] == "y"
        assert len(store.query_documents("users", {})) == 1

    def test_update_only_first_match(self, store):
        store.insert_document("users", {"_id": "a", "group": 1})
        store.insert_document("users", {"_id": "b", "group": 1})

        store.update_documents("users", {"group": 1}, {"group": 2})

        groups = sorted(doc["group"] for doc in store.query_documents("users", {}))
        assert groups == [1, 2]

    def test_update_to_id_of_other_type_keeps_existing_document(self, store):
        store.insert_document("users", {"_id": 1, "name": "int"})
        store.insert_document("users", {"_id": "x", "name": "str"})

        store.update_documents("users", {"_id": "x"}, {"_id": True, "name": "bool"})

        assert store.find_document("users", {"_id": 1})["name"] == "int"
        assert store.find_document("users", {"_id": True})["name"] == "bool"
        assert len(store.query_documents("users", {})) == 2

    def test_update_with_array_id_rejected(self, store):
        store.insert_document("users", {"_id": "a"})

        with pytest.raises(DocumentConversionError):
            store.update_documents("users", {"_id": "a"}, {"_id": ["b"]})

        assert store.query_documents("users", {}) == [{"_id": "a"}]

    def test_update_not_found(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.update_documents("users", {"_id": "nonexistent"}, {"age": 50})

    def test_delete_first_match(self, store):
        store.insert_document("users", {"_id": "a", "group": 1})
        store.insert_document("users", {"_id": "b", "group": 1})

        result = store.delete_documents("users", {"group": 1})

        assert result == DeleteResult(deleted_count=1)
        assert len(store.query_documents("users", {"group": 1})) == 1

    def test_delete_not_found(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.delete_documents("users", {"_id": "nonexistent"})

    def test_delete_missing_collection(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.delete_documents("missing", {})


class TestInMemoryConcurrency:
    """Tests for concurrent access."""

    def test_concurrent_inserts(self, store):
        def worker(offset):
            for i in range(100):
                store.insert_document("users", {"_id": offset * 1000 + i})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.query_documents("users", {})) == 800
