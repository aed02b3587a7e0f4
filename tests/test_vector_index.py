"""Tests for semantic_search.vector_index."""

import pytest
from unittest.mock import MagicMock, patch

from semantic_search.exceptions import IndexQueryError, IndexWriteError
from semantic_search.models import IndexRecord
from semantic_search.vector_index import (
    ChromaVectorIndex,
    InMemoryVectorIndex,
    matches_filters,
)


def _record(record_id: str, embedding: list[float], sequence: int, **metadata) -> IndexRecord:
    return IndexRecord(
        id=record_id,
        text=f"text of {record_id}",
        metadata=metadata,
        embedding=embedding,
        sequence=sequence,
    )


@pytest.fixture
def records():
    return [
        _record("a", [1.0, 0.0, 0.0], 1, category="bio"),
        _record("b", [0.0, 1.0, 0.0], 2, category="finance"),
        _record("c", [0.7, 0.7, 0.0], 3, category="bio"),
    ]


class TestMatchesFilters:
    def test_no_filter_matches(self):
        assert matches_filters({"category": "bio"}, None)
        assert matches_filters({}, {})

    def test_requires_key_present_and_equal(self):
        assert matches_filters({"category": "bio", "x": "1"}, {"category": "bio"})
        assert not matches_filters({"category": "finance"}, {"category": "bio"})
        assert not matches_filters({"other": "bio"}, {"category": "bio"})

    def test_all_keys_must_match(self):
        metadata = {"category": "bio", "technology": "ai"}
        assert matches_filters(metadata, {"category": "bio", "technology": "ai"})
        assert not matches_filters(metadata, {"category": "bio", "technology": "ml"})


class TestInMemoryVectorIndex:
    def test_query_orders_by_cosine(self, records):
        index = InMemoryVectorIndex()
        index.upsert(records)
        hits = index.query([1.0, 0.0, 0.0], top_k=3)
        assert [hit.id for hit in hits] == ["a", "c", "b"]
        assert hits[0].score == pytest.approx(1.0)
        assert hits[2].score == pytest.approx(0.0)

    def test_top_k_truncates(self, records):
        index = InMemoryVectorIndex()
        index.upsert(records)
        assert len(index.query([1.0, 0.0, 0.0], top_k=2)) == 2

    def test_native_filter(self, records):
        index = InMemoryVectorIndex()
        index.upsert(records)
        hits = index.query([0.0, 1.0, 0.0], top_k=3, where={"category": "bio"})
        assert {hit.id for hit in hits} == {"a", "c"}

    def test_filter_ignored_without_native_support(self, records):
        index = InMemoryVectorIndex(native_filtering=False)
        index.upsert(records)
        assert index.supports_filtering is False
        hits = index.query([0.0, 1.0, 0.0], top_k=3, where={"category": "bio"})
        assert len(hits) == 3

    def test_ties_keep_insertion_order(self):
        index = InMemoryVectorIndex()
        index.upsert([
            _record("late", [1.0, 0.0], 20),
            _record("early", [1.0, 0.0], 10),
        ])
        hits = index.query([1.0, 0.0], top_k=2)
        assert [hit.id for hit in hits] == ["early", "late"]

    def test_empty_index(self):
        assert InMemoryVectorIndex().query([1.0, 0.0], top_k=3) == []

    def test_existing_ids_delete_count(self, records):
        index = InMemoryVectorIndex()
        index.upsert(records)
        assert index.existing_ids(["a", "zzz"]) == {"a"}
        index.delete(["a", "zzz"])
        assert index.count() == 2
        assert index.existing_ids(["a"]) == set()


class TestChromaVectorIndex:
    def test_upsert_and_query(self, chroma_index, records):
        chroma_index.upsert(records)
        assert chroma_index.count() == 3

        hits = chroma_index.query([1.0, 0.0, 0.0], top_k=2)
        assert [hit.id for hit in hits] == ["a", "c"]
        assert hits[0].score == pytest.approx(1.0, abs=1e-4)
        assert hits[0].score >= hits[1].score

    def test_sequence_round_trips_and_is_hidden(self, chroma_index, records):
        chroma_index.upsert(records)
        hit = chroma_index.query([0.0, 1.0, 0.0], top_k=1)[0]
        assert hit.id == "b"
        assert hit.sequence == 2
        assert hit.metadata == {"category": "finance"}

    def test_metadata_values_are_strings(self, chroma_index):
        chroma_index.upsert([_record("n", [1.0, 0.0], 1, year="2024", flag="true")])
        hit = chroma_index.query([1.0, 0.0], top_k=1)[0]
        assert hit.metadata == {"year": "2024", "flag": "true"}
        assert all(isinstance(v, str) for v in hit.metadata.values())

    def test_single_key_filter(self, chroma_index, records):
        chroma_index.upsert(records)
        hits = chroma_index.query([0.0, 1.0, 0.0], top_k=3, where={"category": "bio"})
        assert {hit.id for hit in hits} == {"a", "c"}

    def test_multi_key_filter(self, chroma_index):
        chroma_index.upsert([
            _record("x", [1.0, 0.0], 1, category="concept", technology="ai"),
            _record("y", [1.0, 0.1], 2, category="concept", technology="ml"),
        ])
        hits = chroma_index.query(
            [1.0, 0.0], top_k=5, where={"category": "concept", "technology": "ml"}
        )
        assert [hit.id for hit in hits] == ["y"]

    def test_filter_without_matches(self, chroma_index, records):
        chroma_index.upsert(records)
        assert chroma_index.query([1.0, 0.0, 0.0], top_k=3, where={"category": "law"}) == []

    def test_query_empty_collection(self, chroma_index):
        assert chroma_index.query([1.0, 0.0, 0.0], top_k=3) == []

    def test_existing_ids(self, chroma_index, records):
        chroma_index.upsert(records)
        assert chroma_index.existing_ids(["a", "c", "missing"]) == {"a", "c"}
        assert chroma_index.existing_ids([]) == set()

    def test_query_failure_is_typed(self, chroma_index, records):
        chroma_index.upsert(records)
        collection = MagicMock(wraps=chroma_index._collection)
        collection.query.side_effect = RuntimeError("down")
        with patch.object(chroma_index, "_collection", collection):
            with pytest.raises(IndexQueryError) as exc_info:
                chroma_index.query([1.0, 0.0, 0.0], top_k=1)
        assert "down" in str(exc_info.value)


def _failing_collection(real_collection, fail_delete: bool = False) -> MagicMock:
    """Wrap a real collection so the second upsert call fails."""
    calls = {"n": 0}

    def upsert(**kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("disk full")
        return real_collection.upsert(**kwargs)

    collection = MagicMock(wraps=real_collection)
    collection.upsert.side_effect = upsert
    if fail_delete:
        collection.delete.side_effect = RuntimeError("locked")
    return collection


class TestChromaWriteFailure:
    def test_failed_batch_is_rolled_back(self, chroma_index, records):
        chroma_index.batch_size = 2
        collection = _failing_collection(chroma_index._collection)
        with patch.object(chroma_index, "_collection", collection):
            with pytest.raises(IndexWriteError) as exc_info:
                chroma_index.upsert(records)

        assert exc_info.value.succeeded_ids == []
        assert exc_info.value.failed_ids == ["a", "b", "c"]
        assert chroma_index.count() == 0

    def test_reports_ids_left_when_rollback_fails(self, chroma_index, records):
        chroma_index.batch_size = 2
        collection = _failing_collection(chroma_index._collection, fail_delete=True)
        with patch.object(chroma_index, "_collection", collection):
            with pytest.raises(IndexWriteError) as exc_info:
                chroma_index.upsert(records)

        assert exc_info.value.succeeded_ids == ["a", "b"]
        assert exc_info.value.failed_ids == ["c"]
        assert chroma_index.count() == 2
