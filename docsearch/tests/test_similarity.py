"""Tests for similarity metrics, ranking and search filters."""

import math

import numpy as np
import pytest

from docsearch.errors import EmbeddingDimensionMismatchError, InvalidInputError
from docsearch.storage.filters import SearchFilter
from docsearch.storage.similarity import (
    Metric,
    as_matrix,
    cosine_similarity,
    l2_distance,
    passes_threshold,
    rank_order,
    score_matrix,
    threshold_mask,
)

from conftest import make_document


class TestMetrics:
    def test_cosine_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_cosine_orthogonal_and_opposite(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_cosine_is_clamped(self):
        value = cosine_similarity([1e-3, 1e-3, 1e-3], [1e-3, 1e-3, 1e-3])
        assert -1.0 <= value <= 1.0

    def test_cosine_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_l2_distance(self):
        assert l2_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)
        assert l2_distance([1.0, 1.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(EmbeddingDimensionMismatchError):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])
        with pytest.raises(EmbeddingDimensionMismatchError):
            l2_distance([1.0], [1.0, 2.0])

    def test_metric_parse(self):
        assert Metric.parse(None) is Metric.COSINE
        assert Metric.parse(None, Metric.L2) is Metric.L2
        assert Metric.parse("L2") is Metric.L2
        with pytest.raises(InvalidInputError):
            Metric.parse("dot")


class TestThresholdAndRanking:
    def test_cosine_threshold_is_inclusive_lower_bound(self):
        assert passes_threshold(Metric.COSINE, 0.7, 0.7)
        assert not passes_threshold(Metric.COSINE, 0.69, 0.7)
        assert passes_threshold(Metric.COSINE, -0.5, None)

    def test_l2_threshold_is_upper_bound(self):
        assert passes_threshold(Metric.L2, 0.5, 0.5)
        assert not passes_threshold(Metric.L2, 0.51, 0.5)

    def test_threshold_mask_over_scores(self):
        scores = np.array([0.2, 0.7, 0.9])

        assert threshold_mask(Metric.COSINE, scores, 0.7).tolist() == [False, True, True]
        assert threshold_mask(Metric.L2, scores, 0.7).tolist() == [True, True, False]
        assert threshold_mask(Metric.COSINE, scores, None).all()

    def test_rank_cosine_descending_with_stable_ties(self):
        order = rank_order(Metric.COSINE, np.array([0.5, 0.9, 0.5]), np.array([0, 1, 2]), limit=10)

        assert order.tolist() == [1, 0, 2]

    def test_ties_follow_insertion_sequence_not_position(self):
        order = rank_order(Metric.COSINE, np.array([0.5, 0.5]), np.array([7, 3]), limit=10)

        assert order.tolist() == [1, 0]

    def test_rank_l2_ascending(self):
        order = rank_order(Metric.L2, np.array([3.0, 0.1, 1.0]), np.arange(3), limit=2)

        assert order.tolist() == [1, 2]

    def test_rank_respects_limit(self):
        scores = np.sin(np.arange(20, dtype=np.float64))
        assert len(rank_order(Metric.COSINE, scores, np.arange(20), limit=5)) == 5


class TestScoreMatrix:
    def test_scores_every_row(self):
        matrix = as_matrix([[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]], 2)

        cosine = score_matrix(Metric.COSINE, [1.0, 0.0], matrix)
        assert cosine.tolist() == pytest.approx([1.0, 0.0, 0.0])

        l2 = score_matrix(Metric.L2, [1.0, 0.0], matrix)
        assert l2.tolist() == pytest.approx([0.0, math.sqrt(2), 1.0])

    def test_empty_matrix_keeps_dimension(self):
        matrix = as_matrix([], 4)

        assert matrix.shape == (0, 4)
        assert score_matrix(Metric.COSINE, [1.0, 0.0, 0.0, 0.0], matrix).shape == (0,)

    def test_query_width_must_match(self):
        with pytest.raises(EmbeddingDimensionMismatchError):
            score_matrix(Metric.COSINE, [1.0, 0.0], as_matrix([[1.0, 0.0, 0.0]], 3))


class TestSearchFilter:
    def test_empty_dict_means_no_filter(self):
        assert SearchFilter.from_dict(None) is None
        assert SearchFilter.from_dict({}) is None
        assert SearchFilter.from_dict({"keywords": []}) is None

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidInputError, match="Unknown filter fields"):
            SearchFilter.from_dict({"author": "someone"})

    def test_matches_document_fields(self):
        document = make_document("doc-1", metadata={"team": "ops", "labels": ["a", "b"]})
        assert SearchFilter.from_dict({"file_type": "txt"}).matches_document(document)
        assert not SearchFilter.from_dict({"file_type": "pdf"}).matches_document(document)
        assert SearchFilter.from_dict({"document_ids": ["doc-1"]}).matches_document(document)
        assert not SearchFilter.from_dict({"document_ids": ["doc-2"]}).matches_document(document)

    def test_metadata_containment(self):
        document = make_document("doc-1", metadata={"team": "ops", "labels": ["a", "b"]})

        assert SearchFilter.from_dict({"metadata": {"team": "ops"}}).matches_document(document)
        assert SearchFilter.from_dict({"metadata": {"labels": ["b"]}}).matches_document(document)
        assert not SearchFilter.from_dict({"metadata": {"labels": ["c"]}}).matches_document(document)
        assert not SearchFilter.from_dict({"metadata": {"owner": "x"}}).matches_document(document)

    def test_keywords_match_case_insensitively(self):
        search_filter = SearchFilter.from_dict({"keywords": "Fitzer"})

        assert search_filter.matches_chunk("Invoice from FITZER GmbH")
        assert not search_filter.matches_chunk("Invoice from Telekom")

    def test_to_sql_builds_parameterized_clauses(self):
        search_filter = SearchFilter.from_dict(
            {"category": "legal", "keywords": ["50%_off"], "metadata": {"team": "ops"}}
        )
        clauses, params = search_filter.to_sql()

        assert "d.tags ->> 'category' = %(f_category)s" in clauses
        assert params["f_category"] == "legal"
        assert params["f_kw0"] == "%50\\%\\_off%"
        assert params["f_metadata"] == '{"team": "ops"}'
