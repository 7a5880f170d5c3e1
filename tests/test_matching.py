"""Tests for embedding distance, confidence and best-match selection."""

import pytest

from recognition_platform.errors import EmbeddingDimensionError
from recognition_platform.recognition.matching import (
    distance_to_confidence,
    euclidean_distance,
    match_embedding,
)
from tests.fakes import identity, vec


class TestDistance:
    """euclidean_distance and distance_to_confidence."""

    def test_distance_is_euclidean(self):
        assert euclidean_distance(vec(0, 0, 0, 0), vec(3, 4, 0, 0)) == pytest.approx(5.0)

    def test_identical_vectors_have_zero_distance(self):
        assert euclidean_distance(vec(1, 2, 3, 4), vec(1, 2, 3, 4)) == 0.0

    def test_mismatched_lengths_raise(self):
        with pytest.raises(EmbeddingDimensionError):
            euclidean_distance(vec(0, 0, 0, 0), vec(0, 0, 0))

    def test_confidence_is_one_minus_distance(self):
        assert distance_to_confidence(0.3) == pytest.approx(0.7)

    def test_confidence_is_clamped_at_zero(self):
        assert distance_to_confidence(1.7) == 0.0

    @pytest.mark.parametrize('distance', [0.0, 0.25, 0.9, 1.0, 4.0])
    def test_confidence_in_unit_interval(self, distance):
        assert 0.0 <= distance_to_confidence(distance) <= 1.0


class TestMatchEmbedding:
    """match_embedding selection policy."""

    def test_single_identity_above_threshold(self):
        alice = identity('Alice', 0, 0, 0, 0)
        match, confidence = match_embedding(vec(0.3, 0, 0, 0), [alice], 0.6)
        assert match is alice
        assert confidence == pytest.approx(0.7)

    def test_best_confidence_wins_regardless_of_order(self):
        near = identity('Near', 0.1, 0, 0, 0)
        far = identity('Far', 0.3, 0, 0, 0)

        for known in ([near, far], [far, near]):
            match, confidence = match_embedding(vec(0, 0, 0, 0), known, 0.6)
            assert match is near
            assert confidence == pytest.approx(0.9)

    def test_threshold_is_exclusive(self):
        alice = identity('Alice', 0.5, 0, 0, 0)
        match, confidence = match_embedding(vec(0, 0, 0, 0), [alice], 0.5)
        assert match is None
        assert confidence == pytest.approx(0.5)

    def test_below_threshold_reports_best_confidence(self):
        known = [identity('A', 0.8, 0, 0, 0), identity('B', 0.5, 0, 0, 0)]
        match, confidence = match_embedding(vec(0, 0, 0, 0), known, 0.6)
        assert match is None
        assert confidence == pytest.approx(0.5)

    def test_tie_keeps_first_identity(self):
        first = identity('First', 0.2, 0, 0, 0)
        second = identity('Second', 0.2, 0, 0, 0)
        match, _ = match_embedding(vec(0, 0, 0, 0), [first, second], 0.6)
        assert match is first

    def test_empty_snapshot(self):
        assert match_embedding(vec(0, 0, 0, 0), [], 0.6) == (None, 0.0)

    def test_mismatched_identity_does_not_block_others(self):
        alice = identity('Alice', 0, 0, 0, 0)
        short = identity('Short', 0, 0, 0)

        for known in ([alice, short], [short, alice]):
            match, confidence = match_embedding(vec(0.3, 0, 0, 0), known, 0.6)
            assert match is alice
            assert confidence == pytest.approx(0.7)

    def test_no_comparable_identity_raises(self):
        with pytest.raises(EmbeddingDimensionError):
            match_embedding(vec(0, 0, 0), [identity('Alice', 0, 0, 0, 0)], 0.6)

    def test_far_faces_have_zero_confidence(self):
        match, confidence = match_embedding(vec(5, 0, 0, 0), [identity('A', 0, 0, 0, 0)], 0.6)
        assert match is None
        assert confidence == 0.0

    def test_known_embeddings_are_read_only(self):
        alice = identity('Alice', 1, 2, 3, 4)
        with pytest.raises(ValueError):
            alice.embedding[0] = 9.0
