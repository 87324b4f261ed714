"""Tests for deterministic bucketing and variant selection."""

import hashlib
import math

import pytest

from app.core.exceptions import ValidationError
from app.models.orm.assignment import Variant
from app.services.bucketing import BUCKET_COUNT, assign_variant, compute_bucket


class TestComputeBucket:
    def test_deterministic(self):
        """Same experiment + user always lands in the same bucket."""
        assert compute_bucket("exp-1", "user-1") == compute_bucket("exp-1", "user-1")

    def test_matches_sha256_of_separated_input(self):
        """Stable across processes: derived only from the SHA-256 digest."""
        digest = hashlib.sha256(b"exp-1\x00user-1").digest()
        expected = int.from_bytes(digest[:8], "big") % BUCKET_COUNT
        assert compute_bucket("exp-1", "user-1") == expected

    def test_in_range(self):
        for i in range(1000):
            assert 0 <= compute_bucket("exp", f"user_{i}") < BUCKET_COUNT

    def test_empty_strings_are_valid(self):
        bucket = compute_bucket("", "")
        assert 0 <= bucket < BUCKET_COUNT
        assert compute_bucket("", "") == bucket

    def test_separator_prevents_concatenation_collisions(self):
        digest_ab_c = hashlib.sha256(b"ab\x00c").digest()
        digest_a_bc = hashlib.sha256(b"a\x00bc").digest()
        assert digest_ab_c != digest_a_bc
        assert compute_bucket("ab", "c") == int.from_bytes(digest_ab_c[:8], "big") % BUCKET_COUNT
        assert compute_bucket("a", "bc") == int.from_bytes(digest_a_bc[:8], "big") % BUCKET_COUNT

    def test_different_experiment_different_bucket(self):
        """Same user in different experiments is bucketed independently."""
        differ = any(
            compute_bucket("exp_a", f"user_{i}") != compute_bucket("exp_b", f"user_{i}")
            for i in range(100)
        )
        assert differ


class TestAssignVariant:
    def test_threshold(self):
        assert assign_variant(2999, 30) == Variant.A
        assert assign_variant(3000, 30) == Variant.B

    def test_fractional_percentage(self):
        assert assign_variant(1233, 12.34) == Variant.A
        assert assign_variant(1234, 12.34) == Variant.B

    def test_zero_percent_always_b(self):
        assert assign_variant(0, 0) == Variant.B
        assert assign_variant(BUCKET_COUNT - 1, 0) == Variant.B

    def test_hundred_percent_always_a(self):
        assert assign_variant(0, 100) == Variant.A
        assert assign_variant(BUCKET_COUNT - 1, 100) == Variant.A

    @pytest.mark.parametrize("percentage", [-0.01, 100.01, math.nan, math.inf, "50", None, True])
    def test_rejects_malformed_percentage(self, percentage):
        with pytest.raises(ValidationError):
            assign_variant(10, percentage)

    @pytest.mark.parametrize("bucket", [-1, BUCKET_COUNT])
    def test_rejects_out_of_range_bucket(self, bucket):
        with pytest.raises(ValidationError):
            assign_variant(bucket, 50)


class TestSplit:
    def _share_of_a(self, percentage, n=10000):
        variants = [assign_variant(compute_bucket("exp-split", f"user_{i}"), percentage) for i in range(n)]
        return variants.count(Variant.A) / n

    def test_thirty_percent_split(self):
        """30/70 split converges to ~30% A over 10k users."""
        assert 0.27 <= self._share_of_a(30) <= 0.33

    def test_roughly_even_split(self):
        assert 0.45 <= self._share_of_a(50) <= 0.55

    def test_boundaries_over_population(self):
        assert self._share_of_a(0, n=2000) == 0.0
        assert self._share_of_a(100, n=2000) == 1.0
