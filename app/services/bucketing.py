"""Deterministic A/B bucketing.

Assignment is hash-based: given the same (experiment_id, user_id) pair the
hash always lands in the same bucket, in every process and after every
restart. The bucket is then compared against the experiment's variant A
share to pick a variant.

Both functions are pure. They only decide a user's *first* assignment; once
stored, the assignment row is what evaluation returns.
"""

import hashlib
import math
from numbers import Real

from app.core.exceptions import ValidationError
from app.models.orm.assignment import Variant

# 10000 buckets gives two-decimal percentage precision (12.34%)
BUCKET_COUNT = 10_000

# Keeps ("ab", "c") and ("a", "bc") apart
_SEPARATOR = "\x00"


def compute_bucket(experiment_id: str, user_id: str) -> int:
    """Map an (experiment, user) pair to a stable bucket in [0, BUCKET_COUNT).

    Uses the SHA-256 hash of ``experiment_id + "\\x00" + user_id``; the
    first 8 bytes are read as an unsigned big-endian integer and reduced
    modulo ``BUCKET_COUNT``. Empty strings are valid input.
    """
    hash_input = f"{experiment_id}{_SEPARATOR}{user_id}"
    hash_bytes = hashlib.sha256(hash_input.encode("utf-8")).digest()
    return int.from_bytes(hash_bytes[:8], "big") % BUCKET_COUNT


def assign_variant(bucket: int, variant_a_percentage: float) -> Variant:
    """Pick a variant for a bucket given the share of traffic that sees A.

    Buckets below ``variant_a_percentage`` scaled to ``BUCKET_COUNT`` get
    A, the rest get B, so 0 always yields B and 100 always yields A.

    Raises:
        ValidationError: the percentage is not a number in [0, 100], or the
            bucket is outside [0, BUCKET_COUNT).
    """
    if isinstance(variant_a_percentage, bool) or not isinstance(variant_a_percentage, Real):
        raise ValidationError(f"Variant A percentage must be a number, got {variant_a_percentage!r}")
    if math.isnan(variant_a_percentage) or not 0 <= variant_a_percentage <= 100:
        raise ValidationError(
            f"Variant A percentage must be between 0 and 100, got {variant_a_percentage}"
        )
    if not 0 <= bucket < BUCKET_COUNT:
        raise ValidationError(f"Bucket must be in [0, {BUCKET_COUNT}), got {bucket}")

    threshold = round(variant_a_percentage * BUCKET_COUNT / 100)
    return Variant.A if bucket < threshold else Variant.B
