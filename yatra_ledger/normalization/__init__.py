"""Record normalization package."""

from yatra_ledger.normalization.normalizer import (
    RecordNormalizer,
    coerce_amount,
    coerce_category,
    coerce_date,
    coerce_instant,
    coerce_interval,
    coerce_location,
    coerce_number,
)

__all__ = [
    "RecordNormalizer",
    "coerce_amount",
    "coerce_category",
    "coerce_date",
    "coerce_instant",
    "coerce_interval",
    "coerce_location",
    "coerce_number",
]
