"""Receipt image services package."""

from yatra_ledger.services.image.interface import (
    ReceiptStorage,
    ReceiptStorageError,
    ReceiptTooLargeError,
)
from yatra_ledger.services.image.memory import InMemoryReceiptStorage
from yatra_ledger.services.image.cloudinary_service import (
    CloudinaryReceiptStorage,
    public_id_from_url,
)

__all__ = [
    "CloudinaryReceiptStorage",
    "InMemoryReceiptStorage",
    "ReceiptStorage",
    "ReceiptStorageError",
    "ReceiptTooLargeError",
    "public_id_from_url",
]
