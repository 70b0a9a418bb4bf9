"""
Receipt Storage Interface

The engine never looks inside a receipt. It uploads the bytes, threads the
returned reference through the Expense, and asks for the image to be
released when the expense is deleted.
"""

from abc import ABC, abstractmethod


class ReceiptStorage(ABC):
    """Abstract interface for receipt image storage."""

    @abstractmethod
    async def upload_receipt(self, data: bytes, filename: str) -> str:
        """
        Store a receipt image.

        Returns:
            An opaque URL/handle for the stored image

        Raises:
            ReceiptStorageError: If the upload fails
        """
        pass

    @abstractmethod
    async def delete_receipt(self, url: str) -> None:
        """
        Release a stored receipt. Unknown references are not an error.

        Raises:
            ReceiptStorageError: If the backend refuses the delete
        """
        pass


class ReceiptStorageError(Exception):
    """Base exception for receipt storage errors."""
    pass


class ReceiptTooLargeError(ReceiptStorageError):
    """Receipt exceeds the configured upload size."""
    pass
