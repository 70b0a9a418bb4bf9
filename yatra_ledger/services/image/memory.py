"""In-memory receipt storage for local runs and tests."""

from uuid import uuid4

from yatra_ledger.services.image.interface import ReceiptStorage, ReceiptTooLargeError


class InMemoryReceiptStorage(ReceiptStorage):
    """Keeps receipt bytes in a dict keyed by a memory:// URL."""

    def __init__(self, max_bytes: int = 10 * 1024 * 1024):
        self._max_bytes = max_bytes
        self.receipts: dict[str, bytes] = {}

    async def upload_receipt(self, data: bytes, filename: str) -> str:
        if len(data) > self._max_bytes:
            raise ReceiptTooLargeError(
                f"Receipt is {len(data)} bytes; the limit is {self._max_bytes}"
            )
        url = f"memory://receipts/{uuid4().hex}/{filename}"
        self.receipts[url] = data
        return url

    async def delete_receipt(self, url: str) -> None:
        self.receipts.pop(url, None)
