"""In-memory attachment storage."""

from dataclasses import dataclass

from ledgermock.core.crypto import SecureHash
from ledgermock.core.ports import AttachmentStoragePort


@dataclass(frozen=True)
class StoredAttachment:
    """Attachment bytes with their upload metadata."""

    id: SecureHash
    data: bytes
    uploader: str
    filename: str | None


class MockAttachmentStorage(AttachmentStoragePort):
    """Attachments keyed by the SHA-256 of their content."""

    def __init__(self) -> None:
        self._files: dict[SecureHash, StoredAttachment] = {}

    def import_attachment(
        self, data: bytes, uploader: str = "test", filename: str | None = None
    ) -> SecureHash:
        attachment_id = SecureHash.sha256(data)
        if attachment_id not in self._files:
            self._files[attachment_id] = StoredAttachment(attachment_id, data, uploader, filename)
        return attachment_id

    def open_attachment(self, attachment_id: SecureHash) -> bytes | None:
        stored = self._files.get(attachment_id)
        return stored.data if stored is not None else None

    def has_attachment(self, attachment_id: SecureHash) -> bool:
        return attachment_id in self._files

    def metadata(self, attachment_id: SecureHash) -> StoredAttachment | None:
        return self._files.get(attachment_id)

    def __len__(self) -> int:
        return len(self._files)
