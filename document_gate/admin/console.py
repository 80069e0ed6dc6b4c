"""
Admin console operations.

Uploading documents, deleting them, and reviewing the access log. All
operations run on behalf of an explicit AdminSession and are checked
against the admin lookup on every call.
"""

import logging
import uuid
from pathlib import PurePath

from ..access.admin import AdminGuard
from ..access.permissions import Permission
from ..exceptions import ValidationError
from ..identity.types import AdminSession
from ..protocol import AccessRecord, DocumentRef, ObjectStore, RecordStore

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({"pdf"})


def format_size_kb(size: int) -> str:
    """Render a byte count the way the documents table shows it."""
    return f"{round(size / 1024)} KB"


def make_storage_path(file_name: str) -> str:
    """Random storage key that keeps the original extension."""
    extension = PurePath(file_name).suffix.lstrip(".").lower()
    return f"{uuid.uuid4().hex}.{extension}"


class AdminConsole:
    """Document management for a signed-in admin."""

    def __init__(
        self,
        records: RecordStore,
        objects: ObjectStore,
        session: AdminSession,
        guard: AdminGuard | None = None,
    ):
        self.records = records
        self.objects = objects
        self.session = session
        self.guard = guard or AdminGuard(records)

    async def upload_document(self, file_name: str, data: bytes) -> DocumentRef:
        """Upload a PDF and register it as the newest document.

        The file is stored first; the metadata row is only written once the
        upload succeeded.

        Raises:
            ValidationError: If the file is not a PDF or is empty
        """
        await self.guard.require(self.session, Permission.MANAGE_DOCUMENTS)

        extension = PurePath(file_name).suffix.lstrip(".").lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError("file_name", "only PDF documents can be uploaded", file_name)
        if not data:
            raise ValidationError("data", "file is empty", file_name)

        storage_path = make_storage_path(file_name)
        await self.objects.upload(storage_path, data, content_type="application/pdf")
        document = await self.records.insert_document(
            name=file_name, storage_path=storage_path, size=len(data)
        )
        logger.info(
            f"Document uploaded: {file_name} ({format_size_kb(len(data))})",
            extra={"email": self.session.email, "document_id": document.id},
        )
        return document

    async def delete_document(self, document: DocumentRef) -> bool:
        """Remove a document's file and then its metadata row.

        Returns:
            True if the row was deleted, False if it was already gone
        """
        await self.guard.require(self.session, Permission.MANAGE_DOCUMENTS)

        await self.objects.remove([document.storage_path])
        deleted = await self.records.delete_document(document.id)
        logger.info(
            f"Document deleted: {document.name}",
            extra={"email": self.session.email, "document_id": document.id},
        )
        return deleted

    async def list_documents(self) -> list[DocumentRef]:
        """All documents, newest first."""
        await self.guard.require(self.session, Permission.MANAGE_DOCUMENTS)
        return await self.records.list_documents()

    async def list_access_logs(self) -> list[AccessRecord]:
        """All access records, newest first."""
        await self.guard.require(self.session, Permission.VIEW_LOGS)
        return await self.records.list_access_records()
