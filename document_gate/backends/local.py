"""
Local file-backed stores.

Development and test stand-ins for the hosted stores:

    {root}/
        documents.jsonl          document metadata rows
        document_access.jsonl    append-only access log
        admin_users.json         {"emails": [...]}
        objects/                 uploaded files

Signed links from LocalObjectStore are HMAC-signed URLs that a local file
server can check with ``verify_signed_url``.
"""

import hashlib
import hmac
import logging
import secrets
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import parse_qs, quote, unquote, urlsplit

import aiofiles.os

from ..exceptions import (
    AccessLogWriteError,
    DocumentLookupError,
    ExternalStoreError,
    SignedLinkError,
    StorageIOError,
)
from ..local.file_ops import (
    append_jsonl,
    read_bytes,
    read_json,
    read_jsonl,
    remove_file,
    write_bytes_atomic,
    write_json_atomic,
    write_jsonl_atomic,
)
from ..protocol import AccessRecord, DocumentRef, ObjectStore, RecordStore, SignedLink

logger = logging.getLogger(__name__)

DOCUMENTS_FILE = "documents.jsonl"
ACCESS_LOG_FILE = "document_access.jsonl"
ADMIN_USERS_FILE = "admin_users.json"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LocalRecordStore(RecordStore):
    """Record store kept in JSON/JSONL files under one directory."""

    def __init__(self, root: Path, clock: Callable[[], datetime] | None = None):
        self.root = Path(root)
        self._clock = clock or _utcnow

    @property
    def documents_path(self) -> Path:
        return self.root / DOCUMENTS_FILE

    @property
    def access_log_path(self) -> Path:
        return self.root / ACCESS_LOG_FILE

    @property
    def admin_users_path(self) -> Path:
        return self.root / ADMIN_USERS_FILE

    async def insert_access_record(self, record: AccessRecord) -> AccessRecord:
        stored = AccessRecord(
            email=record.email,
            accessed_at=record.accessed_at,
            user_agent=record.user_agent,
            ip_address=record.ip_address,
            id=record.id or str(uuid.uuid4()),
        )
        try:
            await append_jsonl(self.access_log_path, stored.to_dict())
        except StorageIOError as e:
            raise AccessLogWriteError(record.email, e) from e
        return stored

    async def latest_document(self) -> DocumentRef | None:
        documents = await self.list_documents()
        return documents[0] if documents else None

    async def list_documents(self) -> list[DocumentRef]:
        try:
            rows = await read_jsonl(self.documents_path)
            documents = [DocumentRef.from_dict(row) for row in rows]
        except (StorageIOError, KeyError, ValueError, TypeError) as e:
            raise DocumentLookupError("list_documents", e) from e
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents

    async def insert_document(self, name: str, storage_path: str, size: int) -> DocumentRef:
        document = DocumentRef(
            id=str(uuid.uuid4()),
            name=name,
            storage_path=storage_path,
            size=size,
            created_at=self._clock(),
        )
        try:
            await append_jsonl(self.documents_path, document.to_dict())
        except StorageIOError as e:
            raise DocumentLookupError("insert_document", e) from e
        return document

    async def delete_document(self, document_id: str) -> bool:
        try:
            rows = await read_jsonl(self.documents_path)
            kept = [row for row in rows if str(row.get("id")) != document_id]
            if len(kept) == len(rows):
                return False
            await write_jsonl_atomic(self.documents_path, kept)
        except StorageIOError as e:
            raise DocumentLookupError("delete_document", e) from e
        return True

    async def list_access_records(self) -> list[AccessRecord]:
        try:
            rows = await read_jsonl(self.access_log_path)
            records = [AccessRecord.from_dict(row) for row in rows]
        except (StorageIOError, KeyError, ValueError, TypeError) as e:
            raise ExternalStoreError("list_access_records", e) from e
        records.sort(key=lambda r: r.accessed_at, reverse=True)
        return records

    async def is_admin(self, email: str) -> bool:
        try:
            data = await read_json(self.admin_users_path) or {}
        except StorageIOError as e:
            raise ExternalStoreError("is_admin", e) from e
        emails = {e.lower() for e in data.get("emails", [])}
        return email.lower() in emails

    async def add_admin(self, email: str) -> None:
        """Add an email to the admin lookup table."""
        data = await read_json(self.admin_users_path) or {}
        emails = list(data.get("emails", []))
        if email.lower() not in {e.lower() for e in emails}:
            emails.append(email)
        await write_json_atomic(self.admin_users_path, {"emails": emails})


class LocalObjectStore(ObjectStore):
    """Files on disk with HMAC-signed download URLs.

    URL format: ``{base_url}/{path}?expires={unix_ts}&signature={hex}``
    """

    def __init__(
        self,
        root: Path,
        base_url: str = "http://localhost:8000/files",
        secret: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self._secret = (secret or secrets.token_hex(32)).encode("utf-8")
        self._clock = clock or _utcnow

    def _full_path(self, path: str) -> Path:
        key = path.lstrip("/").replace("..", "_")
        return self.root / key

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def create_signed_url(self, path: str, ttl_seconds: int) -> SignedLink:
        if not await aiofiles.os.path.exists(self._full_path(path)):
            raise SignedLinkError(path, FileNotFoundError("Object not found"))

        issued_at = self._clock()
        expires = int(issued_at.timestamp()) + ttl_seconds
        signature = self._sign(path, expires)
        url = f"{self.base_url}/{quote(path)}?expires={expires}&signature={signature}"
        return SignedLink(url=url, issued_at=issued_at, ttl=ttl_seconds)

    def verify_signed_url(self, url: str, now: datetime | None = None) -> str | None:
        """Check a URL issued by this store.

        Returns:
            The stored path if the signature is valid and unexpired, else None
        """
        parts = urlsplit(url)
        prefix = urlsplit(self.base_url).path.rstrip("/") + "/"
        if not parts.path.startswith(prefix):
            return None
        path = unquote(parts.path[len(prefix):])

        query = parse_qs(parts.query)
        try:
            expires = int(query["expires"][0])
            signature = query["signature"][0]
        except (KeyError, IndexError, ValueError):
            return None

        if not hmac.compare_digest(signature, self._sign(path, expires)):
            return None
        if (now or self._clock()).timestamp() >= expires:
            return None
        return path

    async def read(self, path: str) -> bytes:
        """Read a stored file, typically after ``verify_signed_url`` accepted it."""
        try:
            return await read_bytes(self._full_path(path))
        except StorageIOError as e:
            raise ExternalStoreError("read", e, path=path) from e

    async def upload(
        self, path: str, data: bytes, content_type: str = "application/pdf"
    ) -> None:
        try:
            await write_bytes_atomic(self._full_path(path), data)
        except StorageIOError as e:
            raise ExternalStoreError("upload", e, path=path) from e
        logger.debug(f"Stored {len(data)} bytes at {path} ({content_type})")

    async def remove(self, paths: Sequence[str]) -> None:
        for path in paths:
            try:
                await remove_file(self._full_path(path))
            except StorageIOError as e:
                raise ExternalStoreError("remove", e, path=path) from e
