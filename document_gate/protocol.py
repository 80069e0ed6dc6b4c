"""
Core types and abstract collaborator interfaces for the document gate.

The gate itself owns very little state: visitor access records, document
metadata and the files live in hosted stores. This module defines the
records exchanged with those stores and the contracts every adapter
must implement.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

# Sentinel recorded when the visitor's public address could not be determined
UNKNOWN_ADDRESS = "unknown"

# Local persistence key for the gate token
GATE_TOKEN_KEY = "document_access_email"

# Validity window of a signed document link (10 minutes)
DEFAULT_LINK_TTL_SECONDS = 600


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# =============================================================================
# Core Data Types
# =============================================================================


@dataclass
class AccessRecord:
    """An audit-log row: who opened the document and when.

    Created once per successful gate submission. Records are append-only;
    nothing in this package mutates or deletes them.
    """

    email: str
    accessed_at: datetime
    user_agent: str
    ip_address: str = UNKNOWN_ADDRESS
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "email": self.email,
            "accessed_at": self.accessed_at.isoformat(),
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccessRecord":
        """Create from dictionary."""
        return cls(
            email=data["email"],
            accessed_at=_parse_timestamp(data["accessed_at"]),
            user_agent=data.get("user_agent") or "",
            ip_address=data.get("ip_address") or UNKNOWN_ADDRESS,
            id=str(data["id"]) if data.get("id") is not None else None,
        )


@dataclass
class DocumentRef:
    """Metadata row for an uploaded document.

    The current document is the row with the greatest ``created_at``.
    """

    id: str
    name: str
    storage_path: str
    size: int
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "storage_path": self.storage_path,
            "size": self.size,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DocumentRef":
        """Create from dictionary.

        Accepts ``file_path`` as an alias of ``storage_path`` so rows written
        by older tooling still load.
        """
        return cls(
            id=str(data["id"]),
            name=data["name"],
            storage_path=data.get("storage_path") or data["file_path"],
            size=int(data.get("size", 0)),
            created_at=_parse_timestamp(data["created_at"]),
        )


@dataclass
class SignedLink:
    """A time-limited URL granting read access to a stored file.

    Never persisted. Treated as invalid once ``now - issued_at >= ttl``.
    """

    url: str
    issued_at: datetime
    ttl: int = DEFAULT_LINK_TTL_SECONDS

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.ttl)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the link has reached the end of its validity window."""
        now = now or datetime.now(UTC)
        return (now - self.issued_at).total_seconds() >= self.ttl


@dataclass
class LocalGateToken:
    """Client-side marker that this visitor already passed the gate.

    A convenience cache, not a credential: it only decides whether the
    email form is shown again.
    """

    email: str


# =============================================================================
# Collaborator Interfaces
# =============================================================================


class RecordStore(ABC):
    """Hosted table store holding documents, access logs and admin rows.

    Implementations raise ``ExternalStoreError`` subclasses on failure.
    """

    @abstractmethod
    async def insert_access_record(self, record: AccessRecord) -> AccessRecord:
        """Append an access record.

        No uniqueness constraint: the same email may be recorded any
        number of times.

        Raises:
            AccessLogWriteError: If the row was not durably written
        """
        ...

    @abstractmethod
    async def latest_document(self) -> DocumentRef | None:
        """Get the document with the greatest created_at, if any.

        Raises:
            DocumentLookupError: If the query fails
        """
        ...

    @abstractmethod
    async def list_documents(self) -> list[DocumentRef]:
        """List all documents, newest first."""
        ...

    @abstractmethod
    async def insert_document(self, name: str, storage_path: str, size: int) -> DocumentRef:
        """Record metadata for a newly uploaded document."""
        ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document row.

        Returns:
            True if deleted, False if not found
        """
        ...

    @abstractmethod
    async def list_access_records(self) -> list[AccessRecord]:
        """List all access records, newest first."""
        ...

    @abstractmethod
    async def is_admin(self, email: str) -> bool:
        """Check the admin lookup table for an email."""
        ...


class ObjectStore(ABC):
    """Hosted file store that can issue signed download URLs."""

    @abstractmethod
    async def create_signed_url(self, path: str, ttl_seconds: int) -> SignedLink:
        """Create a signed URL for a stored file.

        Raises:
            SignedLinkError: If the store refuses or the call fails
        """
        ...

    @abstractmethod
    async def upload(
        self, path: str, data: bytes, content_type: str = "application/pdf"
    ) -> None:
        """Store a file under ``path``."""
        ...

    @abstractmethod
    async def remove(self, paths: Sequence[str]) -> None:
        """Remove stored files."""
        ...


class GateTokenStore(ABC):
    """Client-local key/value persistence with no expiry."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class AddressLookup(ABC):
    """Best-effort lookup of the visitor's public network address."""

    @abstractmethod
    async def lookup(self) -> str:
        """Return the address, or ``UNKNOWN_ADDRESS``.

        Implementations must never raise.
        """
        ...
