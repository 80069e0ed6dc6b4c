"""
Shared test configuration and fixtures.

Provides in-memory fakes for every collaborator of the access controller
and a fake timer so renewal tests never actually wait.
"""

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import pytest

from document_gate.exceptions import AccessLogWriteError, DocumentLookupError, SignedLinkError
from document_gate.local.token_store import MemoryGateTokenStore
from document_gate.network.address import StaticAddressLookup
from document_gate.protocol import (
    AccessRecord,
    DocumentRef,
    ObjectStore,
    RecordStore,
    SignedLink,
)

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeTimer:
    """Virtual clock plus a sleep that only returns when the clock is advanced."""

    def __init__(self, start: datetime = BASE_TIME):
        self.start = start
        self.elapsed = 0.0
        self.sleep_calls: list[float] = []
        self._sleepers: list[tuple[float, asyncio.Future]] = []

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    async def sleep(self, seconds: float) -> None:
        self.sleep_calls.append(seconds)
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.elapsed + seconds, future))
        await future

    async def advance(self, seconds: float) -> None:
        """Move the clock forward and wake every sleeper that is now due."""
        # Let freshly started tasks register their sleeps at the current time
        await settle()
        self.elapsed += seconds
        due = [(t, f) for t, f in self._sleepers if t <= self.elapsed]
        self._sleepers = [(t, f) for t, f in self._sleepers if t > self.elapsed]
        for _, future in due:
            if not future.done():
                future.set_result(None)
        await settle()

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, f in self._sleepers if not f.done())


async def settle(rounds: int = 10) -> None:
    """Let background tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeRecordStore(RecordStore):
    """In-memory record store with switchable failures."""

    def __init__(self, clock=None):
        self._clock = clock or (lambda: datetime.now(UTC))
        self.access_records: list[AccessRecord] = []
        self.documents: list[DocumentRef] = []
        self.admins: set[str] = set()
        self.insert_error: Exception | None = None
        self.latest_error: Exception | None = None
        self.latest_calls = 0
        self.latest_gate: asyncio.Event | None = None
        self._next_id = 1

    def add_document(self, storage_path: str, name: str = "portfolio.pdf", size: int = 2048,
                     created_at: datetime | None = None) -> DocumentRef:
        document = DocumentRef(
            id=str(self._next_id),
            name=name,
            storage_path=storage_path,
            size=size,
            created_at=created_at or self._clock(),
        )
        self._next_id += 1
        self.documents.append(document)
        return document

    async def insert_access_record(self, record: AccessRecord) -> AccessRecord:
        if self.insert_error is not None:
            raise AccessLogWriteError(record.email, self.insert_error)
        self.access_records.append(record)
        return record

    async def latest_document(self) -> DocumentRef | None:
        self.latest_calls += 1
        if self.latest_gate is not None:
            await self.latest_gate.wait()
        if self.latest_error is not None:
            raise DocumentLookupError("latest_document", self.latest_error)
        if not self.documents:
            return None
        return max(self.documents, key=lambda d: d.created_at)

    async def list_documents(self) -> list[DocumentRef]:
        return sorted(self.documents, key=lambda d: d.created_at, reverse=True)

    async def insert_document(self, name: str, storage_path: str, size: int) -> DocumentRef:
        return self.add_document(storage_path, name=name, size=size)

    async def delete_document(self, document_id: str) -> bool:
        before = len(self.documents)
        self.documents = [d for d in self.documents if d.id != document_id]
        return len(self.documents) < before

    async def list_access_records(self) -> list[AccessRecord]:
        return sorted(self.access_records, key=lambda r: r.accessed_at, reverse=True)

    async def is_admin(self, email: str) -> bool:
        return email.lower() in self.admins


class FakeObjectStore(ObjectStore):
    """In-memory object store recording every signing request."""

    def __init__(self, clock=None):
        self._clock = clock or (lambda: datetime.now(UTC))
        self.objects: dict[str, bytes] = {}
        self.signed_calls: list[tuple[str, int]] = []
        self.sign_error: Exception | None = None

    async def create_signed_url(self, path: str, ttl_seconds: int) -> SignedLink:
        self.signed_calls.append((path, ttl_seconds))
        if self.sign_error is not None:
            raise SignedLinkError(path, self.sign_error)
        count = len(self.signed_calls)
        return SignedLink(
            url=f"https://files.example.com/{path}?token=t{count}",
            issued_at=self._clock(),
            ttl=ttl_seconds,
        )

    async def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        self.objects[path] = data

    async def remove(self, paths: Sequence[str]) -> None:
        for path in paths:
            self.objects.pop(path, None)


class FailingAddressLookup(StaticAddressLookup):
    """Lookup that breaks its contract and raises."""

    async def lookup(self) -> str:
        raise ConnectionError("lookup service down")


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def records(timer):
    return FakeRecordStore(clock=timer.now)


@pytest.fixture
def objects(timer):
    return FakeObjectStore(clock=timer.now)


@pytest.fixture
def tokens():
    return MemoryGateTokenStore()


@pytest.fixture
def address_lookup():
    return StaticAddressLookup("203.0.113.7")
