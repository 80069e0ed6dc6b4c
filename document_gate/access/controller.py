"""
Access session controller.

Owns one visitor's view of the gated document:
- Email capture and access logging (the gate)
- Signed link acquisition for the current document
- Periodic link renewal while the view is open

Store failures never escape the controller; they become a display state
plus a user-visible notice.
"""

import asyncio
import logging
import re
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from ..config import GateConfig
from ..exceptions import DocumentGateError, ExternalStoreError
from ..logging_utils import GateLoggerAdapter
from ..protocol import (
    UNKNOWN_ADDRESS,
    AccessRecord,
    AddressLookup,
    GateTokenStore,
    LocalGateToken,
    ObjectStore,
    RecordStore,
    SignedLink,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")

# Older notices are dropped once this many are held
MAX_NOTICES = 50


def is_valid_email(email: str) -> bool:
    """Check that an email address is syntactically well-formed."""
    return bool(email) and EMAIL_PATTERN.match(email) is not None


class GateState(Enum):
    """Whether the visitor has passed the gate."""

    UNGATED = "ungated"
    GATING = "gating"
    GATED = "gated"


class DisplayState(Enum):
    """What the view should currently render."""

    EMAIL_FORM = "email_form"
    SUBMITTING = "submitting"
    LOADING = "loading"
    DOCUMENT = "document"
    NO_DOCUMENT = "no_document"
    UNAVAILABLE = "unavailable"


class NoticeLevel(Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass
class Notice:
    """A transient user-facing message (rendered as a toast)."""

    level: NoticeLevel
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class AccessSessionController:
    """Gate state machine and signed link renewal for one open view.

    Lifecycle:
        >>> controller = AccessSessionController(records, objects, tokens, lookup)
        >>> await controller.start()          # mount
        >>> await controller.submit("a@b.com")
        >>> controller.current_link.url
        >>> await controller.close()          # unmount

    While gated, a background task re-fetches the current document and a
    fresh signed link every ``renewal_interval_seconds``. The renewal is
    guarded so at most one fetch is in flight.
    """

    def __init__(
        self,
        records: RecordStore,
        objects: ObjectStore,
        tokens: GateTokenStore,
        address_lookup: AddressLookup,
        config: GateConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        on_notice: Callable[[Notice], None] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            records: Store for access records and document metadata
            objects: Store that signs document URLs
            tokens: Local persistence for the gate token
            address_lookup: Best-effort public address lookup
            config: Gate configuration
            clock: Returns the current UTC time (injectable for tests)
            sleep: Awaitable sleep used by the renewal timer (injectable for tests)
            on_notice: Callback invoked for every user-visible notice
        """
        self.records = records
        self.objects = objects
        self.tokens = tokens
        self.address_lookup = address_lookup
        self.config = config or GateConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep or asyncio.sleep
        self.on_notice = on_notice
        self._log = GateLoggerAdapter(logger)

        self._state = GateState.UNGATED
        self._display = DisplayState.EMAIL_FORM
        self._email: str | None = None
        self._gate_token: LocalGateToken | None = None
        self._link: SignedLink | None = None
        self._document_name: str | None = None
        self._last_error: str | None = None
        self.notices: deque[Notice] = deque(maxlen=MAX_NOTICES)

        self._refresh_lock = asyncio.Lock()
        self._renewal_task: asyncio.Task[None] | None = None
        self._mounted = False
        self._closed = False

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def display(self) -> DisplayState:
        return self._display

    @property
    def email(self) -> str | None:
        return self._email

    @property
    def gate_token(self) -> LocalGateToken | None:
        """Gate token found at start or written after a successful submission."""
        return self._gate_token

    @property
    def last_error(self) -> str | None:
        """Most recent user-visible error message, cleared on success."""
        return self._last_error

    @property
    def document_name(self) -> str | None:
        return self._document_name

    @property
    def current_link(self) -> SignedLink | None:
        """The held signed link, or None once it has expired."""
        if self._link is None or self._link.is_expired(self._clock()):
            return None
        return self._link

    @property
    def is_renewing(self) -> bool:
        """Check if the renewal timer is active."""
        return self._renewal_task is not None and not self._renewal_task.done()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Mount the view.

        A stored gate token skips the form entirely: the controller goes
        straight to GATED without writing a new access record.
        """
        if self._mounted:
            return
        if self._closed:
            raise DocumentGateError("Controller has been closed")
        self._mounted = True

        try:
            stored_email = await self.tokens.get(self.config.token_key)
        except DocumentGateError as e:
            self._log.warning(f"Could not read gate token, showing the form: {e}")
            stored_email = None

        if stored_email:
            self._email = stored_email
            self._gate_token = LocalGateToken(email=stored_email)
            self._log.bind(email=stored_email)
            self._log.info("Gate token found, skipping email capture")
            await self._enter_gated()
        else:
            self._state = GateState.UNGATED
            self._display = DisplayState.EMAIL_FORM

    async def close(self) -> None:
        """Unmount the view and stop the renewal timer.

        Cancelling the timer also cancels a renewal it is running. A fetch
        started by ``submit`` is left to finish, but its result is discarded.
        """
        self._closed = True
        self._mounted = False

        if self._renewal_task is not None:
            self._renewal_task.cancel()
            try:
                await self._renewal_task
            except asyncio.CancelledError:
                pass
            self._renewal_task = None

        self._log.debug("Access session controller closed")

    async def __aenter__(self) -> "AccessSessionController":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # =========================================================================
    # Gate
    # =========================================================================

    async def submit(self, email: str) -> bool:
        """Submit the email capture form.

        Args:
            email: Visitor email address

        Returns:
            True if the visitor is now gated, False otherwise
        """
        if self._state != GateState.UNGATED or self._closed:
            self._log.debug(f"Ignoring submission in state {self._state.value}")
            return self._state == GateState.GATED

        email = (email or "").strip()
        if not is_valid_email(email):
            self._fail_submission("Please enter a valid email address")
            return False

        self._state = GateState.GATING
        self._display = DisplayState.SUBMITTING
        self._email = email
        self._log.bind(email=email)

        ip_address = await self._lookup_address()
        record = AccessRecord(
            email=email,
            accessed_at=self._clock(),
            user_agent=self.config.user_agent,
            ip_address=ip_address,
        )

        try:
            await self.records.insert_access_record(record)
        except ExternalStoreError as e:
            self._log.error(f"Access logging failed: {e}")
            self._fail_submission(e.message or "An error occurred")
            return False

        if self._closed:
            return False

        try:
            token = LocalGateToken(email=email)
            await self.tokens.set(self.config.token_key, token.email)
            self._gate_token = token
        except DocumentGateError as e:
            # Access is already logged; the visitor will just see the form next time
            self._log.warning(f"Could not persist gate token: {e}")

        self._notify(NoticeLevel.SUCCESS, "Access granted!")
        await self._enter_gated()
        return True

    def _fail_submission(self, message: str) -> None:
        self._state = GateState.UNGATED
        self._display = DisplayState.EMAIL_FORM
        self._last_error = message
        self._notify(NoticeLevel.ERROR, message)

    async def _lookup_address(self) -> str:
        try:
            return await self.address_lookup.lookup()
        except Exception as e:
            self._log.warning(f"Could not fetch IP address: {e}")
            return UNKNOWN_ADDRESS

    async def _enter_gated(self) -> None:
        self._state = GateState.GATED
        self._display = DisplayState.LOADING
        self._last_error = None
        anchor = self._clock()
        try:
            await self.refresh_link()
        finally:
            if self._mounted and not self._closed:
                self._start_renewal(anchor)

    # =========================================================================
    # Signed link renewal
    # =========================================================================

    async def refresh_link(self) -> SignedLink | None:
        """Fetch the current document and a fresh signed link for it.

        Only one refresh runs at a time; a call made while another is in
        flight returns the currently held link without fetching.

        Returns:
            The new link, or None if there is no document or the store failed
        """
        if self._state != GateState.GATED or self._closed:
            return None
        if self._refresh_lock.locked():
            self._log.debug("Link refresh already in flight, skipping")
            return self._link

        async with self._refresh_lock:
            try:
                document = await self.records.latest_document()
                if document is None:
                    self._apply_no_document()
                    return None
                link = await self.objects.create_signed_url(
                    document.storage_path, self.config.link_ttl_seconds
                )
            except ExternalStoreError as e:
                self._apply_unavailable(e)
                return None

            if self._closed:
                return None
            self._link = link
            self._document_name = document.name
            self._display = DisplayState.DOCUMENT
            self._last_error = None
            self._log.info(
                f"Signed link issued, expires {link.expires_at.isoformat()}",
                extra={"document_id": document.id},
            )
            return link

    def _apply_no_document(self) -> None:
        if self._closed:
            return
        self._link = None
        self._document_name = None
        self._display = DisplayState.NO_DOCUMENT
        self._notify(NoticeLevel.ERROR, "No documents found in the database")

    def _apply_unavailable(self, error: ExternalStoreError) -> None:
        self._log.error(f"Error loading document: {error}")
        if self._closed:
            return
        self._link = None
        self._display = DisplayState.UNAVAILABLE
        self._last_error = f"Error loading document: {error.message}"
        self._notify(NoticeLevel.ERROR, self._last_error)

    def _start_renewal(self, anchor: datetime) -> None:
        """Run the renewal timer on a fixed cadence counted from ``anchor``.

        Ticks fall at ``anchor + k * interval`` however long each refresh
        takes. Ticks missed during a slow refresh are skipped, not replayed.
        """
        if self._renewal_task is not None:
            return
        interval = timedelta(seconds=self.config.renewal_interval_seconds)

        async def renewal_loop() -> None:
            next_due = anchor + interval
            while True:
                try:
                    delay = (next_due - self._clock()).total_seconds()
                    await self._sleep(max(0.0, delay))
                    await self.refresh_link()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    self._log.exception(f"Link renewal failed: {e}")
                next_due += interval
                now = self._clock()
                while next_due < now:
                    next_due += interval

        self._renewal_task = asyncio.create_task(renewal_loop())

    def _notify(self, level: NoticeLevel, message: str) -> None:
        notice = Notice(level=level, message=message)
        self.notices.append(notice)
        if self.on_notice:
            self.on_notice(notice)
