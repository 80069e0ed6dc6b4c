"""Tests for the access session controller."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import pytest

from document_gate.access.controller import (
    MAX_NOTICES,
    AccessSessionController,
    DisplayState,
    GateState,
    NoticeLevel,
    is_valid_email,
)
from document_gate.backends.local import LocalRecordStore
from document_gate.config import GateConfig
from document_gate.protocol import GATE_TOKEN_KEY, UNKNOWN_ADDRESS

from conftest import FailingAddressLookup, settle


@pytest.fixture
def make_controller(records, objects, tokens, address_lookup, timer):
    created: list[AccessSessionController] = []

    def factory(**overrides) -> AccessSessionController:
        kwargs = {
            "records": records,
            "objects": objects,
            "tokens": tokens,
            "address_lookup": address_lookup,
            "config": GateConfig(user_agent="pytest-browser"),
            "clock": timer.now,
            "sleep": timer.sleep,
        }
        kwargs.update(overrides)
        controller = AccessSessionController(**kwargs)
        created.append(controller)
        return controller

    yield factory

    # Make sure no renewal task outlives its test
    for controller in created:
        if controller._renewal_task is not None and not controller._renewal_task.done():
            controller._renewal_task.cancel()


class TestEmailValidation:
    """Tests for the form-level email check."""

    @pytest.mark.parametrize("email", ["a@b.com", "first.last+tag@sub.example.org"])
    def test_valid(self, email: str) -> None:
        assert is_valid_email(email) is True

    @pytest.mark.parametrize("email", ["", "plain", "a@b", "a b@c.com", "@b.com", "a@b."])
    def test_invalid(self, email: str) -> None:
        assert is_valid_email(email) is False


class TestGateSubmission:
    """Tests for UNGATED -> GATING -> GATED/UNGATED."""

    async def test_starts_ungated_without_token(self, make_controller) -> None:
        controller = make_controller()
        await controller.start()

        assert controller.state == GateState.UNGATED
        assert controller.display == DisplayState.EMAIL_FORM
        assert controller.is_renewing is False
        await controller.close()

    async def test_single_submission_writes_one_record(
        self, records, objects, tokens, address_lookup
    ) -> None:
        """Exactly one access record, timestamped inside the test window."""
        records.add_document("x.pdf")
        controller = AccessSessionController(records, objects, tokens, address_lookup)
        await controller.start()

        before = datetime.now(UTC)
        assert await controller.submit("visitor@example.com") is True
        after = datetime.now(UTC)

        assert len(records.access_records) == 1
        record = records.access_records[0]
        assert record.email == "visitor@example.com"
        assert before <= record.accessed_at <= after
        assert record.ip_address == "203.0.113.7"
        await controller.close()

    async def test_successful_submission_scenario(
        self, make_controller, records, objects, tokens
    ) -> None:
        """a@b.com -> record -> token -> document x.pdf -> signed link shown."""
        document = records.add_document("x.pdf")
        document.id = "1"
        controller = make_controller()
        await controller.start()

        assert await controller.submit("a@b.com") is True

        assert [r.email for r in records.access_records] == ["a@b.com"]
        assert await tokens.get(GATE_TOKEN_KEY) == "a@b.com"
        assert controller.gate_token is not None
        assert controller.gate_token.email == "a@b.com"
        assert objects.signed_calls == [("x.pdf", 600)]
        assert controller.state == GateState.GATED
        assert controller.display == DisplayState.DOCUMENT
        assert controller.current_link is not None
        assert controller.current_link.url == "https://files.example.com/x.pdf?token=t1"
        assert controller.document_name == "portfolio.pdf"
        assert controller.notices[0].level == NoticeLevel.SUCCESS
        assert controller.notices[0].message == "Access granted!"
        await controller.close()

    async def test_record_uses_configured_user_agent(self, make_controller, records) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        assert records.access_records[0].user_agent == "pytest-browser"
        await controller.close()

    async def test_insert_failure_stays_ungated(
        self, make_controller, records, objects, tokens
    ) -> None:
        """Network error on insert: no token, error message, still UNGATED."""
        records.add_document("x.pdf")
        records.insert_error = ConnectionError("network error")
        seen = []
        controller = make_controller(on_notice=seen.append)
        await controller.start()

        assert await controller.submit("a@b.com") is False

        assert controller.state == GateState.UNGATED
        assert controller.display == DisplayState.EMAIL_FORM
        assert controller.last_error is not None
        assert "network error" in controller.last_error
        assert await tokens.get(GATE_TOKEN_KEY) is None
        assert controller.gate_token is None
        assert records.access_records == []
        assert objects.signed_calls == []
        assert seen and seen[-1].level == NoticeLevel.ERROR
        await controller.close()

    async def test_retry_after_failure_creates_new_record(self, make_controller, records) -> None:
        records.add_document("x.pdf")
        records.insert_error = ConnectionError("network error")
        controller = make_controller()
        await controller.start()

        assert await controller.submit("a@b.com") is False
        records.insert_error = None
        assert await controller.submit("a@b.com") is True

        assert len(records.access_records) == 1
        assert controller.state == GateState.GATED
        assert controller.last_error is None
        await controller.close()

    async def test_repeat_visitors_are_not_deduplicated(
        self, records, objects, address_lookup, timer
    ) -> None:
        from document_gate.local.token_store import MemoryGateTokenStore

        records.add_document("x.pdf")
        for _ in range(2):
            controller = AccessSessionController(
                records, objects, MemoryGateTokenStore(), address_lookup,
                clock=timer.now, sleep=timer.sleep,
            )
            await controller.start()
            await controller.submit("a@b.com")
            await controller.close()

        assert [r.email for r in records.access_records] == ["a@b.com", "a@b.com"]

    async def test_invalid_email_writes_nothing(self, make_controller, records, tokens) -> None:
        controller = make_controller()
        await controller.start()

        assert await controller.submit("not-an-email") is False

        assert controller.state == GateState.UNGATED
        assert controller.last_error == "Please enter a valid email address"
        assert records.access_records == []
        assert await tokens.get(GATE_TOKEN_KEY) is None
        await controller.close()

    async def test_ip_lookup_failure_is_absorbed(self, make_controller, records) -> None:
        records.add_document("x.pdf")
        controller = make_controller(address_lookup=FailingAddressLookup())
        await controller.start()

        assert await controller.submit("a@b.com") is True

        assert records.access_records[0].ip_address == UNKNOWN_ADDRESS
        assert all(n.level != NoticeLevel.ERROR for n in controller.notices)
        await controller.close()

    async def test_access_record_written_before_first_link_fetch(
        self, make_controller, records, objects
    ) -> None:
        order: list[str] = []
        records.add_document("x.pdf")

        original_insert = records.insert_access_record
        original_sign = objects.create_signed_url

        async def insert(record):
            order.append("insert")
            return await original_insert(record)

        async def sign(path, ttl):
            order.append("sign")
            return await original_sign(path, ttl)

        records.insert_access_record = insert
        objects.create_signed_url = sign
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        assert order == ["insert", "sign"]
        await controller.close()


class TestStoredToken:
    """Tests for returning visitors."""

    async def test_token_skips_gate_without_new_record(
        self, make_controller, records, objects, tokens
    ) -> None:
        records.add_document("x.pdf")
        await tokens.set(GATE_TOKEN_KEY, "returning@example.com")
        controller = make_controller()

        await controller.start()

        assert controller.state == GateState.GATED
        assert controller.email == "returning@example.com"
        assert records.access_records == []
        assert objects.signed_calls == [("x.pdf", 600)]
        assert controller.is_renewing is True
        await controller.close()

    async def test_submit_ignored_once_gated(self, make_controller, records, tokens) -> None:
        records.add_document("x.pdf")
        await tokens.set(GATE_TOKEN_KEY, "returning@example.com")
        controller = make_controller()
        await controller.start()

        assert await controller.submit("other@example.com") is True
        assert records.access_records == []
        await controller.close()

    async def test_custom_token_key(self, make_controller, records, tokens) -> None:
        records.add_document("x.pdf")
        await tokens.set(GATE_TOKEN_KEY, "default-key@example.com")
        controller = make_controller(config=GateConfig(token_key="other_key"))

        await controller.start()

        assert controller.state == GateState.UNGATED
        await controller.close()


class TestDocumentStates:
    """Tests for no-document and unavailable display states."""

    async def test_no_document_requests_no_link(self, make_controller, objects) -> None:
        controller = make_controller()
        await controller.start()

        await controller.submit("a@b.com")

        assert controller.state == GateState.GATED
        assert controller.display == DisplayState.NO_DOCUMENT
        assert controller.current_link is None
        assert objects.signed_calls == []
        assert controller.notices[-1].message == "No documents found in the database"
        await controller.close()

    async def test_timer_keeps_polling_for_a_document(
        self, make_controller, records, objects, timer
    ) -> None:
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")
        assert controller.display == DisplayState.NO_DOCUMENT

        records.add_document("late.pdf")
        await timer.advance(600)

        assert controller.display == DisplayState.DOCUMENT
        assert objects.signed_calls == [("late.pdf", 600)]
        await controller.close()

    async def test_signing_failure_shows_unavailable(
        self, make_controller, records, objects
    ) -> None:
        records.add_document("x.pdf")
        objects.sign_error = RuntimeError("bucket unreachable")
        controller = make_controller()
        await controller.start()

        await controller.submit("a@b.com")

        assert controller.state == GateState.GATED
        assert controller.display == DisplayState.UNAVAILABLE
        assert controller.current_link is None
        assert controller.last_error.startswith("Error loading document")
        await controller.close()

    async def test_unavailable_drops_stale_link_and_retries_on_next_tick(
        self, make_controller, records, objects, timer
    ) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")
        assert controller.current_link is not None

        objects.sign_error = RuntimeError("bucket unreachable")
        await timer.advance(600)
        assert controller.display == DisplayState.UNAVAILABLE
        assert controller.current_link is None

        objects.sign_error = None
        await timer.advance(600)
        assert controller.display == DisplayState.DOCUMENT
        assert controller.current_link is not None
        assert len(objects.signed_calls) == 3
        await controller.close()

    async def test_lookup_failure_shows_unavailable(self, make_controller, records) -> None:
        records.latest_error = RuntimeError("query timeout")
        controller = make_controller()
        await controller.start()

        await controller.submit("a@b.com")

        assert controller.display == DisplayState.UNAVAILABLE
        await controller.close()

    async def test_newest_document_wins(self, make_controller, records, objects, timer) -> None:
        from datetime import timedelta

        records.add_document("old.pdf", created_at=timer.now() - timedelta(days=2))
        records.add_document("new.pdf", created_at=timer.now() - timedelta(days=1))
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        assert objects.signed_calls == [("new.pdf", 600)]
        await controller.close()


    async def test_malformed_document_row_shows_unavailable(
        self, make_controller, objects, timer, tmp_path
    ) -> None:
        records = LocalRecordStore(tmp_path, clock=timer.now)
        records.documents_path.write_text(
            json.dumps({"id": "1", "storage_path": "x.pdf", "created_at": "2026-01-01T11:00:00Z"})
            + "\n"
        )
        controller = make_controller(records=records)
        await controller.start()

        assert await controller.submit("a@b.com") is True

        assert controller.state == GateState.GATED
        assert controller.display == DisplayState.UNAVAILABLE
        assert controller.is_renewing is True
        assert objects.signed_calls == []

        records.documents_path.write_text(
            json.dumps(
                {
                    "id": "1",
                    "name": "cv.pdf",
                    "storage_path": "x.pdf",
                    "created_at": "2026-01-01T11:00:00Z",
                }
            )
            + "\n"
        )
        await timer.advance(600)
        # File reads run in worker threads
        for _ in range(100):
            if controller.display == DisplayState.DOCUMENT:
                break
            await asyncio.sleep(0.01)

        assert controller.display == DisplayState.DOCUMENT
        assert controller.document_name == "cv.pdf"
        await controller.close()

    async def test_notices_are_capped(self, make_controller, timer) -> None:
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        for _ in range(MAX_NOTICES + 10):
            await timer.advance(600)

        assert len(controller.notices) == MAX_NOTICES
        assert controller.notices[-1].message == "No documents found in the database"
        await controller.close()


class TestRenewal:
    """Tests for the periodic signed link renewal."""

    async def test_link_replaced_before_expiry(
        self, make_controller, records, objects, timer
    ) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")
        first = controller.current_link
        assert first is not None

        await timer.advance(600)

        assert len(objects.signed_calls) == 2
        second = controller.current_link
        assert second is not None
        assert second.url != first.url
        assert (second.issued_at - first.issued_at).total_seconds() <= first.ttl
        assert timer.sleep_calls[0] == 600
        await controller.close()

    async def test_no_renewal_before_interval(self, make_controller, records, objects, timer) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        await timer.advance(599)

        assert len(objects.signed_calls) == 1
        await controller.close()

    async def test_expired_link_is_not_exposed(self, make_controller, records, timer) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        # Move the clock without waking the timer
        timer.elapsed += 600

        assert controller.current_link is None
        await controller.close()

    async def test_close_stops_timer_fetches(
        self, make_controller, records, objects, timer
    ) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")
        calls_before = (records.latest_calls, len(objects.signed_calls))

        await controller.close()
        await timer.advance(600)
        await timer.advance(600)

        assert (records.latest_calls, len(objects.signed_calls)) == calls_before
        assert controller.is_renewing is False

    async def test_context_manager_closes(self, make_controller, records, tokens, timer) -> None:
        records.add_document("x.pdf")
        await tokens.set(GATE_TOKEN_KEY, "a@b.com")
        controller = make_controller()

        async with controller:
            assert controller.is_renewing is True

        assert controller.is_renewing is False
        await timer.advance(600)
        assert records.latest_calls == 1

    async def test_overlapping_refresh_is_skipped(
        self, make_controller, records, objects, timer
    ) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")
        held = controller.current_link

        # Stall the next renewal inside the document lookup
        records.latest_gate = asyncio.Event()
        await timer.advance(600)
        assert records.latest_calls == 2

        result = await controller.refresh_link()

        assert result is held
        assert records.latest_calls == 2

        records.latest_gate.set()
        await settle()
        assert len(objects.signed_calls) == 2
        await controller.close()

    async def test_late_result_after_close_is_discarded(
        self, make_controller, records, objects
    ) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")
        held = controller._link

        records.latest_gate = asyncio.Event()
        pending = asyncio.create_task(controller.refresh_link())
        await settle()
        await controller.close()
        records.latest_gate.set()

        assert await pending is None
        assert controller._link is held
        assert controller.display == DisplayState.DOCUMENT

    async def test_unexpected_error_does_not_kill_timer(
        self, make_controller, records, objects, timer
    ) -> None:
        records.add_document("x.pdf")
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        async def explode():
            raise RuntimeError("unexpected")

        original = records.latest_document
        records.latest_document = explode
        await timer.advance(600)
        assert controller.is_renewing is True

        records.latest_document = original
        await timer.advance(600)
        assert len(objects.signed_calls) == 2
        await controller.close()

    async def test_slow_signing_does_not_delay_the_schedule(
        self, make_controller, records, objects, timer
    ) -> None:
        records.add_document("x.pdf")
        issued: list[datetime] = []
        sign = objects.create_signed_url

        async def slow_sign(path: str, ttl_seconds: int):
            timer.elapsed += 2
            link = await sign(path, ttl_seconds)
            issued.append(link.issued_at)
            return link

        objects.create_signed_url = slow_sign
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        for _ in range(5):
            await timer.advance(598)
            assert controller.current_link is not None

        gaps = [(b - a).total_seconds() for a, b in zip(issued, issued[1:])]
        assert len(issued) == 6
        assert all(gap <= 600 for gap in gaps)
        assert timer.sleep_calls == [598] * 6
        await controller.close()

    async def test_missed_ticks_are_skipped(
        self, make_controller, records, objects, timer
    ) -> None:
        records.add_document("x.pdf")
        sign = objects.create_signed_url
        stall = {"seconds": 0}

        async def stalling_sign(path: str, ttl_seconds: int):
            timer.elapsed += stall["seconds"]
            return await sign(path, ttl_seconds)

        objects.create_signed_url = stalling_sign
        controller = make_controller()
        await controller.start()
        await controller.submit("a@b.com")

        stall["seconds"] = 1300
        await timer.advance(600)
        stall["seconds"] = 0

        # Refresh finished at 1900; the 1200 and 1800 ticks are gone
        assert timer.sleep_calls[-1] == 500
        await timer.advance(500)
        assert len(objects.signed_calls) == 3
        await controller.close()

    async def test_closed_controller_cannot_restart(self, make_controller) -> None:
        from document_gate.exceptions import DocumentGateError

        controller = make_controller()
        await controller.start()
        await controller.close()

        with pytest.raises(DocumentGateError):
            await controller.start()
