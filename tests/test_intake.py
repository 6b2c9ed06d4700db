"""Tests for the complaint intake pipeline.

Covers the happy path, classifier fallback, validation short-circuit,
upload and persistence failures, and the agreement between the stored
complaint and the e-mail the department receives.

All tests run WITHOUT network access.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import httpx
import pytest

from conftest import (
    FALLBACK_EMAIL,
    FALLBACK_NAME,
    PNG_PAYLOAD,
    FakeMedia,
    RecordingTransport,
    unreachable_handler,
)
from resolvex.models.complaint import ComplaintInput
from resolvex.models.enums import UNCLASSIFIED, ComplaintStatus
from resolvex.services.errors import PersistenceError, UploadError, ValidationError
from resolvex.services.notifications import NotificationDispatcher


def _pothole(**overrides: object) -> ComplaintInput:
    data: dict[str, object] = {
        "description": "pothole",
        "cause": "road damage",
        "impact": "accidents",
        "proof_image": PNG_PAYLOAD,
    }
    data.update(overrides)
    return ComplaintInput(**data)


class FailingStore:
    async def insert(self, complaint):
        raise ConnectionError("redis went away")


class CountingClassifierHandler:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(
            200,
            json={"department_email": "x@gov", "department_name": "X", "intent": "X"},
        )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestSubmit:
    async def test_pothole_routed_to_roads(self, make_orchestrator, citizen, store) -> None:
        complaint, outcome = await make_orchestrator().submit(_pothole(), citizen)

        assert complaint.status == ComplaintStatus.PENDING
        assert complaint.classified_intent == "ROAD_DAMAGE"
        assert complaint.department_email == "roads@gov"
        assert complaint.department_name == "Roads Dept"
        assert complaint.owner_id == citizen.id
        assert await store.get(complaint.id) == complaint
        await outcome

    async def test_store_sets_timestamps(self, make_orchestrator, citizen) -> None:
        complaint, outcome = await make_orchestrator().submit(_pothole(), citizen)
        assert complaint.created_at is not None
        assert complaint.updated_at == complaint.created_at
        await outcome

    async def test_proof_image_is_externalized(self, make_orchestrator, citizen, media) -> None:
        complaint, outcome = await make_orchestrator().submit(_pothole(), citizen)
        assert media.uploads == [PNG_PAYLOAD]
        assert complaint.proof_image_url.startswith("https://media.test/")
        assert PNG_PAYLOAD not in complaint.notification_body
        assert complaint.proof_image_url in complaint.notification_body
        await outcome

    async def test_fields_are_trimmed_and_blank_location_dropped(
        self, make_orchestrator, citizen
    ) -> None:
        complaint, outcome = await make_orchestrator().submit(
            _pothole(description="  pothole  ", location="   "), citizen
        )
        assert complaint.description == "pothole"
        assert complaint.location is None
        assert "Not provided" in complaint.notification_body
        await outcome

    async def test_uses_injected_id_factory(self, make_orchestrator, citizen) -> None:
        orchestrator = make_orchestrator(id_factory=lambda: "abc123def456")
        complaint, outcome = await orchestrator.submit(_pothole(), citizen)
        assert complaint.id == "abc123def456"
        await outcome

    async def test_ids_are_unique(self, make_orchestrator, citizen) -> None:
        orchestrator = make_orchestrator()
        ids = set()
        for _ in range(5):
            complaint, outcome = await orchestrator.submit(_pothole(), citizen)
            ids.add(complaint.id)
            await outcome
        assert len(ids) == 5


# ---------------------------------------------------------------------------
# Classification fallback
# ---------------------------------------------------------------------------


class TestClassificationFallback:
    async def test_unreachable_classifier_uses_fallback(
        self, make_orchestrator, citizen, store
    ) -> None:
        complaint, outcome = await make_orchestrator(unreachable_handler).submit(
            _pothole(), citizen
        )
        assert complaint.classified_intent == UNCLASSIFIED
        assert complaint.department_email == FALLBACK_EMAIL
        assert complaint.department_name == FALLBACK_NAME
        assert await store.get(complaint.id) is not None
        await outcome

    async def test_classifier_timeout_uses_fallback(self, make_orchestrator, citizen) -> None:
        def timeout_handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        complaint, outcome = await make_orchestrator(timeout_handler).submit(_pothole(), citizen)
        assert complaint.classified_intent == UNCLASSIFIED
        assert complaint.department_email == FALLBACK_EMAIL
        await outcome

    async def test_classifier_server_error_uses_fallback(self, make_orchestrator, citizen) -> None:
        complaint, outcome = await make_orchestrator(
            lambda request: httpx.Response(503, text="sleeping")
        ).submit(_pothole(), citizen)
        assert complaint.classified_intent == UNCLASSIFIED
        await outcome

    async def test_fallback_notification_goes_to_default_department(
        self, make_orchestrator, citizen, transport
    ) -> None:
        _, outcome = await make_orchestrator(unreachable_handler).submit(_pothole(), citizen)
        assert (await outcome).sent is True
        assert transport.sent[0][0] == FALLBACK_EMAIL


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize("field", ["description", "cause", "impact", "proof_image"])
    async def test_missing_field_makes_no_external_calls(
        self, make_orchestrator, citizen, media, store, transport, field
    ) -> None:
        handler = CountingClassifierHandler()
        orchestrator = make_orchestrator(handler)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.submit(_pothole(**{field: None}), citizen)

        assert exc_info.value.missing_fields == [field]
        assert media.uploads == []
        assert handler.calls == 0
        assert store.size == 0
        assert transport.sent == []

    async def test_whitespace_only_counts_as_missing(self, make_orchestrator, citizen) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await make_orchestrator().submit(_pothole(cause="   ", impact=""), citizen)
        assert exc_info.value.missing_fields == ["cause", "impact"]

    async def test_location_is_optional(self, make_orchestrator, citizen) -> None:
        complaint, outcome = await make_orchestrator().submit(_pothole(location=None), citizen)
        assert complaint.location is None
        await outcome


# ---------------------------------------------------------------------------
# Fatal failures
# ---------------------------------------------------------------------------


class TestFatalFailures:
    async def test_upload_failure_aborts_before_classification(
        self, make_orchestrator, citizen, store, transport
    ) -> None:
        handler = CountingClassifierHandler()
        orchestrator = make_orchestrator(handler, media=FakeMedia(fail_upload=True))

        with pytest.raises(UploadError):
            await orchestrator.submit(_pothole(), citizen)

        assert handler.calls == 0
        assert store.size == 0
        assert transport.sent == []

    async def test_unexpected_upload_exception_becomes_upload_error(
        self, make_orchestrator, citizen
    ) -> None:
        class ExplodingMedia(FakeMedia):
            async def upload(self, payload: str) -> str:
                raise RuntimeError("boom")

        with pytest.raises(UploadError):
            await make_orchestrator(media=ExplodingMedia()).submit(_pothole(), citizen)

    async def test_persistence_failure_is_fatal_and_sends_nothing(
        self, make_orchestrator, citizen, media, transport
    ) -> None:
        orchestrator = make_orchestrator(store=FailingStore())

        with pytest.raises(PersistenceError):
            await orchestrator.submit(_pothole(), citizen)

        await asyncio.sleep(0)
        assert transport.sent == []

    async def test_persistence_failure_discards_uploaded_image(
        self, make_orchestrator, citizen, media
    ) -> None:
        with pytest.raises(PersistenceError):
            await make_orchestrator(store=FailingStore()).submit(_pothole(), citizen)
        assert media.deleted == ["https://media.test/complaints/1.png"]

    async def test_persistence_failure_survives_failed_image_discard(
        self, make_orchestrator, citizen
    ) -> None:
        orchestrator = make_orchestrator(
            store=FailingStore(), media=FakeMedia(fail_delete=True)
        )
        with pytest.raises(PersistenceError):
            await orchestrator.submit(_pothole(), citizen)


# ---------------------------------------------------------------------------
# Notification agreement
# ---------------------------------------------------------------------------


class TestNotificationAgreement:
    async def test_stored_body_is_the_sent_body(
        self, make_orchestrator, citizen, store, transport
    ) -> None:
        complaint, outcome = await make_orchestrator().submit(_pothole(), citizen)
        assert (await outcome).sent is True

        to, subject, body = transport.sent[0]
        stored = await store.get(complaint.id)
        assert to == "roads@gov"
        assert body == stored.notification_body
        assert body == complaint.notification_body

    async def test_body_embeds_the_persisted_id(self, make_orchestrator, citizen) -> None:
        complaint, outcome = await make_orchestrator().submit(_pothole(), citizen)
        assert complaint.id in complaint.notification_body
        assert complaint.id[-8:].upper() in complaint.notification_body
        await outcome

    async def test_body_uses_clock_at_submission(self, make_orchestrator, citizen) -> None:
        fixed = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)
        complaint, outcome = await make_orchestrator(clock=lambda: fixed).submit(
            _pothole(), citizen
        )
        assert "01 Mar 2026, 09:30 UTC" in complaint.notification_body
        await outcome

    async def test_send_failure_leaves_response_and_record_untouched(
        self, make_orchestrator, citizen, store
    ) -> None:
        failing = NotificationDispatcher(RecordingTransport(fail=True), timeout_seconds=1.0)
        complaint, outcome = await make_orchestrator(dispatcher=failing).submit(
            _pothole(), citizen
        )
        snapshot = complaint.model_dump()

        result = await outcome
        assert result.sent is False
        assert "mail server refused" in (result.reason or "")
        assert complaint.model_dump() == snapshot
        assert (await store.get(complaint.id)).model_dump() == snapshot
        assert len(failing.dead_letters) == 1
        await failing.stop()

    async def test_submit_returns_before_send_completes(
        self, make_orchestrator, citizen
    ) -> None:
        release = asyncio.Event()

        class SlowTransport:
            async def send(self, to: str, subject: str, html_body: str) -> None:
                await release.wait()

        slow = NotificationDispatcher(SlowTransport(), timeout_seconds=5.0)
        complaint, outcome = await make_orchestrator(dispatcher=slow).submit(_pothole(), citizen)

        assert complaint.id
        assert not outcome.done()
        release.set()
        assert (await outcome).sent is True
        await slow.stop()
