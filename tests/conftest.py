"""Shared fakes for the ResolveX test-suite.

Everything here runs WITHOUT network access: the classifier is driven
through ``httpx.MockTransport``, and media / e-mail are in-process fakes.
"""

from __future__ import annotations

import base64
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from resolvex.models.user import User
from resolvex.services.classifier import (
    DepartmentClassifierClient,
    DepartmentRouter,
    FallbackPolicy,
)
from resolvex.services.errors import UploadError
from resolvex.services.intake import IntakeOrchestrator
from resolvex.services.notifications import NotificationDispatcher
from resolvex.services.store import InMemoryComplaintStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
PNG_PAYLOAD = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()

CLASSIFIER_URL = "https://nlp.test/classify"
FALLBACK_EMAIL = "grievances@gov.test"
FALLBACK_NAME = "General Grievance Cell"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeMedia:
    """In-process media externalizer."""

    def __init__(self, *, fail_upload: bool = False, fail_delete: bool = False) -> None:
        self.fail_upload = fail_upload
        self.fail_delete = fail_delete
        self.uploads: list[str] = []
        self.deleted: list[str] = []

    async def upload(self, payload: str) -> str:
        self.uploads.append(payload)
        if self.fail_upload:
            raise UploadError()
        return f"https://media.test/complaints/{len(self.uploads)}.png"

    async def delete(self, url: str) -> None:
        if self.fail_delete:
            raise RuntimeError("storage unavailable")
        self.deleted.append(url)


class RecordingTransport:
    """E-mail transport that records sends, or fails on demand."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise ConnectionError("mail server refused connection")
        self.sent.append((to, subject, html_body))


def classifier_returning(
    handler: Callable[[httpx.Request], httpx.Response],
) -> DepartmentClassifierClient:
    """A classifier client whose HTTP calls are answered by *handler*."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DepartmentClassifierClient(CLASSIFIER_URL, timeout_seconds=1.0, client=client)


def roads_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "department_email": "roads@gov",
            "department_name": "Roads Dept",
            "intent": "ROAD_DAMAGE",
        },
    )


def unreachable_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def citizen() -> User:
    return User(id="user-1", username="asha", email="asha@example.com")


@pytest.fixture
def other_citizen() -> User:
    return User(id="user-2", username="ravi", email="ravi@example.com")


@pytest.fixture
def fallback() -> FallbackPolicy:
    return FallbackPolicy(department_email=FALLBACK_EMAIL, department_name=FALLBACK_NAME)


@pytest.fixture
def media() -> FakeMedia:
    return FakeMedia()


@pytest.fixture
def store() -> InMemoryComplaintStore:
    return InMemoryComplaintStore()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
async def dispatcher(transport: RecordingTransport) -> AsyncIterator[NotificationDispatcher]:
    dispatcher = NotificationDispatcher(transport, timeout_seconds=1.0)
    yield dispatcher
    await dispatcher.stop(grace_seconds=1.0)


@pytest.fixture
def make_orchestrator(
    media: FakeMedia,
    store: InMemoryComplaintStore,
    dispatcher: NotificationDispatcher,
    fallback: FallbackPolicy,
) -> Callable[..., IntakeOrchestrator]:
    """Build an orchestrator around the shared fakes with a chosen classifier."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response] = roads_handler,
        **overrides: object,
    ) -> IntakeOrchestrator:
        router = DepartmentRouter(classifier_returning(handler), fallback)
        deps: dict[str, object] = {
            "media": media,
            "router": router,
            "store": store,
            "dispatcher": dispatcher,
        }
        deps.update(overrides)
        return IntakeOrchestrator(**deps)  # type: ignore[arg-type]

    return _make
