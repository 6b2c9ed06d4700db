"""Department e-mail notifications for ResolveX.

When a complaint is stored, the responsible department is told about it
by e-mail.  The citizen must never wait for, or be affected by, that
e-mail: the complaint is already saved and acknowledged by the time the
mail goes out.  So delivery is split in two:

1. :class:`NotificationDispatcher` owns an ``asyncio.Queue`` and a
   single background worker.  The intake pipeline calls
   :meth:`NotificationDispatcher.submit`, which returns immediately with
   a future for the outcome.
2. The worker hands each job to an :class:`EmailTransport` exactly once.
   Failures are logged and parked in a bounded dead-letter list; they
   never propagate.

The transport is created once at startup and injected, so its HTTP
client and OAuth access token are shared across complaints.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import time
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol, runtime_checkable

import httpx
import structlog

from resolvex.services.errors import NotificationError

logger = structlog.get_logger(__name__)

GMAIL_API = "https://gmail.googleapis.com/gmail/v1"
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105

STOPPED_REASON = "dispatcher stopped before sending"


# ---------------------------------------------------------------------------
# Outcome and job types
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class NotificationOutcome:
    """Result of one send attempt."""

    sent: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> NotificationOutcome:
        return cls(sent=True)

    @classmethod
    def failure(cls, reason: str) -> NotificationOutcome:
        return cls(sent=False, reason=reason)


@dataclass(slots=True, frozen=True)
class NotificationJob:
    """A composed notification waiting to be sent."""

    complaint_id: str
    to: str
    subject: str
    body: str


@dataclass(slots=True, frozen=True)
class DeadLetter:
    """A notification whose single send attempt failed."""

    job: NotificationJob
    reason: str
    failed_at: datetime


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


@runtime_checkable
class EmailTransport(Protocol):
    """Delivers one HTML e-mail.  Raises on failure."""

    async def send(self, to: str, subject: str, html_body: str) -> None: ...


class GmailEmailTransport:
    """Sends mail through the Gmail API with an OAuth refresh token.

    The message is built as MIME, base64url-encoded and posted to
    ``users/me/messages/send``.  Access tokens are cached until 60 s
    before they expire.  Each send is a single HTTP request on a pooled
    client, so a failed send leaves nothing behind for the next one.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        *,
        sender: str = "",
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._sender = sender
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._access_token: str | None = None
        self._token_expiry = 0.0

    # ------------------------------------------------------------------
    # EmailTransport interface
    # ------------------------------------------------------------------

    async def send(self, to: str, subject: str, html_body: str) -> None:
        message = self.build_message(to, subject, html_body)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode()
        try:
            token = await self._get_access_token()
            response = await self._client.post(
                f"{GMAIL_API}/users/me/messages/send",
                json={"raw": raw},
                headers={"Authorization": f"Bearer {token}"},
            )
            if response.status_code == 401:
                self._access_token = None
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationError(
                f"Gmail API returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            raise NotificationError(f"Gmail delivery failed: {exc}") from exc

    def build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        if self._sender:
            message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expiry - 60:
            return self._access_token

        response = await self._client.post(
            OAUTH_TOKEN_URL,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": self._refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code != 200:
            raise ValueError(f"token refresh failed with {response.status_code}")

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expiry = time.monotonic() + data.get("expires_in", 3600)
        logger.info("notifications.gmail_token_refreshed")
        return self._access_token



# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Fire-and-forget delivery of department notifications.

    Parameters
    ----------
    transport:
        The long-lived e-mail transport.
    timeout_seconds:
        Upper bound for a single send.
    dead_letter_limit:
        How many failed notifications to keep for inspection; the oldest
        are dropped first.
    """

    def __init__(
        self,
        transport: EmailTransport,
        *,
        timeout_seconds: float = 30.0,
        dead_letter_limit: int = 500,
    ) -> None:
        self._transport = transport
        self._timeout = timeout_seconds
        self._queue: asyncio.Queue[tuple[NotificationJob, asyncio.Future[NotificationOutcome]]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._dead_letters: deque[DeadLetter] = deque(maxlen=dead_letter_limit)
        self._sent_count = 0

    # ------------------------------------------------------------------
    # Direct send
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        department_email: str,
        subject: str,
        body: str,
        *,
        complaint_id: str | None = None,
    ) -> NotificationOutcome:
        """Send one notification now.  Never raises."""
        log = logger.bind(complaint_id=complaint_id, to=department_email)
        try:
            await asyncio.wait_for(
                self._transport.send(department_email, subject, body),
                timeout=self._timeout,
            )
        except TimeoutError:
            reason = f"send timed out after {self._timeout}s"
            log.warning("notifications.send_failed", reason=reason)
            return NotificationOutcome.failure(reason)
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
            log.warning("notifications.send_failed", reason=reason, exc_info=True)
            return NotificationOutcome.failure(reason)

        self._sent_count += 1
        log.info("notifications.sent")
        return NotificationOutcome.success()

    # ------------------------------------------------------------------
    # Queued send
    # ------------------------------------------------------------------

    def submit(self, job: NotificationJob) -> asyncio.Future[NotificationOutcome]:
        """Queue *job* and return a future for its outcome.

        Must be called from a running event loop.  The worker is started
        on first use if the application has not started it already.
        """
        future: asyncio.Future[NotificationOutcome] = asyncio.get_running_loop().create_future()
        self.start()
        self._queue.put_nowait((job, future))
        logger.info(
            "notifications.queued",
            complaint_id=job.complaint_id,
            pending=self._queue.qsize(),
        )
        return future

    async def _run(self) -> None:
        while True:
            job, future = await self._queue.get()
            try:
                outcome = await self.dispatch(
                    job.to,
                    job.subject,
                    job.body,
                    complaint_id=job.complaint_id,
                )
            except asyncio.CancelledError:
                # Cancelled mid-send by stop(): the job is not silently lost.
                self._abandon(job, future)
                raise
            else:
                if not outcome.sent:
                    self._park(job, outcome.reason or "unknown error")
                if not future.done():
                    future.set_result(outcome)
            finally:
                self._queue.task_done()

    def _abandon(
        self,
        job: NotificationJob,
        future: asyncio.Future[NotificationOutcome],
    ) -> None:
        self._park(job, STOPPED_REASON)
        if not future.done():
            future.set_result(NotificationOutcome.failure(STOPPED_REASON))

    def _park(self, job: NotificationJob, reason: str) -> None:
        self._dead_letters.append(
            DeadLetter(job=job, reason=reason, failed_at=datetime.now(UTC))
        )
        logger.error(
            "notifications.dead_lettered",
            complaint_id=job.complaint_id,
            to=job.to,
            reason=reason,
            dead_letters=len(self._dead_letters),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background worker if it is not running."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
            logger.info("notifications.worker_started")

    async def stop(self, grace_seconds: float = 10.0) -> None:
        """Drain the queue for up to *grace_seconds*, then stop the worker.

        Jobs still queued or in flight after the grace period are
        dead-lettered and their futures resolved.
        """
        if self._worker is None:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=grace_seconds)
        except TimeoutError:
            logger.warning("notifications.drain_timeout", pending=self._queue.qsize())

        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

        while not self._queue.empty():
            job, future = self._queue.get_nowait()
            self._queue.task_done()
            self._abandon(job, future)

        logger.info("notifications.worker_stopped")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def sent_count(self) -> int:
        return self._sent_count

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()
