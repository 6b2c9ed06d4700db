"""Keepalive pinger for free-tier hosting.

The API and the NLP classifier both run on hosts that put an idle
service to sleep after roughly fifteen minutes.  A sleeping classifier
turns every complaint into an ``UNCLASSIFIED`` one (the first request
times out while the host wakes up), so the API pings itself and the
classifier on a fixed interval.

Runs as an ``asyncio`` background task in the application's event loop
and is cancelled on shutdown.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import httpx
import structlog

logger = structlog.get_logger(__name__)


class KeepaliveScheduler:
    """Pings a list of URLs every ``interval_seconds``.

    Parameters
    ----------
    urls:
        URLs to GET on every tick.
    interval_seconds:
        Delay between ticks (default 14 minutes).
    client:
        Optional pre-built ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        urls: list[str],
        *,
        interval_seconds: float = 14 * 60,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._urls = list(urls)
        self._interval = interval_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._last_run: datetime | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_run(self) -> datetime | None:
        """Timestamp of the last completed ping round."""
        return self._last_run

    # ------------------------------------------------------------------
    # Pinging
    # ------------------------------------------------------------------

    async def ping_all(self) -> dict[str, bool]:
        """Ping every URL once and report which ones answered 2xx."""
        logger.info("keepalive.pinging", targets=len(self._urls))
        results: dict[str, bool] = {}
        for url in self._urls:
            try:
                response = await self._client.get(url)
            except httpx.HTTPError as exc:
                logger.warning("keepalive.ping_error", url=url, error=str(exc))
                results[url] = False
                continue

            if response.is_success:
                logger.info("keepalive.ping_ok", url=url)
                results[url] = True
            else:
                logger.warning("keepalive.ping_failed", url=url, status=response.status_code)
                results[url] = False

        self._last_run = datetime.now(UTC)
        return results

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                await self.ping_all()
        except asyncio.CancelledError:
            logger.info("keepalive.cancelled")
            raise
        except Exception:
            logger.error("keepalive.loop_error", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if not self._urls:
            logger.info("keepalive.disabled_no_urls")
            return
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="keepalive")
        logger.info(
            "keepalive.started",
            urls=self._urls,
            interval_s=self._interval,
        )

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._client.aclose()
        logger.info("keepalive.stopped")
