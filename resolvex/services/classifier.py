"""Department routing for ResolveX complaints.

The NLP classifier is a separate service that maps complaint text to
the department responsible for it.  It is hosted on a free tier and is
regularly asleep or slow, so every call is bounded by a timeout and a
failed call falls back to a fixed default department instead of
failing the submission.

Pieces:

* :class:`DepartmentClassifierClient` -- the HTTP client.  Every kind of
  failure is normalised to :class:`ClassificationError`.
* :class:`FallbackPolicy` -- pure, total mapping to the default
  department with intent ``UNCLASSIFIED``.
* :class:`DepartmentRouter` -- client first, policy on failure.  Never
  raises.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from resolvex.models.complaint import DepartmentRouting
from resolvex.models.enums import UNCLASSIFIED
from resolvex.services.errors import ClassificationError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Classifier client
# ---------------------------------------------------------------------------


class DepartmentClassifierClient:
    """Client for the ResolveX NLP department classifier.

    Parameters
    ----------
    url:
        Full URL of the classification endpoint.  The service accepts
        ``{"description": ...}`` and answers with ``department_email``,
        ``department_name`` and ``intent``.
    timeout_seconds:
        Default bound for one classification call.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one with
        a mock transport).
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._client = client or httpx.AsyncClient(
            headers={
                "User-Agent": "ResolveX/1.0 (complaint intake)",
                "Accept": "application/json",
            },
            follow_redirects=True,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def classify(self, text: str, timeout: float | None = None) -> DepartmentRouting:
        """Classify complaint text into a department.

        Raises
        ------
        ClassificationError
            On network error, non-2xx status, timeout, or a response
            body that is not a complete routing object.
        """
        bound = self._timeout if timeout is None else timeout
        try:
            # httpx applies ``timeout`` per phase; wait_for bounds the whole call.
            response = await asyncio.wait_for(
                self._client.post(
                    self._url,
                    json={"description": text},
                    timeout=bound,
                ),
                timeout=bound,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.TimeoutException, TimeoutError):
            logger.warning("classifier.timeout", timeout_s=bound)
            raise ClassificationError() from None
        except httpx.HTTPStatusError as exc:
            logger.warning("classifier.http_error", status=exc.response.status_code)
            raise ClassificationError() from None
        except httpx.HTTPError:
            logger.warning("classifier.request_failed", exc_info=True)
            raise ClassificationError() from None
        except ValueError:
            logger.warning("classifier.invalid_json")
            raise ClassificationError() from None

        if not isinstance(data, dict):
            logger.warning("classifier.malformed_response", body_type=type(data).__name__)
            raise ClassificationError()

        try:
            routing = DepartmentRouting(
                department_email=str(data.get("department_email") or "").strip(),
                department_name=str(data.get("department_name") or "").strip(),
                intent=str(data.get("intent") or "").strip(),
            )
        except PydanticValidationError:
            logger.warning("classifier.malformed_response", keys=sorted(data))
            raise ClassificationError() from None

        logger.info(
            "classifier.classified",
            intent=routing.intent,
            department=routing.department_name,
        )
        return routing


# ---------------------------------------------------------------------------
# Fallback policy
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class FallbackPolicy:
    """Default routing used whenever classification is unavailable."""

    department_email: str
    department_name: str

    def route(self, text: str) -> DepartmentRouting:
        # The text is accepted so the policy can be swapped for a
        # keyword-based one without touching callers; it is not used.
        return DepartmentRouting(
            department_email=self.department_email,
            department_name=self.department_name,
            intent=UNCLASSIFIED,
        )


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


class DepartmentRouter:
    """Classifier with a deterministic safety net."""

    __slots__ = ("_classifier", "_fallback", "_timeout")

    def __init__(
        self,
        classifier: DepartmentClassifierClient,
        fallback: FallbackPolicy,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self._classifier = classifier
        self._fallback = fallback
        self._timeout = timeout_seconds

    async def route(self, text: str) -> DepartmentRouting:
        try:
            return await self._classifier.classify(text, timeout=self._timeout)
        except ClassificationError:
            routing = self._fallback.route(text)
            logger.warning(
                "classifier.fallback_used",
                department=routing.department_name,
                department_email=routing.department_email,
            )
            return routing
