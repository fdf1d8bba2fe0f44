"""Course API Client — CoursePersistence over the course REST service, with retry and backoff.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, connection): max_retries retries with exponential backoff
    - POST (create) is only retried when the request never reached the server
      (connect error) or was rate limited, so a create is never sent twice
    - Client errors (4xx except 429): no retry, returned as ServiceResult(success=False)
      carrying the service's message
    - Exhausted retries and timeouts raise PersistenceServiceError (core/errors.py)

Design Decisions:
    - Wrapper over a raw httpx.AsyncClient: retry policy isolated from the executor
    - ±25% jitter on backoff: prevents thundering herd on shared rate limits
    - Response envelope `{success, message, data}` parsed once in _to_result()
"""

import asyncio
import logging
import random
from typing import Any

import httpx

from curriculum_sync.config import Settings
from curriculum_sync.core.boundary_protocols import ServiceResult
from curriculum_sync.core.errors import PersistenceServiceError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({500, 502, 503, 504, 529})
_NON_IDEMPOTENT = frozenset({"POST"})


class HttpCoursePersistence:
    """CoursePersistence adapter for `{api_base_url}/courses/...` routes."""

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
        timeout_seconds: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/courses",
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def __aenter__(self) -> "HttpCoursePersistence":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    # ─── CoursePersistence ───────────────────────────────────────

    async def update_course(self, course_id: str, payload: dict) -> ServiceResult:
        return await self._request("PATCH", f"/{course_id}", payload)

    async def create_section(self, course_id: str, payload: dict) -> ServiceResult:
        return await self._request("POST", f"/{course_id}/sections", payload)

    async def update_section(
        self, course_id: str, section_id: str, payload: dict,
    ) -> ServiceResult:
        return await self._request("PATCH", f"/{course_id}/sections/{section_id}", payload)

    async def delete_section(self, course_id: str, section_id: str) -> ServiceResult:
        return await self._request("DELETE", f"/{course_id}/sections/{section_id}")

    async def create_lesson(
        self, course_id: str, section_id: str, payload: dict,
    ) -> ServiceResult:
        return await self._request(
            "POST", f"/{course_id}/sections/{section_id}/lessons", payload,
        )

    async def update_lesson(
        self, course_id: str, section_id: str, lesson_id: str, payload: dict,
    ) -> ServiceResult:
        return await self._request(
            "PATCH", f"/{course_id}/sections/{section_id}/lessons/{lesson_id}", payload,
        )

    async def delete_lesson(
        self, course_id: str, section_id: str, lesson_id: str,
    ) -> ServiceResult:
        return await self._request(
            "DELETE", f"/{course_id}/sections/{section_id}/lessons/{lesson_id}",
        )

    async def create_quiz(
        self, course_id: str, section_id: str, payload: dict,
    ) -> ServiceResult:
        return await self._request(
            "POST", f"/{course_id}/sections/{section_id}/quizzes", payload,
        )

    async def update_quiz(
        self, course_id: str, section_id: str, quiz_id: str, payload: dict,
    ) -> ServiceResult:
        return await self._request(
            "PATCH", f"/{course_id}/sections/{section_id}/quizzes/{quiz_id}", payload,
        )

    async def delete_quiz(
        self, course_id: str, section_id: str, quiz_id: str,
    ) -> ServiceResult:
        return await self._request(
            "DELETE", f"/{course_id}/sections/{section_id}/quizzes/{quiz_id}",
        )

    # ─── Transport ───────────────────────────────────────────────

    async def _request(
        self, method: str, path: str, payload: dict | None = None,
    ) -> ServiceResult:
        """Send one request with automatic retry on transient failures."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(method, path, json=payload)
            except httpx.TimeoutException:
                raise PersistenceServiceError(
                    f"{method} {path} timed out", "timeout",
                )
            except httpx.ConnectError as e:
                await self._handle_transient_error(e, attempt)
                continue
            except httpx.TransportError as e:
                if method in _NON_IDEMPOTENT:
                    raise PersistenceServiceError(str(e), "connection_error")
                await self._handle_transient_error(e, attempt)
                continue

            if response.status_code == 429:
                await self._handle_rate_limit(response, attempt)
                continue
            if response.status_code in _RETRYABLE_STATUS:
                if method in _NON_IDEMPOTENT:
                    raise PersistenceServiceError(
                        f"{method} {path} returned {response.status_code}",
                        "server_error", status_code=response.status_code,
                    )
                await self._handle_transient_error(
                    f"HTTP {response.status_code}", attempt, response.status_code,
                )
                continue

            logger.info(
                f"{method} {path} -> {response.status_code}",
                extra={"attempt": attempt + 1, "status_code": response.status_code},
            )
            return self._to_result(response)

        raise PersistenceServiceError(f"{method} {path} gave up", "exhausted")

    @staticmethod
    def _to_result(response: httpx.Response) -> ServiceResult:
        """Parse the `{success, message, data}` envelope; 4xx become failed results."""
        try:
            body: Any = response.json() if response.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.is_success:
            data = body.get("data")
            return ServiceResult(
                success=bool(body.get("success", True)),
                data=data if isinstance(data, dict) else None,
                message=body.get("message"),
            )
        return ServiceResult(
            success=False,
            message=body.get("message") or f"HTTP {response.status_code}",
        )

    async def _handle_rate_limit(self, response: httpx.Response, attempt: int) -> None:
        retry_after_ms = self._extract_retry_after(response)
        if attempt >= self.max_retries:
            raise PersistenceServiceError(
                "Rate limit exceeded after retries", "rate_limit",
                status_code=429, retry_after_ms=retry_after_ms,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
            extra={"attempt": attempt + 1, "status_code": 429},
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: Exception | str, attempt: int, status_code: int | None = None,
    ) -> None:
        if attempt >= self.max_retries:
            raise PersistenceServiceError(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error" if status_code is None else "server_error",
                status_code=status_code,
            )
        delay = self._backoff(attempt)
        logger.warning(
            f"Transient error, retry after {delay}ms: {e}",
            extra={"attempt": attempt + 1, "status_code": status_code},
        )
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    @staticmethod
    def _extract_retry_after(response: httpx.Response) -> int | None:
        """Retry-After header in milliseconds (delta-seconds form only)."""
        val = response.headers.get("retry-after")
        if not val:
            return None
        try:
            return int(val) * 1000
        except ValueError:
            return None


def create_course_api_client(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None,
) -> HttpCoursePersistence:
    return HttpCoursePersistence(
        settings.api_base_url,
        api_token=settings.api_token,
        max_retries=settings.max_retries,
        base_delay_ms=settings.base_delay_ms,
        max_delay_ms=settings.max_delay_ms,
        timeout_seconds=settings.request_timeout_seconds,
        transport=transport,
    )
