"""Course Editor Entry Point — wires settings, logging, the HTTP adapter and a controller.

Invariants:
    - The HTTP client created here is closed when the context exits; an injected
      persistence adapter is left to its owner
    - setup_logging() runs only when asked: embedding apps usually own logging

Design Decisions:
    - asynccontextmanager mirrors an application lifespan: startup, yield, cleanup
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from curriculum_sync.config import Settings, get_settings
from curriculum_sync.core.boundary_protocols import (
    CoursePersistence, CurriculumForm, MetadataForm,
)
from curriculum_sync.core.operations import CurriculumOp
from curriculum_sync.infrastructure.course_api_client import create_course_api_client
from curriculum_sync.infrastructure.observability import setup_logging
from curriculum_sync.services.course_controller import (
    CourseController, CourseControllerConfig,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_course_editor(
    course_id: str,
    curriculum_form: CurriculumForm,
    basic_form: MetadataForm,
    advanced_form: MetadataForm,
    *,
    settings: Settings | None = None,
    persistence: CoursePersistence | None = None,
    configure_logging: bool = False,
    on_success: Callable[[str], None] | None = None,
    on_error: Callable[[str], None] | None = None,
    on_settled: Callable[[], None] | None = None,
    on_before_commit: Callable[[list[CurriculumOp]], bool] | None = None,
) -> AsyncIterator[CourseController]:
    """Yield a CourseController for one course editing session."""
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_format)

    owned_client = None
    if persistence is None:
        owned_client = create_course_api_client(settings)
        persistence = owned_client

    config = CourseControllerConfig(
        course_id=course_id,
        curriculum_form=curriculum_form,
        basic_form=basic_form,
        advanced_form=advanced_form,
        on_success=on_success,
        on_error=on_error,
        on_settled=on_settled,
        on_before_commit=on_before_commit,
    )
    controller = CourseController(
        config,
        persistence,
        prune_succeeded_on_partial_failure=settings.prune_succeeded_on_partial_failure,
    )
    logger.info("Course editor opened", extra={"course_id": course_id})
    try:
        yield controller
    finally:
        if owned_client is not None:
            await owned_client.aclose()
        logger.info("Course editor closed", extra={"course_id": course_id})
