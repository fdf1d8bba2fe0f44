"""Payload Builders — map curriculum entities and dirty metadata onto wire payloads.

Invariants:
    - Entity payloads are built from the full entity read from the snapshot
    - Course payloads contain exactly the keys present in the dirty changes
    - Output is a plain JSON-ready dict (camelCase keys)
"""

import re
from typing import Any

from curriculum_sync.core.curriculum import Lesson, Quiz, Section
from curriculum_sync.schemas.payloads import (
    CoursePayload,
    LessonContentMetadata,
    LessonPayload,
    QuizOptionPayload,
    QuizPayload,
    QuizQuestionPayload,
    SectionPayload,
)

_LEADING_INT = re.compile(r"^\s*(\d+)")

# form key -> CoursePayload field, for keys that pass through unchanged
_BASIC_PASSTHROUGH = (
    "course_id", "title", "category", "sub_category", "language", "level",
    "sub_title", "subtitle_language", "topics", "price", "discount_price", "currency",
)
_ADVANCED_PASSTHROUGH = ("description", "thumbnail", "trailer")
_ADVANCED_TEXT_LISTS = ("learning_outcomes", "target_audience", "requirements")


def _parse_size(size: str | None) -> int | None:
    if not size:
        return None
    match = _LEADING_INT.match(size)
    return int(match.group(1)) if match else None


def _item_text(item: Any) -> str:
    return item["text"] if isinstance(item, dict) else getattr(item, "text", str(item))


def build_section_payload(section: Section) -> dict:
    return SectionPayload(
        title=section.title,
        description=section.description,
        order=section.order,
        is_published=section.is_published,
    ).to_wire()


def build_lesson_payload(lesson: Lesson) -> dict:
    content = lesson.content
    file = content.file if content else None
    metadata = None
    if file is not None:
        metadata = LessonContentMetadata(
            file_name=file.name,
            mime_type=file.type,
            file_size=_parse_size(file.size),
            title=file.name,
            url=file.url,
        )
    return LessonPayload(
        title=lesson.title,
        description=lesson.description,
        order=lesson.order,
        is_published=lesson.is_published,
        estimated_duration=lesson.estimated_duration,
        content_type=content.type if content else None,
        content_url=(file.url if file else None) or (content.url if content else None),
        is_preview=content.is_preview if content else None,
        metadata=metadata,
    ).to_wire()


def build_quiz_payload(quiz: Quiz) -> dict:
    return QuizPayload(
        title=quiz.title,
        description=quiz.description,
        max_attempts=quiz.max_attempts,
        show_results=quiz.show_results,
        is_required=quiz.is_required,
        passing_score=quiz.passing_score,
        time_limit=quiz.time_limit,
        randomize_questions=quiz.randomize_questions,
        questions=[
            QuizQuestionPayload(
                question=q.question,
                type=q.type,
                explanation=q.explanation,
                points=q.points,
                required=q.required,
                time_limit=q.time_limit,
                options=[
                    QuizOptionPayload(value=o.text, is_correct=o.is_correct)
                    for o in q.options
                ],
            )
            for q in quiz.questions
        ],
    ).to_wire()


def build_course_payload(basic: dict[str, Any], advanced: dict[str, Any]) -> dict:
    """One combined course update from dirty basic + advanced changes."""
    fields: dict[str, Any] = {
        key: basic[key] for key in _BASIC_PASSTHROUGH if key in basic
    }
    if "duration" in basic:
        duration = basic["duration"] or {}
        fields["duration_unit"] = duration.get("unit")
        fields["duration_value"] = duration.get("value")
    for key in _ADVANCED_PASSTHROUGH:
        if key in advanced:
            fields[key] = advanced[key]
    for key in _ADVANCED_TEXT_LISTS:
        if key in advanced:
            items = advanced[key]
            fields[key] = None if items is None else [_item_text(i) for i in items]
    return CoursePayload(**fields).to_wire()
