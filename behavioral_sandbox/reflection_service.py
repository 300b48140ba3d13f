"""
STAGE 2.1: REFLECTION SERVICE
=============================

User-owned free text, optionally linked to a signal, project or space.

Links are references only. Content is stored and returned as written:
no sentiment analysis, no clustering, no summarization, and nothing here
feeds back into signal computation, consent or Safe Mode.
"""
from typing import Any, Dict, List, Optional, Sequence

from behavioral_sandbox.error_handler import storage_errors
from behavioral_sandbox.exceptions import EmptyReflectionError, NotFoundError, ValidationError
from behavioral_sandbox.infrastructure.uow import UoWProvider
from behavioral_sandbox.logging_config import get_logger
from behavioral_sandbox.models import ReflectionEntry, utcnow
from behavioral_sandbox.sandbox_config import DEFAULT_REFLECTION_PAGE_SIZE, REFLECTION_ERROR_PREFIX
from behavioral_sandbox.schemas import ReflectionRead, ReflectionStats

logger = get_logger(__name__)


def _clean_content(content: Optional[str]) -> str:
    if content is None or not str(content).strip():
        raise EmptyReflectionError()
    return str(content)


def _clean_tags(tags: Optional[Sequence[str]]) -> List[str]:
    """Trimmed, non-empty, first occurrence wins"""
    cleaned = []
    for tag in tags or []:
        if not isinstance(tag, str):
            raise ValidationError("Tags must be strings", details={"tag": repr(tag)})
        tag = tag.strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


class ReflectionService:
    def __init__(self, uow_provider: UoWProvider):
        self._uow = uow_provider

    async def create_reflection(
        self,
        user_id: str,
        content: str,
        linked_signal_id: Optional[str] = None,
        linked_project_id: Optional[str] = None,
        linked_space_id: Optional[str] = None,
        user_tags: Optional[Sequence[str]] = None,
        self_reported_context: Optional[Dict[str, Any]] = None,
    ) -> ReflectionRead:
        content = _clean_content(content)
        tags = _clean_tags(user_tags)

        with storage_errors(REFLECTION_ERROR_PREFIX, "create reflection", {"user_id": user_id}):
            async with self._uow() as uow:
                now = utcnow()
                entry = ReflectionEntry(
                    user_id=user_id,
                    content=content,
                    linked_signal_id=linked_signal_id,
                    linked_project_id=linked_project_id,
                    linked_space_id=linked_space_id,
                    user_tags=tags,
                    self_reported_context=self_reported_context or {},
                    created_at=now,
                    updated_at=now,
                )
                await uow.reflections.save(uow.session, entry)
                result = ReflectionRead.model_validate(entry)

        logger.info("reflection_created", user_id=user_id, reflection_id=result.id)
        return result

    async def get_reflections(
        self,
        user_id: str,
        linked_signal_id: Optional[str] = None,
        tag: Optional[str] = None,
        limit: int = DEFAULT_REFLECTION_PAGE_SIZE,
        offset: int = 0,
    ) -> List[ReflectionRead]:
        """Newest first. Soft-deleted entries are never returned."""
        if limit < 1 or offset < 0:
            raise ValidationError("Invalid pagination", details={"limit": limit, "offset": offset})

        with storage_errors(REFLECTION_ERROR_PREFIX, "get reflections", {"user_id": user_id}):
            async with self._uow() as uow:
                if tag is None:
                    rows = await uow.reflections.list(
                        uow.session, user_id, linked_signal_id, limit, offset
                    )
                else:
                    # Tags live in a JSON column; filter in Python for portability
                    rows = [
                        r for r in await uow.reflections.list_all(uow.session, user_id)
                        if tag in (r.user_tags or [])
                        and (linked_signal_id is None or r.linked_signal_id == linked_signal_id)
                    ]
                    rows.sort(key=lambda r: r.id)
                    rows.sort(key=lambda r: r.created_at, reverse=True)
                    rows = rows[offset:offset + limit]
                return [ReflectionRead.model_validate(r) for r in rows]

    async def get_reflection(self, user_id: str, reflection_id: str) -> ReflectionRead:
        with storage_errors(REFLECTION_ERROR_PREFIX, "get reflection", {"user_id": user_id}):
            async with self._uow() as uow:
                entry = await uow.reflections.get(uow.session, user_id, reflection_id)
                if entry is None:
                    raise NotFoundError("Reflection", reflection_id)
                return ReflectionRead.model_validate(entry)

    async def update_reflection(
        self,
        user_id: str,
        reflection_id: str,
        content: Optional[str] = None,
        user_tags: Optional[Sequence[str]] = None,
        self_reported_context: Optional[Dict[str, Any]] = None,
    ) -> ReflectionRead:
        """Only the given fields change; links are fixed at creation"""
        if content is not None:
            content = _clean_content(content)
        tags = _clean_tags(user_tags) if user_tags is not None else None

        with storage_errors(REFLECTION_ERROR_PREFIX, "update reflection", {"user_id": user_id}):
            async with self._uow() as uow:
                entry = await uow.reflections.get(uow.session, user_id, reflection_id)
                if entry is None:
                    raise NotFoundError("Reflection", reflection_id)

                if content is not None:
                    entry.content = content
                if tags is not None:
                    entry.user_tags = tags
                if self_reported_context is not None:
                    entry.self_reported_context = dict(self_reported_context)
                entry.updated_at = utcnow()

                await uow.reflections.save(uow.session, entry)
                return ReflectionRead.model_validate(entry)

    async def delete_reflection(self, user_id: str, reflection_id: str) -> None:
        """Soft delete: sets deleted_at, the row stays in storage"""
        with storage_errors(REFLECTION_ERROR_PREFIX, "delete reflection", {"user_id": user_id}):
            async with self._uow() as uow:
                entry = await uow.reflections.get(uow.session, user_id, reflection_id)
                if entry is None:
                    raise NotFoundError("Reflection", reflection_id)
                entry.deleted_at = utcnow()
                await uow.reflections.save(uow.session, entry)

        logger.info("reflection_deleted", user_id=user_id, reflection_id=reflection_id)

    async def get_user_tags(self, user_id: str) -> List[str]:
        """Distinct tags, sorted"""
        with storage_errors(REFLECTION_ERROR_PREFIX, "get tags", {"user_id": user_id}):
            async with self._uow() as uow:
                rows = await uow.reflections.list_all(uow.session, user_id)
        return sorted({tag for r in rows for tag in (r.user_tags or [])})

    async def get_reflection_stats(self, user_id: str) -> ReflectionStats:
        """Counts only"""
        with storage_errors(REFLECTION_ERROR_PREFIX, "get reflection stats", {"user_id": user_id}):
            async with self._uow() as uow:
                counts = await uow.reflections.counts(uow.session, user_id)
                rows = await uow.reflections.list_all(uow.session, user_id)

        tags = {tag for r in rows for tag in (r.user_tags or [])}
        return ReflectionStats(
            total_count=counts["total"],
            linked_to_signal_count=counts["linked"],
            distinct_tag_count=len(tags),
            first_created_at=counts["first"],
            last_created_at=counts["last"],
        )
