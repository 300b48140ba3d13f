"""
Repositories - CRUD only, always scoped by user_id
==================================================

No business rules here: consent gating, lifecycle and validation live in
the services. Every query carries an explicit user_id filter even though
the storage layer is expected to enforce row ownership itself.
"""
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select

from behavioral_sandbox.models import (
    BehavioralEvent,
    CandidateSignal,
    InsightDisplayConsent,
    InsightDisplayLog,
    InsightFeedback,
    ReflectionEntry,
    SafeModeState,
    SignalAuditLog,
    UserConsentFlag,
)


class EventRepository:
    """Read-only access to the external behavioral event log"""

    async def list_for_window(self, session, user_id: str, start: datetime, end: datetime) -> List[BehavioralEvent]:
        """Non-superseded events in [start, end], oldest first"""
        stmt = (
            select(BehavioralEvent)
            .where(
                BehavioralEvent.user_id == user_id,
                BehavioralEvent.occurred_at >= start,
                BehavioralEvent.occurred_at <= end,
                BehavioralEvent.superseded_by.is_(None),
            )
            .order_by(BehavioralEvent.occurred_at.asc(), BehavioralEvent.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_ids(self, session, user_id: str, event_ids: Sequence[str]) -> List[BehavioralEvent]:
        if not event_ids:
            return []
        stmt = select(BehavioralEvent).where(
            BehavioralEvent.user_id == user_id,
            BehavioralEvent.id.in_(list(event_ids)),
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())


class ConsentRepository:
    async def get(self, session, user_id: str, consent_key: str) -> Optional[UserConsentFlag]:
        stmt = select(UserConsentFlag).where(
            UserConsentFlag.user_id == user_id,
            UserConsentFlag.consent_key == consent_key,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, session, user_id: str) -> List[UserConsentFlag]:
        stmt = (
            select(UserConsentFlag)
            .where(UserConsentFlag.user_id == user_id)
            .order_by(UserConsentFlag.consent_key)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, session, flag: UserConsentFlag) -> None:
        session.add(flag)
        await session.flush()


class SignalRepository:
    async def get(self, session, user_id: str, signal_id: str) -> Optional[CandidateSignal]:
        stmt = select(CandidateSignal).where(
            CandidateSignal.user_id == user_id,
            CandidateSignal.signal_id == signal_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_same_range(
        self,
        session,
        user_id: str,
        signal_key: str,
        signal_version: str,
        start: datetime,
        end: datetime,
    ) -> List[CandidateSignal]:
        """Candidate rows for exactly this key, version and range, newest first"""
        stmt = (
            select(CandidateSignal)
            .where(
                CandidateSignal.user_id == user_id,
                CandidateSignal.signal_key == signal_key,
                CandidateSignal.signal_version == signal_version,
                CandidateSignal.status == "candidate",
                CandidateSignal.time_range_start == start,
                CandidateSignal.time_range_end == end,
            )
            .order_by(CandidateSignal.computed_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list(
        self,
        session,
        user_id: str,
        signal_keys: Optional[Sequence[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = "candidate",
        limit: int = 100,
        offset: int = 0,
    ) -> List[CandidateSignal]:
        stmt = select(CandidateSignal).where(CandidateSignal.user_id == user_id)

        if status is not None:
            stmt = stmt.where(CandidateSignal.status == status)
        if signal_keys:
            stmt = stmt.where(CandidateSignal.signal_key.in_(list(signal_keys)))
        if start is not None:
            stmt = stmt.where(CandidateSignal.time_range_start >= start)
        if end is not None:
            stmt = stmt.where(CandidateSignal.time_range_end <= end)

        stmt = (
            stmt.order_by(CandidateSignal.computed_at.desc(), CandidateSignal.signal_id)
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_candidates(
        self, session, user_id: str, signal_keys: Optional[Sequence[str]] = None
    ) -> List[CandidateSignal]:
        """Every row still in candidate status (no paging; used by invalidation)"""
        stmt = select(CandidateSignal).where(
            CandidateSignal.user_id == user_id,
            CandidateSignal.status == "candidate",
        )
        if signal_keys is not None:
            stmt = stmt.where(CandidateSignal.signal_key.in_(list(signal_keys)))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, session, signal: CandidateSignal) -> None:
        """Add + flush to get generated ID"""
        session.add(signal)
        await session.flush()

    async def update(self, session, signal: CandidateSignal) -> None:
        await session.flush()


class AuditRepository:
    async def add(self, session, entry: SignalAuditLog) -> None:
        session.add(entry)
        await session.flush()

    async def list(
        self, session, user_id: str, signal_id: Optional[str] = None, limit: int = 100
    ) -> List[SignalAuditLog]:
        stmt = select(SignalAuditLog).where(SignalAuditLog.user_id == user_id)
        if signal_id is not None:
            stmt = stmt.where(SignalAuditLog.signal_id == signal_id)
        stmt = stmt.order_by(SignalAuditLog.created_at.desc()).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())


class DisplayConsentRepository:
    async def get(self, session, user_id: str, signal_key: str) -> Optional[InsightDisplayConsent]:
        stmt = select(InsightDisplayConsent).where(
            InsightDisplayConsent.user_id == user_id,
            InsightDisplayConsent.signal_key == signal_key,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, session, user_id: str) -> List[InsightDisplayConsent]:
        stmt = (
            select(InsightDisplayConsent)
            .where(InsightDisplayConsent.user_id == user_id)
            .order_by(InsightDisplayConsent.signal_key)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, session, consent: InsightDisplayConsent) -> None:
        session.add(consent)
        await session.flush()


class SafeModeRepository:
    async def get(self, session, user_id: str) -> Optional[SafeModeState]:
        stmt = select(SafeModeState).where(SafeModeState.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, session, state: SafeModeState) -> None:
        session.add(state)
        await session.flush()


class FeedbackRepository:
    async def add(self, session, feedback: InsightFeedback) -> None:
        session.add(feedback)
        await session.flush()

    async def list(
        self, session, user_id: str, signal_id: Optional[str] = None, limit: int = 100
    ) -> List[InsightFeedback]:
        stmt = select(InsightFeedback).where(InsightFeedback.user_id == user_id)
        if signal_id is not None:
            stmt = stmt.where(InsightFeedback.signal_id == signal_id)
        stmt = stmt.order_by(InsightFeedback.feedback_at.desc()).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())


class DisplayLogRepository:
    async def add(self, session, entry: InsightDisplayLog) -> None:
        session.add(entry)
        await session.flush()

    async def list(
        self, session, user_id: str, signal_id: Optional[str] = None, limit: int = 100
    ) -> List[InsightDisplayLog]:
        stmt = select(InsightDisplayLog).where(InsightDisplayLog.user_id == user_id)
        if signal_id is not None:
            stmt = stmt.where(InsightDisplayLog.signal_id == signal_id)
        stmt = stmt.order_by(InsightDisplayLog.displayed_at.desc()).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())


class ReflectionRepository:
    """Soft-deleted rows are invisible to every read here"""

    async def get(self, session, user_id: str, reflection_id: str) -> Optional[ReflectionEntry]:
        stmt = select(ReflectionEntry).where(
            ReflectionEntry.user_id == user_id,
            ReflectionEntry.id == reflection_id,
            ReflectionEntry.deleted_at.is_(None),
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        session,
        user_id: str,
        linked_signal_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ReflectionEntry]:
        stmt = select(ReflectionEntry).where(
            ReflectionEntry.user_id == user_id,
            ReflectionEntry.deleted_at.is_(None),
        )
        if linked_signal_id is not None:
            stmt = stmt.where(ReflectionEntry.linked_signal_id == linked_signal_id)
        stmt = (
            stmt.order_by(ReflectionEntry.created_at.desc(), ReflectionEntry.id)
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_all(self, session, user_id: str) -> List[ReflectionEntry]:
        stmt = select(ReflectionEntry).where(
            ReflectionEntry.user_id == user_id,
            ReflectionEntry.deleted_at.is_(None),
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def counts(self, session, user_id: str) -> dict:
        stmt = select(
            func.count(ReflectionEntry.id),
            func.min(ReflectionEntry.created_at),
            func.max(ReflectionEntry.created_at),
        ).where(
            ReflectionEntry.user_id == user_id,
            ReflectionEntry.deleted_at.is_(None),
        )
        total, first, last = (await session.execute(stmt)).one()
        linked_stmt = select(func.count(ReflectionEntry.id)).where(
            ReflectionEntry.user_id == user_id,
            ReflectionEntry.deleted_at.is_(None),
            ReflectionEntry.linked_signal_id.is_not(None),
        )
        linked = (await session.execute(linked_stmt)).scalar_one()
        return {"total": total, "linked": linked, "first": first, "last": last}

    async def save(self, session, entry: ReflectionEntry) -> None:
        session.add(entry)
        await session.flush()
