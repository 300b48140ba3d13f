"""
Candidate Signal API Endpoints (Stage 1)
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from behavioral_sandbox.api.dependencies import get_context, get_user_id
from behavioral_sandbox.context import SandboxContext
from behavioral_sandbox.exceptions import ValidationError
from behavioral_sandbox.sandbox_config import DEFAULT_AUDIT_PAGE_SIZE, DEFAULT_SIGNAL_PAGE_SIZE, MAX_SIGNAL_PAGE_SIZE
from behavioral_sandbox.schemas import (
    AuditLogRead,
    CandidateSignalRead,
    ComputeResult,
    ComputeSignalsRequest,
    DeleteSignalRequest,
    InvalidateResult,
    InvalidateSignalsRequest,
    ProvenanceCheck,
    TimeRange,
)

router = APIRouter(prefix="/sandbox/signals", tags=["signals"])


@router.post("/compute", response_model=ComputeResult)
async def compute_signals(
    req: ComputeSignalsRequest,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    """Per-key failures come back in `errors`; the request itself succeeds"""
    return await ctx.sandbox.compute_candidate_signals_for_user(
        user_id,
        signal_keys=req.signal_keys,
        time_range=req.time_range,
        force_recompute=req.force_recompute,
        parameters=req.parameters,
    )


@router.get("", response_model=List[CandidateSignalRead])
async def list_signals(
    signal_key: Optional[List[str]] = Query(None, description="Filter by signal key (repeatable)"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    status: str = Query("candidate"),
    limit: int = Query(DEFAULT_SIGNAL_PAGE_SIZE, ge=1, le=MAX_SIGNAL_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    if (start is None) != (end is None):
        raise ValidationError(
            "Time range filter needs both start and end",
            details={"start": start and start.isoformat(), "end": end and end.isoformat()},
        )
    time_range = TimeRange(start=start, end=end) if start is not None else None
    return await ctx.sandbox.get_candidate_signals(
        user_id,
        signal_keys=signal_key,
        time_range=time_range,
        status=status,
        limit=limit,
        offset=offset,
    )


@router.post("/invalidate", response_model=InvalidateResult)
async def invalidate_signals(
    req: InvalidateSignalsRequest,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    """Called when source events were deleted or edited"""
    return await ctx.sandbox.invalidate_signals_for_deleted_events(user_id, req.event_ids)


@router.get("/audit", response_model=List[AuditLogRead])
async def get_audit_log(
    signal_id: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_AUDIT_PAGE_SIZE, ge=1, le=1000),
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.sandbox.get_audit_log(user_id, signal_id=signal_id, limit=limit)


@router.get("/{signal_id}/provenance", response_model=ProvenanceCheck)
async def verify_provenance(
    signal_id: str,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.sandbox.verify_signal_provenance(user_id, signal_id)


@router.delete("/{signal_id}", response_model=CandidateSignalRead)
async def delete_signal(
    signal_id: str,
    req: Optional[DeleteSignalRequest] = None,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    req = req or DeleteSignalRequest()
    return await ctx.sandbox.delete_signal(user_id, signal_id, reason=req.reason)
