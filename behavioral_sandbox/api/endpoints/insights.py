"""
Insight Display API Endpoints (Stage 2)

Safe Mode, display consent, displayable insights, feedback and the
display log. Nothing here triggers computation.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from behavioral_sandbox.api.dependencies import get_context, get_user_id
from behavioral_sandbox.context import SandboxContext
from behavioral_sandbox.schemas import (
    DisplayableInsight,
    DisplayConsentRead,
    DisplayLogRead,
    FeedbackRead,
    GrantDisplayConsentRequest,
    InsightMetadata,
    LogDisplayRequest,
    SafeModeRead,
    SafeModeToggleRequest,
    SubmitFeedbackRequest,
)

router = APIRouter(prefix="/sandbox/insights", tags=["insights"])


# =============================================================================
# Safe Mode
# =============================================================================

@router.get("/safe-mode")
async def get_safe_mode(
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    state = await ctx.display.get_safe_mode_status(user_id)
    return {"is_enabled": bool(state and state.is_enabled), "state": state}


@router.post("/safe-mode", response_model=SafeModeRead)
async def toggle_safe_mode(
    req: SafeModeToggleRequest,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.toggle_safe_mode(user_id, req.enabled, req.reason)


# =============================================================================
# Display consent
# =============================================================================

@router.get("/consent", response_model=List[DisplayConsentRead])
async def list_display_consents(
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.get_all_display_consents(user_id)


@router.post("/consent", response_model=DisplayConsentRead)
async def grant_display_consent(
    req: GrantDisplayConsentRequest,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.grant_display_consent(
        user_id,
        req.signal_key,
        prefer_collapsed=req.prefer_collapsed,
        prefer_hidden=req.prefer_hidden,
    )


@router.delete("/consent/{signal_key}", response_model=Optional[DisplayConsentRead])
async def revoke_display_consent(
    signal_key: str,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.revoke_display_consent(user_id, signal_key)


# =============================================================================
# Insights
# =============================================================================

@router.get("", response_model=List[DisplayableInsight])
async def list_insights(
    signal_key: Optional[List[str]] = Query(None),
    include_hidden: bool = Query(False),
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    """Safe Mode is always respected over HTTP"""
    return await ctx.display.get_displayable_insights(
        user_id, signal_keys=signal_key, include_hidden=include_hidden
    )


@router.get("/metadata/{signal_key}", response_model=InsightMetadata)
async def get_metadata(signal_key: str, ctx: SandboxContext = Depends(get_context)):
    return ctx.display.get_insight_metadata(signal_key)


# =============================================================================
# Feedback & display log
# =============================================================================

@router.post("/feedback", response_model=FeedbackRead, status_code=201)
async def submit_feedback(
    req: SubmitFeedbackRequest,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.submit_feedback(
        user_id,
        req.signal_id,
        req.signal_key,
        req.feedback_type,
        reason=req.reason,
        displayed_at=req.displayed_at,
        ui_context=req.ui_context,
    )


@router.get("/feedback", response_model=List[FeedbackRead])
async def feedback_history(
    signal_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.get_feedback_history(user_id, signal_id=signal_id, limit=limit)


@router.post("/display-log", response_model=DisplayLogRead, status_code=201)
async def log_display(
    req: LogDisplayRequest,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.log_display(
        user_id,
        req.signal_id,
        req.signal_key,
        req.display_context,
        expanded=req.expanded,
        dismissed=req.dismissed,
        session_id=req.session_id,
    )


@router.get("/display-log", response_model=List[DisplayLogRead])
async def display_log(
    signal_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.display.get_display_log(user_id, signal_id=signal_id, limit=limit)
