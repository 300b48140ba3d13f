"""
Reflection API Endpoints (Stage 2.1)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from behavioral_sandbox.api.dependencies import get_context, get_user_id
from behavioral_sandbox.context import SandboxContext
from behavioral_sandbox.sandbox_config import DEFAULT_REFLECTION_PAGE_SIZE
from behavioral_sandbox.schemas import ReflectionCreate, ReflectionRead, ReflectionStats, ReflectionUpdate

router = APIRouter(prefix="/sandbox/reflections", tags=["reflections"])


@router.post("", response_model=ReflectionRead, status_code=201)
async def create_reflection(
    req: ReflectionCreate,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.reflections.create_reflection(user_id, **req.model_dump())


@router.get("", response_model=List[ReflectionRead])
async def list_reflections(
    linked_signal_id: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_REFLECTION_PAGE_SIZE, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.reflections.get_reflections(
        user_id, linked_signal_id=linked_signal_id, tag=tag, limit=limit, offset=offset
    )


@router.get("/stats", response_model=ReflectionStats)
async def reflection_stats(
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.reflections.get_reflection_stats(user_id)


@router.get("/tags", response_model=List[str])
async def reflection_tags(
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.reflections.get_user_tags(user_id)


@router.get("/{reflection_id}", response_model=ReflectionRead)
async def get_reflection(
    reflection_id: str,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.reflections.get_reflection(user_id, reflection_id)


@router.patch("/{reflection_id}", response_model=ReflectionRead)
async def update_reflection(
    reflection_id: str,
    req: ReflectionUpdate,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.reflections.update_reflection(
        user_id,
        reflection_id,
        content=req.content,
        user_tags=req.user_tags,
        self_reported_context=req.self_reported_context,
    )


@router.delete("/{reflection_id}", status_code=204)
async def delete_reflection(
    reflection_id: str,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    await ctx.reflections.delete_reflection(user_id, reflection_id)
