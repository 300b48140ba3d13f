"""
Consent API Endpoints

Compute consent per category. Revoking a category invalidates every
candidate signal computed under it.
"""
from typing import List

from fastapi import APIRouter, Depends

from behavioral_sandbox.api.dependencies import get_context, get_user_id
from behavioral_sandbox.context import SandboxContext
from behavioral_sandbox.schemas import ConsentFlagRead, InvalidateResult

router = APIRouter(prefix="/sandbox/consent", tags=["consent"])


@router.get("", response_model=List[ConsentFlagRead])
async def list_consent_flags(
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.sandbox.get_consent_flags(user_id)


@router.get("/{consent_key}")
async def get_consent(
    consent_key: str,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    enabled = await ctx.sandbox.has_user_consent(user_id, consent_key)
    return {"consent_key": consent_key, "is_enabled": enabled}


@router.post("/{consent_key}/grant", response_model=ConsentFlagRead)
async def grant_consent(
    consent_key: str,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    return await ctx.sandbox.grant_consent(user_id, consent_key)


@router.post("/{consent_key}/revoke", response_model=InvalidateResult)
async def revoke_consent(
    consent_key: str,
    user_id: str = Depends(get_user_id),
    ctx: SandboxContext = Depends(get_context),
):
    """Returns the signals invalidated by the revocation"""
    return await ctx.sandbox.revoke_consent(user_id, consent_key)
