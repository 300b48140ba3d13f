"""
Shared FastAPI dependencies

Authentication happens upstream; the caller's user id arrives in the
X-User-Id header and every service call is scoped to it.
"""
from fastapi import Header, HTTPException, Request

from behavioral_sandbox.context import SandboxContext


def get_context(request: Request) -> SandboxContext:
    return request.app.state.sandbox_context


async def get_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()
