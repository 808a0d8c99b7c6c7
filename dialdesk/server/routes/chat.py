"""Chat streaming, agent metadata, and health routes."""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..app import require_app, verify_api_key
from ..models import ChatRequest

router = APIRouter()


@router.post("/api/chat/stream", dependencies=[Depends(verify_api_key)])
async def chat_stream(req: ChatRequest):
    """
    Stream one orchestration run as server-sent events.

    Invalid message lists raise NoValidMessages here, before the response
    starts, and are answered with 400.
    """
    app = require_app()
    secrets = req.shared_secrets.model_dump(exclude_none=True) if req.shared_secrets else None
    frames = await app.stream_sse(
        req.messages,
        issue_id=req.issue_id,
        user_id=req.user_id,
        request_context=req.request_context,
        shared_secrets=secrets,
    )
    return StreamingResponse(
        frames,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/api/agents", dependencies=[Depends(verify_api_key)])
async def list_agents():
    return {"agents": require_app().list_agents()}


@router.get("/health")
async def health():
    return {"status": "ok"}
