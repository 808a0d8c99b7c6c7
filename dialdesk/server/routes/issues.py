"""Internal issue-state route used by the call-event collaborator."""

from fastapi import APIRouter, Depends, HTTPException

from ...protocols import TranscriptEntry
from ..app import require_app, verify_service_key
from ..models import IssueStateUpdate

router = APIRouter()


@router.post("/api/issues/{issue_id}/state", dependencies=[Depends(verify_service_key)])
async def update_issue_state(issue_id: str, req: IssueStateUpdate):
    app = require_app()
    entries = [
        TranscriptEntry(role=e.role, content=e.content, agent=e.agent)
        for e in req.transcript
    ]
    try:
        await app.apply_external_update(
            issue_id,
            agent=req.agent,
            transcript=entries,
            status=req.status,
        )
    except ValueError as e:
        raise HTTPException(422, str(e))
    return {"status": "ok", "issue_id": issue_id}
