"""Draft staging API endpoints"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from commit.orchestrator import CommitOrchestrator
from .actor import Actor
from .dependencies import get_current_actor, get_stage_manager, get_commit_orchestrator
from .draft import Draft
from .schemas import (
    CommitResponse,
    DraftCreate,
    DraftResponse,
    ItemStage,
    ReadyCheckResponse,
    SectionStage,
)
from .stage_manager import StageManager
from .status import DraftState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drafts", tags=["drafts"])

# HTTP status per final commit state
COMMIT_STATUS_CODES = {
    DraftState.COMMITTED: status.HTTP_200_OK,
    DraftState.CONFLICT: status.HTTP_409_CONFLICT,
    DraftState.FAILED: status.HTTP_502_BAD_GATEWAY,
}


def _draft_response(draft: Draft) -> DraftResponse:
    return DraftResponse(**draft.to_dict())


@router.post("", response_model=DraftResponse, status_code=status.HTTP_201_CREATED)
def create_draft(
    body: DraftCreate,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    """Open an empty draft."""
    return _draft_response(manager.create(actor, body.kind))


@router.post("/items", response_model=DraftResponse, status_code=status.HTTP_201_CREATED)
def stage_item_new_draft(
    body: ItemStage,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    """Stage a line into a brand new draft."""
    draft = manager.add(actor, body.ref_id, body.quantity, kind=body.kind, item_id=body.item_id)
    return _draft_response(draft)


@router.get("/{session_id}", response_model=DraftResponse)
def get_draft(
    session_id: str,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    return _draft_response(manager.get(actor, session_id))


@router.post("/{session_id}/items", response_model=DraftResponse)
def stage_item(
    session_id: str,
    body: ItemStage,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    """Stage or replace a line. Returns the draft with its running total."""
    draft = manager.add(actor, body.ref_id, body.quantity, session_id=session_id, item_id=body.item_id)
    return _draft_response(draft)


@router.delete("/{session_id}/items/{item_id}", response_model=DraftResponse)
def unstage_item(
    session_id: str,
    item_id: str,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    """Unstage a line (idempotent)."""
    return _draft_response(manager.remove(actor, session_id, item_id))


@router.put("/{session_id}/sections/{section}", response_model=DraftResponse)
def stage_section(
    session_id: str,
    section: str,
    body: SectionStage,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    """Stage the fields of a registration section."""
    return _draft_response(manager.set_section(actor, session_id, section, body.fields))


@router.delete("/{session_id}/sections/{section}", response_model=DraftResponse)
def unstage_section(
    session_id: str,
    section: str,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    return _draft_response(manager.remove_section(actor, session_id, section))


@router.post("/{session_id}/ready-check", response_model=ReadyCheckResponse)
def ready_check(
    session_id: str,
    actor: Actor = Depends(get_current_actor),
    manager: StageManager = Depends(get_stage_manager),
):
    """Run every business rule without committing."""
    return ReadyCheckResponse(**manager.check(actor, session_id).to_dict())


@router.post(
    "/{session_id}/commit",
    response_model=CommitResponse,
    responses={409: {"model": CommitResponse}, 502: {"model": CommitResponse}},
)
def commit_draft(
    session_id: str,
    actor: Actor = Depends(get_current_actor),
    orchestrator: CommitOrchestrator = Depends(get_commit_orchestrator),
):
    """Commit the draft to the durable backend.

    COMMITTED returns 200, CONFLICT 409 and FAILED 502, each with the
    commit result as body. Rejections before the write phase (validation,
    lock, not found) use the standard error body.
    """
    result = orchestrator.commit(actor, session_id)
    body = CommitResponse(**result.to_dict())
    return JSONResponse(
        content=body.model_dump(mode="json"),
        status_code=COMMIT_STATUS_CODES[result.status],
    )
