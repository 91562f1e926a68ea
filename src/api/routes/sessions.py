"""
Session API routes.

Endpoints for the story session lifecycle: boot and onboarding, starting a
story or duologue, submitting turns, ending, the quit flow and the
post-session analysis.
"""

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import Response
import structlog

from src.api.dependencies import ExportServiceDep, RegistryDep
from src.api.schemas import (
    AnalysisResponse,
    NoticeListResponse,
    QuitResponse,
    SessionCreate,
    SessionResponse,
    StartDuologueRequest,
    StartStoryRequest,
    TurnRequest,
    TurnResponse,
    TurnSchema,
)
from src.domain.models.analysis import AnalysisRecord
from src.services.export_service import ExportService
from src.services.session_registry import SessionRegistry

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _session_response(registry: SessionRegistry, session_id: str) -> SessionResponse:
    handle = registry.get_handle(session_id)
    orchestrator = handle.orchestrator
    return SessionResponse.from_session(
        orchestrator.snapshot(),
        in_flight=orchestrator.in_flight,
        remaining_seconds=handle.timer.remaining_seconds(),
    )


def _analysis_response(
    record: AnalysisRecord, export_service: ExportService, notices=None
) -> AnalysisResponse:
    return AnalysisResponse(
        analysis=record,
        share_text=export_service.share_text(record.title, record.quote_banner),
        notices=notices or [],
    )


# ============ SESSION CRUD ============


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(request: SessionCreate, registry: RegistryDep):
    """Create a session and leave the loading state.

    First visits go to onboarding; everyone else lands on the menu.
    """
    orchestrator = registry.create(request.creator_id)
    orchestrator.boot(first_visit=request.first_visit)

    log.info(
        "session_created",
        session_id=orchestrator.session_id,
        first_visit=request.first_visit,
    )
    return _session_response(registry, orchestrator.session_id)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, registry: RegistryDep):
    """Current snapshot of a session."""
    return _session_response(registry, session_id)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, registry: RegistryDep):
    """Stop a session's timers and background work and forget it."""
    registry.remove(session_id)


# ============ ONBOARDING ============


@router.post("/{session_id}/onboarding/next", response_model=SessionResponse)
async def next_onboarding_step(session_id: str, registry: RegistryDep):
    registry.get(session_id).advance_onboarding()
    return _session_response(registry, session_id)


@router.post("/{session_id}/onboarding/skip", response_model=SessionResponse)
async def skip_onboarding(session_id: str, registry: RegistryDep):
    registry.get(session_id).complete_onboarding()
    return _session_response(registry, session_id)


# ============ STORY FLOW ============


@router.post("/{session_id}/start", response_model=TurnResponse)
async def start_story(session_id: str, request: StartStoryRequest, registry: RegistryDep):
    """Start an interactive story; returns the generator's opening line.

    A failed opening returns 502 and leaves the session on the menu.
    """
    orchestrator = registry.get(session_id)
    opening = await orchestrator.start_session(request.genre, request.duration_seconds)
    return TurnResponse(
        turn=TurnSchema.from_turn(opening),
        session=_session_response(registry, session_id),
        notices=orchestrator.drain_notices(),
    )


@router.post("/{session_id}/duologue", response_model=TurnResponse)
async def start_duologue(
    session_id: str, request: StartDuologueRequest, registry: RegistryDep
):
    """Start a duologue; further turns are generated in the background."""
    orchestrator = registry.get(session_id)
    opening = await orchestrator.start_duologue(request.genre)
    return TurnResponse(
        turn=TurnSchema.from_turn(opening),
        session=_session_response(registry, session_id),
        notices=orchestrator.drain_notices(),
    )


@router.post("/{session_id}/turns", response_model=TurnResponse)
async def submit_turn(session_id: str, request: TurnRequest, registry: RegistryDep):
    """Submit a human line and wait for the generator's reply.

    turn is null when the reply failed (see notices) or arrived after the
    story ended.
    """
    orchestrator = registry.get(session_id)
    reply = await orchestrator.submit_line(request.text, is_paste=request.is_paste)
    return TurnResponse(
        turn=TurnSchema.from_turn(reply) if reply else None,
        session=_session_response(registry, session_id),
        notices=orchestrator.drain_notices(),
    )


@router.post("/{session_id}/end", response_model=AnalysisResponse)
async def end_story(
    session_id: str, registry: RegistryDep, export_service: ExportServiceDep
):
    """End the story now and run the analysis."""
    orchestrator = registry.get(session_id)
    record = await orchestrator.end_session()
    return _analysis_response(record, export_service, orchestrator.drain_notices())


@router.post("/{session_id}/reset", response_model=SessionResponse)
async def reset_session(session_id: str, registry: RegistryDep):
    """Play again: back to the menu from a completed story."""
    registry.get(session_id).reset()
    return _session_response(registry, session_id)


# ============ QUIT FLOW ============


def _quit_response(registry: SessionRegistry, session_id: str, save=None) -> QuitResponse:
    orchestrator = registry.get(session_id)
    snapshot = orchestrator.snapshot()
    return QuitResponse(
        status=snapshot.status,
        quit_dialog=snapshot.quit_dialog,
        save=save,
        notices=orchestrator.drain_notices(),
    )


@router.post("/{session_id}/quit", response_model=QuitResponse)
async def request_quit(session_id: str, registry: RegistryDep):
    registry.get(session_id).request_quit()
    return _quit_response(registry, session_id)


@router.post("/{session_id}/quit/cancel", response_model=QuitResponse)
async def cancel_quit(session_id: str, registry: RegistryDep):
    registry.get(session_id).cancel_quit()
    return _quit_response(registry, session_id)


@router.post("/{session_id}/quit/confirm", response_model=QuitResponse)
async def confirm_quit(session_id: str, registry: RegistryDep):
    registry.get(session_id).confirm_quit()
    return _quit_response(registry, session_id)


@router.post("/{session_id}/quit/save", response_model=QuitResponse)
async def save_and_quit(session_id: str, registry: RegistryDep):
    """Save the unfinished story, then return to the menu."""
    result = await registry.get(session_id).save_and_quit()
    return _quit_response(registry, session_id, save=result)


@router.post("/{session_id}/quit/discard", response_model=QuitResponse)
async def discard_and_quit(session_id: str, registry: RegistryDep):
    registry.get(session_id).discard_and_quit()
    return _quit_response(registry, session_id)


# ============ ANALYSIS ============


@router.get("/{session_id}/analysis", response_model=AnalysisResponse)
async def get_analysis(
    session_id: str, registry: RegistryDep, export_service: ExportServiceDep
):
    """Analysis of the completed story (404 until the story is complete)."""
    record = registry.get(session_id).analysis
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} has no analysis yet",
        )
    return _analysis_response(record, export_service)


@router.get(
    "/{session_id}/analysis/export",
    response_class=Response,
    summary="Export the analysis",
    description="Export the analysis to JSON, Markdown, or CSV format",
)
async def export_analysis(
    session_id: str,
    registry: RegistryDep,
    export_service: ExportServiceDep,
    format: str = Query(
        "json",
        description="Export format: json, markdown, or csv",
        pattern="^(json|markdown|csv)$",
    ),
) -> Response:
    record = registry.get(session_id).analysis
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} has no analysis yet",
        )

    data = export_service.export_analysis(record, format)
    content_type, extension = EXPORT_MEDIA_TYPES[format]
    return Response(
        content=data,
        media_type=content_type,
        headers={
            "Content-Disposition": f'attachment; filename="story_{session_id[:8]}.{extension}"',
        },
    )


@router.get("/{session_id}/notices", response_model=NoticeListResponse)
async def get_notices(session_id: str, registry: RegistryDep):
    """Pending notices; each notice is returned once."""
    return NoticeListResponse(notices=registry.get(session_id).drain_notices())


EXPORT_MEDIA_TYPES = {
    "json": ("application/json", "json"),
    "markdown": ("text/markdown", "md"),
    "csv": ("text/csv", "csv"),
}
