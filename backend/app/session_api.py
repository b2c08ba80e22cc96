"""
Session API Routes - recording session lifecycle and step editing
"""

from fastapi import APIRouter, Depends, Request

from models import (
    AddStepRequest,
    CreateSessionRequest,
    UpdateSessionRequest,
    UpdateSettingsRequest,
    UpdateStepRequest,
)
from recorder.core import RecordingSessionStore

router = APIRouter(prefix="/api/session", tags=["sessions"])


def get_store(request: Request) -> RecordingSessionStore:
    """Recording session store created by the application lifespan"""
    return request.app.state.store


def _session_data(session) -> dict:
    return session.model_dump(mode="json")


# ============ Sessions ============

@router.post("/new")
async def create_session(
    request: CreateSessionRequest,
    store: RecordingSessionStore = Depends(get_store)
):
    """Create a new recording session and bind a browser context to it"""
    session = await store.create_session(request)
    return {
        "success": True,
        "data": {"session_id": session.id, "session": _session_data(session)}
    }


@router.get("")
async def list_sessions(store: RecordingSessionStore = Depends(get_store)):
    """List all sessions, newest first"""
    sessions = await store.list_sessions()
    return {"success": True, "data": [_session_data(s) for s in sessions]}


@router.get("/{session_id}")
async def get_session(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    session = await store.get_session(session_id)
    return {"success": True, "data": _session_data(session)}


@router.put("/{session_id}")
async def update_session(
    session_id: str,
    request: UpdateSessionRequest,
    store: RecordingSessionStore = Depends(get_store)
):
    """Rename a session or change its target URL"""
    session = await store.update_session(session_id, request)
    return {"success": True, "data": _session_data(session)}


@router.delete("/{session_id}")
async def delete_session(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    """Delete a session in any state, its steps and its browser context"""
    await store.delete_session(session_id)
    return {"success": True, "message": f"Session {session_id} deleted"}


# ============ Recording Lifecycle ============

@router.post("/{session_id}/start")
async def start_recording(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    session = await store.start_recording(session_id)
    return {"success": True, "data": {"status": session.status.value, "session": _session_data(session)}}


@router.post("/{session_id}/pause")
async def pause_recording(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    session = await store.pause_recording(session_id)
    return {"success": True, "data": {"status": session.status.value}}


@router.post("/{session_id}/resume")
async def resume_recording(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    session = await store.resume_recording(session_id)
    return {"success": True, "data": {"status": session.status.value}}


@router.post("/{session_id}/stop")
async def stop_recording(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    """Stop recording; stopping an already stopped session succeeds"""
    session = await store.stop_recording(session_id)
    return {"success": True, "data": {"status": session.status.value}}


@router.post("/{session_id}/complete")
async def complete_session(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    session = await store.complete_session(session_id)
    return {"success": True, "data": {"status": session.status.value}}


@router.post("/{session_id}/driver")
async def attach_driver(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    """Re-bind a browser context, e.g. for a session hydrated after a restart"""
    session = await store.attach_driver(session_id)
    return {"success": True, "data": _session_data(session)}


# ============ Steps ============

@router.get("/{session_id}/steps")
async def get_steps(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    steps = await store.get_steps(session_id)
    return {"success": True, "data": [step.model_dump(mode="json") for step in steps]}


@router.post("/{session_id}/step")
async def add_step(
    session_id: str,
    request: AddStepRequest,
    store: RecordingSessionStore = Depends(get_store)
):
    """Append a step; fallback selectors are computed from the session's strategies"""
    step = await store.add_step(session_id, request)
    return {"success": True, "data": step.model_dump(mode="json")}


@router.put("/{session_id}/step/{step_id}")
async def update_step(
    session_id: str,
    step_id: str,
    request: UpdateStepRequest,
    store: RecordingSessionStore = Depends(get_store)
):
    step = await store.update_step(session_id, step_id, request)
    return {"success": True, "data": step.model_dump(mode="json")}


@router.delete("/{session_id}/step/{step_id}")
async def remove_step(session_id: str, step_id: str, store: RecordingSessionStore = Depends(get_store)):
    await store.remove_step(session_id, step_id)
    return {"success": True, "message": f"Step {step_id} removed"}


@router.post("/{session_id}/step/{step_id}/heal")
async def heal_step(session_id: str, step_id: str, store: RecordingSessionStore = Depends(get_store)):
    """Resolve a step's selector against the live page, trying fallbacks in order"""
    result = await store.heal_step(session_id, step_id)
    return {"success": True, "data": result.to_dict()}


# ============ Settings & Validation ============

@router.post("/{session_id}/settings")
async def update_settings(
    session_id: str,
    request: UpdateSettingsRequest,
    store: RecordingSessionStore = Depends(get_store)
):
    settings = await store.update_settings(session_id, request)
    return {"success": True, "data": settings.model_dump(mode="json")}


@router.post("/{session_id}/validate")
async def validate_session(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    report = await store.validate_session(session_id)
    return {"success": True, "data": report.model_dump()}
