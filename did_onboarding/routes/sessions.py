"""
RYT DID Session API
HTTP surface of the onboarding state machine and its step handlers.
"""

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, File, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from did_onboarding import session_store, wizard
from did_onboarding.config import config
from did_onboarding.errors import (
    CaptchaFailed, ExtractionError, MintError, NotConnected, OnboardingError, StepMismatch, UploadError
)
from did_onboarding.state_machine import DIDSession, steps_config


router = APIRouter()


# Allowed MIME types
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png"}


class SessionView(BaseModel):
    """Session state as seen by the presentation layer."""
    session_id: str
    current_step: int
    current_step_name: str
    step_label: str
    progress: int
    is_step_completed: bool
    verification_score: int
    skipped_identity_verification: bool
    did: str
    did_data: Dict[str, Any]
    can_advance: bool
    can_retreat: bool
    revision: int


class WalletRequest(BaseModel):
    address: Optional[str] = None
    signature: Optional[str] = None
    message: Optional[str] = None


class CaptchaRequest(BaseModel):
    token: str


class StepConfig(BaseModel):
    step: int
    name: str
    label: str
    progress: int


def session_view(session_id: str, session: DIDSession) -> SessionView:
    state = session.snapshot().to_dict()
    return SessionView(
        session_id=session_id,
        did=session.did_string(),
        can_advance=session.can_advance(),
        can_retreat=session.can_retreat(),
        revision=session.revision,
        **state
    )


def get_session_or_404(session_id: str) -> DIDSession:
    session = session_store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}"
        )
    return session


def raise_for_error(error: OnboardingError) -> None:
    """Translate a collaborator failure into an HTTP error."""
    if isinstance(error, StepMismatch):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, (NotConnected, CaptchaFailed)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, (UploadError, ExtractionError, MintError)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    raise HTTPException(status_code=code, detail=str(error)) from error


def validate_file(file: UploadFile, allowed_types: set, field_name: str) -> None:
    """Validate file MIME type."""
    if file.content_type not in allowed_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field_name} file type. Expected: {sorted(allowed_types)}, got: {file.content_type}"
        )


async def read_and_validate_file(file: UploadFile, max_size: int = config.MAX_FILE_SIZE) -> bytes:
    """Read file content and validate size."""
    content = await file.read()

    if len(content) > max_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File {file.filename} exceeds maximum size of {max_size // (1024*1024)}MB"
        )

    if len(content) == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File {file.filename} is empty"
        )

    return content


# ============ Lifecycle ============

@router.get("/steps", response_model=List[StepConfig])
async def list_steps():
    """Stepper configuration: label and progress per step."""
    return steps_config()


@router.post("/sessions", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def create_session():
    """Start a wizard session in its initial state."""
    session_id, session = session_store.create()
    return session_view(session_id, session)


@router.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(session_id: str):
    return session_view(session_id, get_session_or_404(session_id))


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(session_id: str):
    if not session_store.discard(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}"
        )


@router.get("/sessions/{session_id}/did")
async def get_did(session_id: str):
    return {"did": get_session_or_404(session_id).did_string()}


# ============ Navigation ============
# Mutating routes are sync (or hand off to the threadpool): wizard handlers
# may wait on the session's handler lock and block on collaborator calls.

@router.post("/sessions/{session_id}/next", response_model=SessionView)
def next_step(session_id: str):
    """Next. Ignored unless the current step is completed."""
    session = get_session_or_404(session_id)
    wizard.next_step(session)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/back", response_model=SessionView)
def previous_step(session_id: str):
    """Back. Ignored on the CAPTCHA step."""
    session = get_session_or_404(session_id)
    wizard.previous_step(session)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/skip", response_model=SessionView)
def skip_identity_verification(session_id: str):
    """Skip ID capture with demo data and a reduced score (ID image or selfie step only)."""
    session = get_session_or_404(session_id)
    try:
        wizard.skip_identity_verification(session)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


# ============ Steps ============

@router.post("/sessions/{session_id}/wallet", response_model=SessionView)
def connect_wallet(session_id: str, body: WalletRequest):
    session = get_session_or_404(session_id)
    try:
        wizard.register_wallet(session, body.address, body.signature, body.message)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/captcha", response_model=SessionView)
def verify_captcha(session_id: str, body: CaptchaRequest, request: Request):
    session = get_session_or_404(session_id)
    remote_ip = request.client.host if request.client else None
    try:
        wizard.complete_captcha(session, body.token, remote_ip)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/image", response_model=SessionView)
async def upload_id_image(
    session_id: str,
    file: UploadFile = File(..., description="ID document image (JPEG/PNG, max 10MB)")
):
    session = get_session_or_404(session_id)
    validate_file(file, ALLOWED_IMAGE_TYPES, "ID image")
    content = await read_and_validate_file(file)
    try:
        await run_in_threadpool(
            wizard.upload_id_image, session, content, file.filename or "id-image", file.content_type
        )
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.delete("/sessions/{session_id}/image", response_model=SessionView)
def change_id_image(session_id: str):
    session = get_session_or_404(session_id)
    try:
        wizard.change_id_image(session)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/liveness", response_model=SessionView)
async def capture_selfie(
    session_id: str,
    file: UploadFile = File(..., description="Liveness selfie (JPEG/PNG, max 10MB)")
):
    session = get_session_or_404(session_id)
    validate_file(file, ALLOWED_IMAGE_TYPES, "selfie")
    content = await read_and_validate_file(file)
    try:
        await run_in_threadpool(
            wizard.capture_selfie, session, content, file.filename or "selfie", file.content_type
        )
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.delete("/sessions/{session_id}/liveness", response_model=SessionView)
def retake_selfie(session_id: str):
    session = get_session_or_404(session_id)
    try:
        wizard.retake_selfie(session)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/extraction", response_model=SessionView)
def extract_identity(session_id: str):
    session = get_session_or_404(session_id)
    try:
        wizard.extract_identity(session)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/verification", response_model=SessionView)
def verify_identity(session_id: str):
    session = get_session_or_404(session_id)
    try:
        wizard.verify_identity(session)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)


@router.post("/sessions/{session_id}/mint", response_model=SessionView)
def mint_did(session_id: str):
    session = get_session_or_404(session_id)
    try:
        wizard.mint_did(session)
    except OnboardingError as e:
        raise_for_error(e)
    return session_view(session_id, session)
