"""Recording, version ledger and AI transform routes."""

import base64

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from src.api.deps import get_studio_service, to_http_error
from src.middleware.rate_limit import rate_limit_transforms
from src.schemas.schemas import (
    DeleteVersionResponse,
    DraftResponse,
    DraftUpdate,
    DubRequest,
    DubResponse,
    LedgerResponse,
    RecordingCreate,
    SetActiveRequest,
    VersionResponse,
    VoiceTransformRequest,
    decode_audio,
)
from src.services.errors import StudioError
from src.services.ledger import AudioVersion
from src.services.studio import StudioService

router = APIRouter(prefix="/v1/sessions/{session_id}", tags=["Versions"])


def version_to_response(version: AudioVersion) -> VersionResponse:
    return VersionResponse.model_validate(version)


@router.post(
    "/recording",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start from a new recording",
    description="Replace the session's ledger with a single original version.",
)
async def create_recording(
    session_id: str,
    request: RecordingCreate,
    studio: StudioService = Depends(get_studio_service),
):
    version = studio.start_recording(
        session_id, decode_audio(request.audio_b64), request.duration, request.mime_type
    )
    return version_to_response(version)


@router.get("/versions", response_model=LedgerResponse, summary="List versions")
async def list_versions(
    session_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    ledger = studio.load_session(session_id).ledger
    return LedgerResponse(
        versions=[version_to_response(v) for v in ledger.versions],
        active_version_id=ledger.active_version_id,
    )


@router.get(
    "/transformable",
    response_model=list[VersionResponse],
    summary="List versions usable as a transform source",
)
async def list_transformable(
    session_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    ledger = studio.load_session(session_id).ledger
    return [version_to_response(v) for v in ledger.get_transformable_versions()]


@router.get("/versions/{version_id}", response_model=VersionResponse, summary="Get a version")
async def get_version(
    session_id: str,
    version_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    version = studio.load_session(session_id).ledger.get_version(version_id)
    if version is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Version {version_id} not found",
        )
    return version_to_response(version)


@router.get(
    "/versions/{version_id}/audio",
    summary="Download a version's audio",
    response_class=Response,
)
async def get_version_audio(
    session_id: str,
    version_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    version = studio.load_session(session_id).ledger.get_version(version_id)
    if version is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Version {version_id} not found",
        )
    return Response(content=version.blob, media_type=version.mime_type)


@router.put("/active", response_model=LedgerResponse, summary="Select the active version")
async def set_active_version(
    session_id: str,
    request: SetActiveRequest,
    studio: StudioService = Depends(get_studio_service),
):
    """Unknown ids leave the active version unchanged."""
    ledger = studio.load_session(session_id).ledger
    ledger.set_active_version(request.version_id)
    return LedgerResponse(
        versions=[version_to_response(v) for v in ledger.versions],
        active_version_id=ledger.active_version_id,
    )


@router.delete(
    "/versions/{version_id}",
    response_model=DeleteVersionResponse,
    summary="Delete a version and its descendants",
)
async def delete_version(
    session_id: str,
    version_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    ledger = studio.load_session(session_id).ledger
    try:
        deleted = ledger.delete_version(version_id)
    except StudioError as e:
        raise to_http_error(e)
    return DeleteVersionResponse(deleted=deleted, active_version_id=ledger.active_version_id)


@router.post(
    "/transforms/voice",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Convert a version into an AI voice",
)
@rate_limit_transforms()
async def transform_voice(
    request: Request,
    session_id: str,
    body: VoiceTransformRequest,
    studio: StudioService = Depends(get_studio_service),
):
    try:
        version = await studio.transform_voice(
            session_id, body.voice_id, body.voice_name, body.parent_version_id
        )
    except StudioError as e:
        raise to_http_error(e)
    return version_to_response(version)


@router.post(
    "/transforms/dub",
    response_model=DubResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Dub a version into another language",
)
@rate_limit_transforms()
async def dub_version(
    request: Request,
    session_id: str,
    body: DubRequest,
    studio: StudioService = Depends(get_studio_service),
):
    try:
        version, result = await studio.dub(
            session_id, body.target_language, body.source_language, body.parent_version_id
        )
    except StudioError as e:
        raise to_http_error(e)
    return DubResponse(
        version=version_to_response(version),
        transcript=result.transcript,
        translated_transcript=result.translated_transcript,
    )


# ============== Draft ==============


@router.put("/draft", status_code=status.HTTP_204_NO_CONTENT, summary="Save the in-progress draft")
async def save_draft(
    session_id: str,
    request: DraftUpdate,
    studio: StudioService = Depends(get_studio_service),
):
    studio.save_draft(session_id, decode_audio(request.audio_b64), request.mime_type)


@router.get("/draft", response_model=DraftResponse, summary="Get the in-progress draft")
async def get_draft(
    session_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    draft = studio.get_draft(session_id)
    if draft is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No draft saved")
    return DraftResponse(
        audio_b64=base64.b64encode(draft.blob).decode("ascii"),
        mime_type=draft.mime_type,
    )


@router.delete("/draft", status_code=status.HTTP_204_NO_CONTENT, summary="Discard the draft")
async def clear_draft(
    session_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    studio.clear_draft(session_id)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT, summary="Reset the session")
async def reset_session(
    session_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    """Drop the recording, its versions and the draft. Quota usage is kept."""
    studio.reset_session(session_id)
