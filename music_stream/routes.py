"""
HTTP routes for the music streaming API.

Every route except ``/health`` requires ``Authorization: Bearer <token>``.
Failures are logged here and turned into HTTPExceptions; the app renders
them as ``{"error": "<message>"}``.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    Response,
    UploadFile,
)
from pydantic import BaseModel, ValidationError

from music_stream.auth import AuthError, AuthHeaderError, TokenValidator, parse_bearer_token
from music_stream.db import DbClient, PlaylistRecord, StorageError, TrackRecord
from music_stream.dependencies import (
    get_db_client,
    get_media_pipeline,
    get_token_validator,
)
from music_stream.media import MediaError, MediaPipeline, MediaRequestError
from music_stream.schemas import (
    PlaylistPayload,
    PlaylistResponse,
    TrackPayload,
    TrackResponse,
    UploadRequest,
    VideoRequest,
    VideoResponse,
)

logger = logging.getLogger(__name__)

# Query parameter -> stored field
TRACK_FILTERS = {
    "id": "_id",
    "name": "name",
    "artist": "artist",
    "album": "album",
    "audioFile": "audioFile",
}
PLAYLIST_FILTERS = {"id": "_id", "name": "name", "tracks": "tracks"}
ID_FIELDS = {"_id", "audioFile", "tracks"}


def require_token(
    authorization: str | None = Header(default=None),
    validator: TokenValidator = Depends(get_token_validator),
) -> str:
    try:
        token = parse_bearer_token(authorization)
    except AuthHeaderError as exc:
        logger.error("Error retrieving auth token: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        validator.validate_token(token)
    except AuthError as exc:
        logger.error("Authentication failed: %s", exc)
        raise HTTPException(status_code=401, detail="Authentication failed")
    return token


health_router = APIRouter()
router = APIRouter(dependencies=[Depends(require_token)])


def _object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        logger.error("Error creating objectID from hex %r: %s", value, exc)
        raise HTTPException(status_code=400, detail=str(exc))


def _parse_json(model: type[BaseModel], raw: str | bytes) -> Any:
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        logger.error("Error reading request body: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc))


def json_body(model: type[BaseModel]):
    """
    Dependency reading the request body as ``model``. Unlike a plain body
    parameter it runs after the router's ``require_token``, so a rejected
    token wins over a malformed body.
    """

    async def parse(request: Request) -> Any:
        return _parse_json(model, await request.body())

    return parse


def _backend_failure(message: str, exc: Exception) -> HTTPException:
    logger.error("%s: %s", message, exc)
    return HTTPException(status_code=500, detail=str(exc))


def _media_failure(message: str, exc: MediaError) -> HTTPException:
    logger.error("%s: %s", message, exc)
    status_code = 400 if isinstance(exc, MediaRequestError) else 500
    return HTTPException(status_code=status_code, detail=str(exc))


def _query_filters(request: Request, allowed: dict[str, str]) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        field = allowed.get(key)
        if field is None:
            logger.error("Unsupported filter %r", key)
            raise HTTPException(status_code=400, detail=f"unsupported filter: {key}")
        if field in filters:
            continue
        filters[field] = _object_id(value) if field in ID_FIELDS else value
    return filters


def _require_track(db: DbClient, track_id: ObjectId) -> TrackRecord:
    try:
        tracks = db.get_tracks({"_id": track_id})
    except StorageError as exc:
        raise _backend_failure("Error getting track", exc)
    if not tracks:
        logger.error("No track with id %s found in database", track_id)
        raise HTTPException(status_code=500, detail=f"no track found with id {track_id}")
    return tracks[0]


def _store_track(db: DbClient, audio: bytes, metadata: TrackPayload | VideoRequest) -> TrackRecord:
    track = TrackRecord(
        track_id=ObjectId(),
        name=metadata.name,
        artist=metadata.artist,
        album=metadata.album,
    ).with_defaults()

    try:
        track.audio_file_id = db.upload_audio_file(audio, track.name)
    except StorageError as exc:
        raise _backend_failure("Error uploading audio file", exc)

    try:
        db.add_track(track)
    except StorageError as exc:
        logger.error("Audio file %s left without a track", track.audio_file_id)
        raise _backend_failure("Error adding track to database", exc)

    logger.info("Added track %s (%s)", track.track_id, track.name)
    return track


@health_router.get("/health", response_model=str)
def check_health(db: DbClient = Depends(get_db_client)):
    try:
        db.ping()
    except StorageError as exc:
        logger.error("Database ping failed: %s", exc)
        raise HTTPException(
            status_code=500,
            detail="API is running but unable to connect to database",
        )
    return "API is running and connected to database"


@router.post("/track", response_model=str)
def upload_track(
    audio: UploadFile = File(..., alias="input"),
    body: str = Form("{}"),
    db: DbClient = Depends(get_db_client),
):
    """
    Store an uploaded audio file as a new track. ``body`` is a JSON object
    with optional name/artist/album; empty values get placeholders.
    """
    payload = _parse_json(TrackPayload, body)

    try:
        data = audio.file.read()
    except OSError as exc:
        raise _backend_failure("Error reading file", exc)
    finally:
        audio.file.close()

    _store_track(db, data, payload)
    return "Track added successfully"


@router.get("/track/{track_id}", response_class=Response)
def get_track_audio(track_id: str, db: DbClient = Depends(get_db_client)):
    track = _require_track(db, _object_id(track_id))
    if track.audio_file_id is None:
        logger.error("Track %s has no audio file", track.track_id)
        raise HTTPException(status_code=500, detail=f"track {track.track_id} has no audio file")

    try:
        audio = db.download_audio_file(track.audio_file_id)
    except StorageError as exc:
        raise _backend_failure("Error getting audio for track", exc)
    return Response(content=audio, media_type="application/octet-stream")


@router.put("/track/{track_id}", response_model=str)
def update_track(
    track_id: str,
    payload: TrackPayload = Depends(json_body(TrackPayload)),
    db: DbClient = Depends(get_db_client),
):
    """Overwrite only the non-empty fields of ``payload``."""
    oid = _object_id(track_id)
    changes = TrackRecord(
        track_id=oid, name=payload.name, artist=payload.artist, album=payload.album
    )
    try:
        db.update_track(oid, changes)
    except StorageError as exc:
        raise _backend_failure("Error updating track in database", exc)
    return "Track updated successfully"


@router.delete("/track/{track_id}", response_model=str)
def delete_track(track_id: str, db: DbClient = Depends(get_db_client)):
    oid = _object_id(track_id)
    try:
        db.delete_track(oid)
    except StorageError as exc:
        raise _backend_failure("Error deleting track", exc)
    logger.info("Deleted track %s", oid)
    return "Track deleted successfully"


@router.get("/tracks", response_model=list[TrackResponse])
def get_tracks(request: Request, db: DbClient = Depends(get_db_client)):
    filters = _query_filters(request, TRACK_FILTERS)
    try:
        tracks = db.get_tracks(filters)
    except StorageError as exc:
        raise _backend_failure("Error retrieving tracks", exc)
    return [t.as_dict() for t in tracks]


@router.post("/playlist", response_model=str)
def add_playlist(
    payload: PlaylistPayload = Depends(json_body(PlaylistPayload)),
    db: DbClient = Depends(get_db_client),
):
    playlist = PlaylistRecord(playlist_id=ObjectId(), name=payload.name)
    try:
        db.add_playlist(playlist)
    except StorageError as exc:
        raise _backend_failure("Error creating playlist", exc)
    logger.info("Created playlist %s (%s)", playlist.playlist_id, playlist.name)
    return "Playlist created successfully"


@router.post("/playlist/{playlist_id}/track/{track_id}", response_model=str)
def add_track_to_playlist(
    playlist_id: str, track_id: str, db: DbClient = Depends(get_db_client)
):
    pid = _object_id(playlist_id)
    tid = _object_id(track_id)
    _require_track(db, tid)
    try:
        db.add_track_to_playlist(pid, tid)
    except StorageError as exc:
        raise _backend_failure("Error adding track to playlist", exc)
    return "Track successfully added to playlist"


@router.delete("/playlist/{playlist_id}/track/{track_id}", response_model=str)
def remove_track_from_playlist(
    playlist_id: str, track_id: str, db: DbClient = Depends(get_db_client)
):
    pid = _object_id(playlist_id)
    tid = _object_id(track_id)
    _require_track(db, tid)
    try:
        db.remove_track_from_playlist(pid, tid)
    except StorageError as exc:
        raise _backend_failure("Error removing track from playlist", exc)
    return "Track successfully removed from playlist"


@router.delete("/playlist/{playlist_id}", response_model=str)
def delete_playlist(playlist_id: str, db: DbClient = Depends(get_db_client)):
    pid = _object_id(playlist_id)
    try:
        db.delete_playlist(pid)
    except StorageError as exc:
        raise _backend_failure("Error deleting playlist", exc)
    return "Playlist deleted successfully"


@router.get("/playlists", response_model=list[PlaylistResponse])
def get_playlists(request: Request, db: DbClient = Depends(get_db_client)):
    filters = _query_filters(request, PLAYLIST_FILTERS)
    try:
        playlists = db.get_playlists(filters)
    except StorageError as exc:
        raise _backend_failure("Error retrieving playlists", exc)
    return [p.as_dict() for p in playlists]


# Deprecated: video-link ingestion


@router.post("/video", response_model=VideoResponse, deprecated=True)
def get_video(
    payload: VideoRequest = Depends(json_body(VideoRequest)),
    pipeline: MediaPipeline = Depends(get_media_pipeline),
):
    try:
        video = pipeline.fetch_video(payload.youtubeLink)
    except MediaError as exc:
        raise _media_failure("Error getting video", exc)
    return video.as_dict()


@router.post("/convert", response_model=str, deprecated=True)
def convert_video_to_audio(
    payload: VideoRequest = Depends(json_body(VideoRequest)),
    pipeline: MediaPipeline = Depends(get_media_pipeline),
):
    """Return the link's converted audio as a base64 string."""
    try:
        audio = pipeline.fetch_audio(payload.youtubeLink)
    except MediaError as exc:
        raise _media_failure("Error converting video to audio", exc)
    return base64.b64encode(audio).decode("ascii")


@router.post("/upload", response_model=str, deprecated=True)
def upload_audio_bytes(
    payload: UploadRequest = Depends(json_body(UploadRequest)),
    db: DbClient = Depends(get_db_client),
):
    _store_track(db, payload.audioBytes, payload.youtubeRequest)
    return "Track added successfully"


@router.post("/youtube/track", response_model=str, deprecated=True)
def upload_track_from_video_link(
    payload: VideoRequest = Depends(json_body(VideoRequest)),
    db: DbClient = Depends(get_db_client),
    pipeline: MediaPipeline = Depends(get_media_pipeline),
):
    try:
        audio = pipeline.fetch_audio(payload.youtubeLink)
    except MediaError as exc:
        raise _media_failure("Error fetching audio from video link", exc)
    _store_track(db, audio, payload)
    return "Track added successfully"
