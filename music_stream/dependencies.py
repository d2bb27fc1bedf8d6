"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

import requests

from music_stream.auth import HttpTokenValidator, InMemoryTokenValidator, TokenValidator
from music_stream.config import get_settings
from music_stream.db import DbClient, InMemoryDbClient, MongoDbClient
from music_stream.media import MediaConverter, MediaPipeline, VideoClient, YtDlpVideoClient

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_token_validator: TokenValidator | None = None
_video_client: VideoClient | None = None
_http_session: requests.Session | None = None


def _get_http_session() -> requests.Session:
    global _http_session
    if _http_session is None:
        _http_session = requests.Session()
    return _http_session


def get_db_client() -> DbClient:
    """
    Return a singleton DB client; the underlying connection pool is shared
    by every request thread.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        logger.warning("Using in-memory storage; data is lost on restart")
        _db_client = InMemoryDbClient()
    else:
        _db_client = MongoDbClient(
            settings.mongo_uri,
            database=settings.mongo_database,
            track_collection=settings.track_collection,
            playlist_collection=settings.playlist_collection,
        )
    return _db_client


def get_token_validator() -> TokenValidator:
    global _token_validator
    if _token_validator:
        return _token_validator

    settings = get_settings()
    if settings.use_in_memory_backends:
        _token_validator = InMemoryTokenValidator()
    else:
        _token_validator = HttpTokenValidator(
            login_url=settings.login_url, session=_get_http_session()
        )
    return _token_validator


def get_video_client() -> VideoClient:
    global _video_client
    if _video_client:
        return _video_client
    _video_client = YtDlpVideoClient(session=_get_http_session())
    return _video_client


def get_media_pipeline() -> MediaPipeline:
    settings = get_settings()
    return MediaPipeline(
        video_client=get_video_client(),
        converter=MediaConverter(binary=settings.converter_binary),
        work_dir=settings.media_work_dir,
    )


def close_clients() -> None:
    """Release long-lived clients at shutdown."""
    global _db_client, _token_validator, _video_client, _http_session
    if _db_client is not None:
        _db_client.close()
    if _http_session is not None:
        _http_session.close()
    _db_client = None
    _token_validator = None
    _video_client = None
    _http_session = None
