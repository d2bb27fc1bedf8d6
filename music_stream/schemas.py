"""
Pydantic schemas for the music streaming API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Base64Bytes, BaseModel, ConfigDict, Field


class TrackPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    artist: str = ""
    album: str = ""


class TrackResponse(BaseModel):
    id: str
    name: str
    artist: str
    album: str
    audioFile: Optional[str] = None


class PlaylistPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""


class PlaylistResponse(BaseModel):
    id: str
    name: str
    tracks: list[str]


class VideoRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    youtubeLink: str = ""
    name: str = ""
    artist: str = ""
    album: str = ""


class UploadRequest(BaseModel):
    audioBytes: Base64Bytes
    youtubeRequest: VideoRequest = Field(default_factory=VideoRequest)


class StreamFormatResponse(BaseModel):
    formatId: str
    mimeType: str
    url: str


class VideoResponse(BaseModel):
    id: str
    title: str
    author: str
    duration: Optional[float] = None
    formats: list[StreamFormatResponse]
