"""
Deprecated ingestion path: pull audio out of a video-sharing link.

The link is resolved to a video id, the first ``audio/mp4`` stream is
downloaded to a temp file, and an external converter (ffmpeg) transcodes it
to audio. Temp files are removed on the way out; removal failures are only
logged.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator, Optional, Protocol

import requests
import yt_dlp
from yt_dlp.utils import YoutubeDLError

logger = logging.getLogger(__name__)

AUDIO_MIME_TYPE = "audio/mp4"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
STREAM_CHUNK_SIZE = 64 * 1024

# yt-dlp reports container extensions; these differ from the MIME subtype.
_MIME_SUBTYPES = {"m4a": "mp4", "mp3": "mpeg", "weba": "webm", "3gp": "3gpp"}


class MediaError(Exception):
    """Raised when fetching or converting media fails."""


class MediaRequestError(MediaError):
    """Raised when the caller supplied an unusable link."""


@dataclass
class StreamFormat:
    format_id: str
    mime_type: str
    url: str
    http_headers: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"formatId": self.format_id, "mimeType": self.mime_type, "url": self.url}


@dataclass
class VideoInfo:
    video_id: str
    title: str = ""
    author: str = ""
    duration: Optional[float] = None
    formats: list[StreamFormat] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "id": self.video_id,
            "title": self.title,
            "author": self.author,
            "duration": self.duration,
            "formats": [f.as_dict() for f in self.formats],
        }


class VideoClient(Protocol):
    """Metadata and byte-stream access for a hosted video."""

    def get_video(self, video_id: str) -> VideoInfo:
        ...

    def get_stream(self, video: VideoInfo, fmt: StreamFormat) -> Generator[bytes, None, None]:
        ...


def extract_video_id(link: str) -> str:
    """Return the text after the first ``v=`` up to the next ``&``."""
    marker = link.find("v=")
    if marker < 0:
        raise MediaRequestError(f"no video id found in link: {link}")
    video_id = link[marker + 2 :].split("&", 1)[0]
    if not video_id:
        raise MediaRequestError(f"no video id found in link: {link}")
    return video_id


def select_audio_format(formats: list[StreamFormat]) -> StreamFormat:
    """First format whose MIME type mentions audio/mp4, else the first one."""
    if not formats:
        raise MediaError("video has no stream formats")
    for fmt in formats:
        if AUDIO_MIME_TYPE in fmt.mime_type:
            return fmt
    return formats[0]


def _mime_type(info: dict) -> str:
    ext = info.get("ext") or ""
    subtype = _MIME_SUBTYPES.get(ext, ext)
    vcodec = info.get("vcodec")
    acodec = info.get("acodec")
    kind = "audio" if vcodec == "none" else "video"
    codecs = [c for c in (vcodec, acodec) if c and c != "none"]
    mime = f"{kind}/{subtype}"
    if codecs:
        mime += f'; codecs="{", ".join(codecs)}"'
    return mime


class YtDlpVideoClient:
    """VideoClient backed by yt-dlp metadata extraction and plain HTTP streaming."""

    def __init__(self, session: requests.Session, ydl_opts: Optional[dict] = None):
        self.session = session
        self.ydl_opts = {"quiet": True, "no_warnings": True, "extract_flat": False}
        if ydl_opts:
            self.ydl_opts.update(ydl_opts)

    def get_video(self, video_id: str) -> VideoInfo:
        url = WATCH_URL.format(video_id=video_id)
        try:
            with yt_dlp.YoutubeDL(self.ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except YoutubeDLError as exc:
            raise MediaError(str(exc)) from exc

        formats = [
            StreamFormat(
                format_id=str(f.get("format_id", "")),
                mime_type=_mime_type(f),
                url=f["url"],
                http_headers=dict(f.get("http_headers") or {}),
            )
            for f in info.get("formats") or []
            if f.get("url")
        ]
        return VideoInfo(
            video_id=info.get("id", video_id),
            title=info.get("title", ""),
            author=info.get("uploader", "") or info.get("channel", ""),
            duration=info.get("duration"),
            formats=formats,
        )

    def get_stream(self, video: VideoInfo, fmt: StreamFormat) -> Generator[bytes, None, None]:
        try:
            with self.session.get(fmt.url, headers=fmt.http_headers, stream=True) as response:
                response.raise_for_status()
                yield from response.iter_content(chunk_size=STREAM_CHUNK_SIZE)
        except requests.RequestException as exc:
            raise MediaError(f"error streaming video {video.video_id}: {exc}") from exc


@dataclass
class MediaConverter:
    """Runs the converter binary to transcode a video file to audio."""

    binary: str = "ffmpeg"

    def convert(self, source: Path, target: Path) -> None:
        executable = shutil.which(self.binary)
        if executable is None:
            raise MediaError(f"{self.binary} not found on PATH")

        cmd = [executable, "-y", "-loglevel", "quiet", "-i", str(source), str(target)]
        logger.info("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise MediaError(f"error executing {self.binary}: {exc}") from exc

        if result.returncode != 0:
            logger.error("%s stderr: %s", self.binary, result.stderr)
            raise MediaError(f"{self.binary} failed with code {result.returncode}")


def _remove_file(path: Path) -> None:
    if not path.exists():
        return
    try:
        path.unlink()
    except OSError as exc:
        logger.error("Error deleting %s: %s", path, exc)


@dataclass
class MediaPipeline:
    video_client: VideoClient
    converter: MediaConverter
    work_dir: Optional[str] = None

    def fetch_video(self, link: str) -> VideoInfo:
        video_id = extract_video_id(link)
        logger.info("Fetching metadata for video %s", video_id)
        return self.video_client.get_video(video_id)

    def fetch_audio(self, link: str) -> bytes:
        """Download the link's audio stream and return it transcoded."""
        video = self.fetch_video(link)
        fmt = select_audio_format(video.formats)
        logger.info(
            "Using format %s (%s) for video %s", fmt.format_id, fmt.mime_type, video.video_id
        )

        try:
            workspace = Path(tempfile.mkdtemp(prefix="music-stream-", dir=self.work_dir))
        except OSError as exc:
            raise MediaError(f"error creating work directory: {exc}") from exc
        video_path = workspace / "video.mp4"
        audio_path = workspace / "video.mp3"
        try:
            try:
                with open(video_path, "wb") as fh, closing(
                    self.video_client.get_stream(video, fmt)
                ) as chunks:
                    for chunk in chunks:
                        fh.write(chunk)
            except OSError as exc:
                raise MediaError(f"error writing video file: {exc}") from exc
            self.converter.convert(video_path, audio_path)
            try:
                return audio_path.read_bytes()
            except OSError as exc:
                raise MediaError(f"error reading converted audio: {exc}") from exc
        finally:
            _remove_file(video_path)
            _remove_file(audio_path)
            try:
                workspace.rmdir()
            except OSError as exc:
                logger.error("Error deleting %s: %s", workspace, exc)
