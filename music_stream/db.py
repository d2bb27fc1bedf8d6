"""
Database abstraction for MongoDB/GridFS and an in-memory test implementation.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Protocol

import gridfs
from bson import ObjectId
from gridfs.errors import NoFile
from pymongo import MongoClient
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DEFAULT_TRACK_NAME = "Unknown"
DEFAULT_ARTIST = "Unknown Artist"
DEFAULT_ALBUM = "Unknown Album"


class StorageError(Exception):
    """Raised when the document store rejects or fails an operation."""


class NotFoundError(StorageError):
    """Raised when an operation matched no documents."""


class DbClient(Protocol):
    """Interface for database access."""

    def ping(self) -> None:
        ...

    def add_track(self, track: "TrackRecord") -> None:
        ...

    def upload_audio_file(self, data: bytes, filename: str) -> ObjectId:
        ...

    def download_audio_file(self, audio_file_id: ObjectId) -> bytes:
        ...

    def update_track(self, track_id: ObjectId, changes: "TrackRecord") -> None:
        ...

    def get_tracks(self, filters: Dict[str, Any]) -> list["TrackRecord"]:
        ...

    def delete_track(self, track_id: ObjectId) -> None:
        ...

    def add_playlist(self, playlist: "PlaylistRecord") -> None:
        ...

    def add_track_to_playlist(self, playlist_id: ObjectId, track_id: ObjectId) -> None:
        ...

    def remove_track_from_playlist(
        self, playlist_id: ObjectId, track_id: ObjectId
    ) -> None:
        ...

    def delete_playlist(self, playlist_id: ObjectId) -> None:
        ...

    def get_playlists(self, filters: Dict[str, Any]) -> list["PlaylistRecord"]:
        ...

    def close(self) -> None:
        ...


@dataclass
class TrackRecord:
    track_id: ObjectId
    name: str = ""
    artist: str = ""
    album: str = ""
    audio_file_id: Optional[ObjectId] = None

    def with_defaults(self) -> "TrackRecord":
        """Return a copy with empty metadata replaced by the placeholders."""
        return TrackRecord(
            track_id=self.track_id,
            name=self.name or DEFAULT_TRACK_NAME,
            artist=self.artist or DEFAULT_ARTIST,
            album=self.album or DEFAULT_ALBUM,
            audio_file_id=self.audio_file_id,
        )

    def merged_with(self, changes: "TrackRecord") -> "TrackRecord":
        """Overwrite metadata with the non-empty fields of ``changes``."""
        return TrackRecord(
            track_id=self.track_id,
            name=changes.name or self.name,
            artist=changes.artist or self.artist,
            album=changes.album or self.album,
            audio_file_id=self.audio_file_id,
        )

    def to_document(self) -> dict:
        doc = {
            "_id": self.track_id,
            "name": self.name,
            "artist": self.artist,
            "album": self.album,
        }
        if self.audio_file_id is not None:
            doc["audioFile"] = self.audio_file_id
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "TrackRecord":
        return cls(
            track_id=doc["_id"],
            name=doc.get("name", ""),
            artist=doc.get("artist", ""),
            album=doc.get("album", ""),
            audio_file_id=doc.get("audioFile"),
        )

    def as_dict(self) -> dict:
        return {
            "id": str(self.track_id),
            "name": self.name,
            "artist": self.artist,
            "album": self.album,
            "audioFile": str(self.audio_file_id) if self.audio_file_id is not None else None,
        }


@dataclass
class PlaylistRecord:
    playlist_id: ObjectId
    name: str
    tracks: list[ObjectId] = field(default_factory=list)

    def to_document(self) -> dict:
        return {"_id": self.playlist_id, "name": self.name, "tracks": list(self.tracks)}

    @classmethod
    def from_document(cls, doc: dict) -> "PlaylistRecord":
        return cls(
            playlist_id=doc["_id"],
            name=doc.get("name", ""),
            tracks=list(doc.get("tracks") or []),
        )

    def as_dict(self) -> dict:
        return {
            "id": str(self.playlist_id),
            "name": self.name,
            "tracks": [str(t) for t in self.tracks],
        }


def _matches(doc: dict, filters: Dict[str, Any]) -> bool:
    # Mirrors Mongo equality semantics: a scalar matches an array if contained.
    for key, expected in filters.items():
        value = doc.get(key)
        if isinstance(value, list):
            if expected not in value:
                return False
        elif value != expected:
            return False
    return True


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.tracks: Dict[ObjectId, dict] = {}
        self.playlists: Dict[ObjectId, dict] = {}
        self.audio_files: Dict[ObjectId, tuple[str, bytes]] = {}
        self.available = True
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.tracks.clear()
            self.playlists.clear()
            self.audio_files.clear()
            self.available = True

    def ping(self) -> None:
        if not self.available:
            raise StorageError("database unavailable")

    def add_track(self, track: TrackRecord) -> None:
        with self._lock:
            if track.track_id in self.tracks:
                raise StorageError(f"duplicate track id {track.track_id}")
            self.tracks[track.track_id] = track.to_document()

    def upload_audio_file(self, data: bytes, filename: str) -> ObjectId:
        audio_file_id = ObjectId()
        with self._lock:
            self.audio_files[audio_file_id] = (filename, bytes(data))
        return audio_file_id

    def download_audio_file(self, audio_file_id: ObjectId) -> bytes:
        stored = self.audio_files.get(audio_file_id)
        if stored is None:
            raise NotFoundError(f"no file found with id {audio_file_id}")
        return stored[1]

    def update_track(self, track_id: ObjectId, changes: TrackRecord) -> None:
        with self._lock:
            doc = self.tracks.get(track_id)
            if doc is None:
                raise NotFoundError(f"no track found with id {track_id}")
            merged = TrackRecord.from_document(doc).merged_with(changes)
            self.tracks[track_id] = merged.to_document()

    def get_tracks(self, filters: Dict[str, Any]) -> list[TrackRecord]:
        with self._lock:
            docs = [dict(doc) for doc in self.tracks.values() if _matches(doc, filters)]
        return [TrackRecord.from_document(doc) for doc in docs]

    def delete_track(self, track_id: ObjectId) -> None:
        with self._lock:
            doc = self.tracks.pop(track_id, None)
            if doc is None:
                raise NotFoundError(f"no track found with id {track_id}")
            audio_file_id = doc.get("audioFile")
            if audio_file_id is not None and self.audio_files.pop(audio_file_id, None) is None:
                logger.warning(
                    "Audio file %s for track %s was already missing",
                    audio_file_id,
                    track_id,
                )
            for playlist in self.playlists.values():
                playlist["tracks"] = [t for t in playlist["tracks"] if t != track_id]

    def add_playlist(self, playlist: PlaylistRecord) -> None:
        with self._lock:
            if playlist.playlist_id in self.playlists:
                raise StorageError(f"duplicate playlist id {playlist.playlist_id}")
            self.playlists[playlist.playlist_id] = playlist.to_document()

    def add_track_to_playlist(self, playlist_id: ObjectId, track_id: ObjectId) -> None:
        with self._lock:
            doc = self.playlists.get(playlist_id)
            if doc is None:
                raise NotFoundError(f"no playlist found with id {playlist_id}")
            if track_id not in doc["tracks"]:
                doc["tracks"].append(track_id)

    def remove_track_from_playlist(
        self, playlist_id: ObjectId, track_id: ObjectId
    ) -> None:
        with self._lock:
            doc = self.playlists.get(playlist_id)
            if doc is None:
                raise NotFoundError(f"no playlist found with id {playlist_id}")
            doc["tracks"] = [t for t in doc["tracks"] if t != track_id]

    def delete_playlist(self, playlist_id: ObjectId) -> None:
        with self._lock:
            if self.playlists.pop(playlist_id, None) is None:
                raise NotFoundError("no documents were deleted")

    def get_playlists(self, filters: Dict[str, Any]) -> list[PlaylistRecord]:
        with self._lock:
            docs = [
                {**doc, "tracks": list(doc["tracks"])}
                for doc in self.playlists.values()
                if _matches(doc, filters)
            ]
        return [PlaylistRecord.from_document(doc) for doc in docs]

    def close(self) -> None:
        pass


@contextmanager
def _store_errors() -> Iterator[None]:
    """Re-raise driver failures as StorageError, keeping the driver's message."""
    try:
        yield
    except StorageError:
        raise
    except PyMongoError as exc:
        raise StorageError(str(exc)) from exc


class MongoDbClient:
    """
    pymongo-backed implementation. Track and playlist metadata live in two
    collections; audio bytes go to the database's default GridFS bucket.
    """

    def __init__(
        self,
        mongo_uri: Optional[str] = None,
        *,
        database: str = "db",
        track_collection: str = "songs",
        playlist_collection: str = "playlists",
        client: Optional[MongoClient] = None,
        bucket: Optional[gridfs.GridFSBucket] = None,
    ):
        if client is None:
            if not mongo_uri:
                raise ValueError("MONGO_URI is required unless USE_IN_MEMORY_BACKENDS is set")
            client = MongoClient(mongo_uri)
        self.client = client
        self.db = client[database]
        self.tracks = self.db[track_collection]
        self.playlists = self.db[playlist_collection]
        self.bucket = bucket if bucket is not None else gridfs.GridFSBucket(self.db)

    def ping(self) -> None:
        with _store_errors():
            self.client.admin.command("ping")

    def add_track(self, track: TrackRecord) -> None:
        with _store_errors():
            result = self.tracks.insert_one(track.to_document())
        if result.inserted_id is None:
            raise StorageError("no tracks inserted")

    def upload_audio_file(self, data: bytes, filename: str) -> ObjectId:
        with _store_errors():
            return self.bucket.upload_from_stream(filename, data)

    def download_audio_file(self, audio_file_id: ObjectId) -> bytes:
        try:
            grid_out = self.bucket.open_download_stream(audio_file_id)
            return grid_out.read()
        except NoFile as exc:
            raise NotFoundError(str(exc)) from exc
        except PyMongoError as exc:
            raise StorageError(str(exc)) from exc

    def update_track(self, track_id: ObjectId, changes: TrackRecord) -> None:
        with _store_errors():
            doc = self.tracks.find_one({"_id": track_id})
            if doc is None:
                raise NotFoundError(f"no track found with id {track_id}")
            merged = TrackRecord.from_document(doc).merged_with(changes).to_document()
            merged.pop("_id")
            updated = self.tracks.find_one_and_update({"_id": track_id}, {"$set": merged})
        if updated is None:
            raise NotFoundError(f"no track found with id {track_id}")

    def get_tracks(self, filters: Dict[str, Any]) -> list[TrackRecord]:
        with _store_errors():
            return [TrackRecord.from_document(doc) for doc in self.tracks.find(filters)]

    def delete_track(self, track_id: ObjectId) -> None:
        with _store_errors():
            doc = self.tracks.find_one_and_delete({"_id": track_id})
            if doc is None:
                raise NotFoundError(f"no track found with id {track_id}")
            track = TrackRecord.from_document(doc)

            if track.audio_file_id is not None:
                try:
                    self.bucket.delete(track.audio_file_id)
                except NoFile:
                    logger.warning(
                        "Audio file %s for track %s was already missing",
                        track.audio_file_id,
                        track_id,
                    )

            self.playlists.update_many(
                {"tracks": track_id}, {"$pull": {"tracks": track_id}}
            )

    def add_playlist(self, playlist: PlaylistRecord) -> None:
        with _store_errors():
            result = self.playlists.insert_one(playlist.to_document())
        if result.inserted_id is None:
            raise StorageError("no playlist inserted")

    def add_track_to_playlist(self, playlist_id: ObjectId, track_id: ObjectId) -> None:
        with _store_errors():
            result = self.playlists.update_one(
                {"_id": playlist_id}, {"$addToSet": {"tracks": track_id}}
            )
        if result.matched_count == 0:
            raise NotFoundError(f"no playlist found with id {playlist_id}")

    def remove_track_from_playlist(
        self, playlist_id: ObjectId, track_id: ObjectId
    ) -> None:
        with _store_errors():
            result = self.playlists.update_one(
                {"_id": playlist_id}, {"$pull": {"tracks": track_id}}
            )
        if result.matched_count == 0:
            raise NotFoundError(f"no playlist found with id {playlist_id}")

    def delete_playlist(self, playlist_id: ObjectId) -> None:
        with _store_errors():
            result = self.playlists.delete_one({"_id": playlist_id})
        if result.deleted_count == 0:
            raise NotFoundError("no documents were deleted")

    def get_playlists(self, filters: Dict[str, Any]) -> list[PlaylistRecord]:
        with _store_errors():
            return [
                PlaylistRecord.from_document(doc) for doc in self.playlists.find(filters)
            ]

    def close(self) -> None:
        self.client.close()
