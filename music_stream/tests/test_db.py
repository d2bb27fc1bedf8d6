import unittest
from unittest.mock import MagicMock

from bson import ObjectId
from gridfs.errors import NoFile
from pymongo.errors import ServerSelectionTimeoutError

from music_stream.db import (
    InMemoryDbClient,
    MongoDbClient,
    NotFoundError,
    PlaylistRecord,
    StorageError,
    TrackRecord,
)


class TrackRecordTests(unittest.TestCase):
    def test_with_defaults_fills_empty_fields(self):
        track = TrackRecord(ObjectId(), name="", artist="Band", album="").with_defaults()
        self.assertEqual(track.name, "Unknown")
        self.assertEqual(track.artist, "Band")
        self.assertEqual(track.album, "Unknown Album")

    def test_document_roundtrip_keeps_audio_reference(self):
        track = TrackRecord(ObjectId(), "Song", "Band", "Album", ObjectId())
        doc = track.to_document()
        self.assertEqual(doc["audioFile"], track.audio_file_id)
        self.assertEqual(TrackRecord.from_document(doc), track)


class InMemoryDbClientTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_delete_track_pulls_from_every_playlist(self):
        audio_id = self.db.upload_audio_file(b"bytes", "Song")
        track = TrackRecord(ObjectId(), "Song", "Band", "Album", audio_id)
        self.db.add_track(track)
        for name in ("a", "b", "c"):
            self.db.add_playlist(PlaylistRecord(ObjectId(), name, [track.track_id]))

        self.db.delete_track(track.track_id)

        self.assertTrue(all(p.tracks == [] for p in self.db.get_playlists({})))
        with self.assertRaises(NotFoundError):
            self.db.download_audio_file(audio_id)

    def test_delete_missing_track_raises(self):
        with self.assertRaises(NotFoundError):
            self.db.delete_track(ObjectId())

    def test_returned_records_are_copies(self):
        playlist = PlaylistRecord(ObjectId(), "Mix")
        self.db.add_playlist(playlist)
        self.db.get_playlists({})[0].tracks.append(ObjectId())
        self.assertEqual(self.db.get_playlists({})[0].tracks, [])

    def test_ping_fails_when_unavailable(self):
        self.db.available = False
        with self.assertRaises(StorageError):
            self.db.ping()


class MongoDbClientTests(unittest.TestCase):
    """
    Collections and the GridFS bucket are mocks, so these cover the query
    shapes and error mapping rather than a live server.
    """

    def setUp(self):
        self.mongo = MagicMock()
        self.tracks = MagicMock()
        self.playlists = MagicMock()
        database = MagicMock()
        collections = {"songs": self.tracks, "playlists": self.playlists}
        database.__getitem__.side_effect = collections.__getitem__
        self.mongo.__getitem__.return_value = database
        self.bucket = MagicMock()
        self.db = MongoDbClient(client=self.mongo, bucket=self.bucket)

    def test_requires_uri_without_client(self):
        with self.assertRaises(ValueError):
            MongoDbClient(None)

    def test_ping_surfaces_driver_message(self):
        self.mongo.admin.command.side_effect = ServerSelectionTimeoutError("no servers")
        with self.assertRaises(StorageError) as ctx:
            self.db.ping()
        self.assertEqual(str(ctx.exception), "no servers")
        self.mongo.admin.command.assert_called_once_with("ping")

    def test_add_track_without_inserted_id_is_an_error(self):
        self.tracks.insert_one.return_value = MagicMock(inserted_id=None)
        with self.assertRaises(StorageError) as ctx:
            self.db.add_track(TrackRecord(ObjectId(), "Song"))
        self.assertEqual(str(ctx.exception), "no tracks inserted")

    def test_upload_audio_file_uses_track_name_as_filename(self):
        file_id = ObjectId()
        self.bucket.upload_from_stream.return_value = file_id
        self.assertEqual(self.db.upload_audio_file(b"bytes", "Song"), file_id)
        self.bucket.upload_from_stream.assert_called_once_with("Song", b"bytes")

    def test_download_missing_audio_is_not_found(self):
        self.bucket.open_download_stream.side_effect = NoFile("no file")
        with self.assertRaises(NotFoundError):
            self.db.download_audio_file(ObjectId())

    def test_update_track_keeps_fields_left_empty(self):
        track_id = ObjectId()
        audio_id = ObjectId()
        self.tracks.find_one.return_value = {
            "_id": track_id,
            "name": "Old",
            "artist": "Band",
            "album": "Album",
            "audioFile": audio_id,
        }
        self.tracks.find_one_and_update.return_value = {"_id": track_id}

        self.db.update_track(track_id, TrackRecord(track_id, name="New"))

        self.tracks.find_one_and_update.assert_called_once_with(
            {"_id": track_id},
            {
                "$set": {
                    "name": "New",
                    "artist": "Band",
                    "album": "Album",
                    "audioFile": audio_id,
                }
            },
        )

    def test_update_missing_track_does_not_write(self):
        self.tracks.find_one.return_value = None
        with self.assertRaises(NotFoundError):
            self.db.update_track(ObjectId(), TrackRecord(ObjectId(), name="New"))
        self.tracks.find_one_and_update.assert_not_called()

    def test_delete_track_cascades(self):
        track_id = ObjectId()
        audio_id = ObjectId()
        self.tracks.find_one_and_delete.return_value = {
            "_id": track_id,
            "name": "Song",
            "audioFile": audio_id,
        }

        self.db.delete_track(track_id)

        self.tracks.find_one_and_delete.assert_called_once_with({"_id": track_id})
        self.bucket.delete.assert_called_once_with(audio_id)
        self.playlists.update_many.assert_called_once_with(
            {"tracks": track_id}, {"$pull": {"tracks": track_id}}
        )

    def test_delete_track_with_missing_audio_still_cleans_playlists(self):
        track_id = ObjectId()
        self.tracks.find_one_and_delete.return_value = {
            "_id": track_id,
            "audioFile": ObjectId(),
        }
        self.bucket.delete.side_effect = NoFile("gone")

        with self.assertLogs("music_stream.db", level="WARNING"):
            self.db.delete_track(track_id)
        self.playlists.update_many.assert_called_once()

    def test_delete_missing_track_is_not_found(self):
        self.tracks.find_one_and_delete.return_value = None
        with self.assertRaises(NotFoundError):
            self.db.delete_track(ObjectId())
        self.bucket.delete.assert_not_called()
        self.playlists.update_many.assert_not_called()

    def test_add_track_to_playlist_uses_set_semantics(self):
        pid, tid = ObjectId(), ObjectId()
        self.playlists.update_one.return_value = MagicMock(matched_count=1)
        self.db.add_track_to_playlist(pid, tid)
        self.playlists.update_one.assert_called_once_with(
            {"_id": pid}, {"$addToSet": {"tracks": tid}}
        )

    def test_remove_track_from_missing_playlist_is_not_found(self):
        self.playlists.update_one.return_value = MagicMock(matched_count=0)
        with self.assertRaises(NotFoundError):
            self.db.remove_track_from_playlist(ObjectId(), ObjectId())

    def test_delete_playlist_without_match_is_an_error(self):
        self.playlists.delete_one.return_value = MagicMock(deleted_count=0)
        with self.assertRaises(NotFoundError) as ctx:
            self.db.delete_playlist(ObjectId())
        self.assertEqual(str(ctx.exception), "no documents were deleted")

    def test_get_playlists_passes_filters(self):
        pid, tid = ObjectId(), ObjectId()
        self.playlists.find.return_value = [{"_id": pid, "name": "Mix", "tracks": [tid]}]
        playlists = self.db.get_playlists({"tracks": tid})
        self.playlists.find.assert_called_once_with({"tracks": tid})
        self.assertEqual(playlists, [PlaylistRecord(pid, "Mix", [tid])])


if __name__ == "__main__":
    unittest.main()
