"""
Music streaming backend.

Tracks and playlists are kept in a document database, audio bytes in a
chunked object store, and every request is authenticated against an
external login service.
"""
