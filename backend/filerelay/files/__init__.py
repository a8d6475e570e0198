"""File upload, storage and one-time download for the relay.

Uploaded bytes are stored flat in the upload directory as ``<id><ext>`` and
tracked in an in-memory file store. A file is deleted after its first
completed download, when it expires, or when its session is reset.
"""
