"""Random identifiers for files and sessions.

File IDs double as the stem of the storage key, so they stay short.
Session IDs are bearer credentials carried in a cookie and get twice the
entropy. Neither is checked against existing IDs.
"""
import secrets

FILE_ID_BYTES = 16
SESSION_ID_BYTES = 32


def new_file_id() -> str:
    """Return a 32 character hex file ID."""
    return secrets.token_hex(FILE_ID_BYTES)


def new_session_id() -> str:
    """Return a 64 character hex session ID."""
    return secrets.token_hex(SESSION_ID_BYTES)
