"""Persistence: archival receipts and session files."""

from gotme.persistence.archive import (
    ArchivalService,
    HttpArchive,
    NullArchive,
    render_round_snippet,
)
from gotme.persistence.session_store import SessionStore, load_session, save_session

__all__ = [
    "ArchivalService",
    "HttpArchive",
    "NullArchive",
    "render_round_snippet",
    "SessionStore",
    "load_session",
    "save_session",
]
