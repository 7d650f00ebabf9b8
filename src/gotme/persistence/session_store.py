"""Session files for the CLI.

Each Session is stored as pretty-printed JSON under
``~/.gotme/sessions/<session_id>.json``. Writes go through a temporary file
and an atomic rename so a crash never leaves a half-written session.
"""

from pathlib import Path

import structlog

from gotme.core.errors import PersistenceError
from gotme.core.security import InputValidator
from gotme.core.session import Session
from gotme.core.types import Result

log = structlog.get_logger()


def save_session(session: Session, path: Path) -> Result[Path, PersistenceError]:
    """Write ``session`` to ``path`` as JSON."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(session.model_dump_json(indent=2, by_alias=True), encoding="utf-8")
        tmp_path.replace(path)
    except OSError as e:
        log.exception("session.file.save_failed", session_id=session.id, path=str(path))
        return Result.err(
            PersistenceError(
                f"Failed to save session: {e}",
                operation="save",
                path=str(path),
                details={"session_id": session.id},
            )
        )
    log.debug("session.file.saved", session_id=session.id, path=str(path))
    return Result.ok(path)


def load_session(path: Path) -> Result[Session, PersistenceError]:
    """Read and validate a Session from ``path``."""
    if not path.exists():
        return Result.err(
            PersistenceError(f"Session file not found: {path}", operation="load", path=str(path))
        )
    try:
        is_valid, error_msg = InputValidator.validate_session_file_size(path.stat().st_size)
        if not is_valid:
            return Result.err(PersistenceError(error_msg, operation="load", path=str(path)))
        content = path.read_text(encoding="utf-8")
        session = Session.model_validate_json(content)
    except (OSError, ValueError) as e:
        log.warning("session.file.load_failed", path=str(path), error=str(e))
        return Result.err(
            PersistenceError(
                f"Failed to load session: {e}",
                operation="load",
                path=str(path),
                details={"original_exception": type(e).__name__},
            )
        )
    return Result.ok(session)


class SessionStore:
    """Directory of session files.

    Args:
        base_path: Directory holding the files.
                   Defaults to ~/.gotme/sessions/
    """

    def __init__(self, base_path: Path | None = None) -> None:
        if base_path is None:
            base_path = Path.home() / ".gotme" / "sessions"
        self._base_path = base_path

    @property
    def base_path(self) -> Path:
        return self._base_path

    def path_for(self, session_id: str) -> Path:
        return self._base_path / f"{session_id}.json"

    def save(self, session: Session) -> Result[Path, PersistenceError]:
        return save_session(session, self.path_for(session.id))

    def load(self, session_id: str) -> Result[Session, PersistenceError]:
        return load_session(self.path_for(session_id))

    def list_ids(self) -> list[str]:
        """Session ids, most recently written first."""
        if not self._base_path.exists():
            return []
        files = sorted(
            self._base_path.glob("*.json"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        return [f.stem for f in files]

    def load_latest(self) -> Result[Session, PersistenceError]:
        ids = self.list_ids()
        if not ids:
            return Result.err(
                PersistenceError(
                    "No saved sessions; create one with 'gotme contract new'",
                    operation="load",
                    path=str(self._base_path),
                )
            )
        return self.load(ids[0])
