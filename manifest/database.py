"""The SQLite-backed store of projects, features, sessions and history."""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from types import TracebackType
from typing import Optional, Union

from platformdirs import user_data_dir

from manifest.sessions import SessionStore

_DB_FILE = "manifest.db"
_DATA_DIR_ENV = "MANIFEST_DATA_DIR"


class Database(SessionStore):
    """Every storage operation behind one SQLite connection.

    Open it with :meth:`open`, :meth:`open_default` or :meth:`open_memory`,
    call :meth:`migrate`, and close it when done (or use it as a context
    manager).
    """

    @classmethod
    def open(cls, path: Union[str, os.PathLike[str]]) -> Database:
        """Open (creating if needed) the database file at ``path`` in WAL mode."""
        db_path = Path(path)
        parent = db_path.parent
        if db_path == parent or str(db_path) in ("", "."):
            raise ValueError("Database path has no parent directory")
        parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(db_path), check_same_thread=False)
        connection.execute("PRAGMA journal_mode = WAL")
        return cls(connection)

    @classmethod
    def open_default(cls) -> Database:
        """Open ``manifest.db`` in ``$MANIFEST_DATA_DIR`` or the user data directory."""
        data_dir: Optional[str] = os.environ.get(_DATA_DIR_ENV)
        if data_dir is None:
            data_dir = user_data_dir("manifest", appauthor=False)
            if not data_dir:
                raise RuntimeError("Could not determine data directory")
        return cls.open(Path(data_dir) / _DB_FILE)

    @classmethod
    def open_memory(cls) -> Database:
        """Open a private in-memory database."""
        return cls(sqlite3.connect(":memory:", check_same_thread=False))

    def __enter__(self) -> Database:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()