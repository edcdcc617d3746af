"""
Macro store using SQLite.

Stores each recording as a JSON document next to the columns used for
listing and searching (name, category, tags, timestamps).
"""

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from apimacro.core.models import Recording
from apimacro.errors import MacroNotFoundError, StorageError, ValidationError
from apimacro.logging import get_macro_logger
from apimacro.state.base import MacroStorage

logger = get_macro_logger(__name__)

EXPORT_VERSION = "1.0"


class MacroStore(MacroStorage):
    """
    SQLite-based macro store.

    Writes are serialized with a lock so recorder and player may share one
    store across threads.

    Example:
        with MacroStore() as store:
            store.save(recording)
            macros = store.list()
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize macro store.

        Args:
            db_path: Path to SQLite database (default: ~/.apimacro/macros.db)
        """
        if db_path is None:
            db_path = self._default_path()

        self.db_path = db_path
        self._lock = threading.Lock()
        try:
            self._ensure_db_dir()
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Could not open macro store at {db_path}: {e}") from e

    @staticmethod
    def _default_path() -> str:
        return str(Path.home() / ".apimacro" / "macros.db")

    def _ensure_db_dir(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _init_schema(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS macros (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT NOT NULL,
                category TEXT,
                tags TEXT NOT NULL,
                created TEXT NOT NULL,
                updated TEXT NOT NULL,
                data TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_macros_updated
                ON macros(updated DESC);
            CREATE INDEX IF NOT EXISTS idx_macros_name
                ON macros(name);
        """)
        self.conn.commit()

    def save(self, recording: Recording) -> None:
        """
        Save or update a recording.

        Args:
            recording: Recording to save

        Raises:
            ValidationError: If the recording is malformed
            StorageError: If it cannot be serialized or written
        """
        recording.validate()

        try:
            data = json.dumps(recording.to_dict())
            tags = json.dumps(list(recording.metadata.get("tags") or []))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Macro {recording.id} is not serializable: {e}") from e

        with self._lock:
            try:
                self.conn.execute("""
                    INSERT OR REPLACE INTO macros
                    (id, name, description, category, tags, created, updated, data)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    recording.id,
                    recording.name,
                    recording.description,
                    recording.metadata.get("category"),
                    tags,
                    recording.created.isoformat(),
                    recording.updated.isoformat(),
                    data,
                ))
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorageError(f"Could not save macro {recording.id}: {e}") from e

        logger.debug(f"Saved macro {recording.id} ({recording.name})")

    def load(self, macro_id: str) -> Optional[Recording]:
        """
        Get a recording by id.

        Returns:
            Recording or None if not found

        Raises:
            ValidationError: If the stored document is malformed
        """
        try:
            row = self.conn.execute(
                "SELECT data FROM macros WHERE id = ?",
                (macro_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not load macro {macro_id}: {e}") from e

        if not row:
            return None

        return self._from_row(row)

    def list(self) -> List[Recording]:
        """
        List all recordings.

        Returns:
            Recordings ordered by last update, newest first
        """
        try:
            rows = self.conn.execute(
                "SELECT data FROM macros ORDER BY updated DESC, name"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Could not list macros: {e}") from e

        return [self._from_row(row) for row in rows]

    def delete(self, macro_id: str) -> None:
        """
        Delete a recording.

        Raises:
            MacroNotFoundError: If no recording has this id
        """
        with self._lock:
            try:
                cursor = self.conn.execute("DELETE FROM macros WHERE id = ?", (macro_id,))
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorageError(f"Could not delete macro {macro_id}: {e}") from e

        if cursor.rowcount == 0:
            raise MacroNotFoundError(macro_id)

    def search(
        self,
        name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        category: Optional[str] = None,
    ) -> List[Recording]:
        """Filter on the indexed columns, then on tags."""
        clauses = []
        args: List[Any] = []
        if name:
            clauses.append("LOWER(name) LIKE ?")
            args.append(f"%{name.lower()}%")
        if category:
            clauses.append("category = ?")
            args.append(category)

        query = "SELECT data, tags FROM macros"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY updated DESC, name"

        try:
            rows = self.conn.execute(query, args).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Could not search macros: {e}") from e

        wanted = set(tags or [])
        return [
            self._from_row(row)
            for row in rows
            if wanted.issubset(json.loads(row["tags"]))
        ]

    def export_all(self, export_path: str) -> int:
        """
        Export all recordings to a single JSON file.

        Returns:
            Number of recordings exported
        """
        macros = self.list()
        export_data: Dict[str, Any] = {
            "version": EXPORT_VERSION,
            "exported": datetime.now().isoformat(),
            "macros": [m.to_dict() for m in macros],
        }

        try:
            with open(export_path, "w") as f:
                json.dump(export_data, f, indent=2)
        except OSError as e:
            raise StorageError(f"Could not write export file {export_path}: {e}") from e

        return len(macros)

    def import_all(self, import_path: str, overwrite: bool = False) -> int:
        """
        Import recordings from an export file.

        Args:
            import_path: File written by export_all
            overwrite: Replace recordings that already exist

        Returns:
            Number of recordings imported
        """
        try:
            with open(import_path, "r") as f:
                import_data = json.load(f)
        except OSError as e:
            raise StorageError(f"Could not read import file {import_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ValidationError(f"Import file {import_path} is not valid JSON: {e}") from e

        if not isinstance(import_data, dict) or not isinstance(import_data.get("macros"), list):
            raise ValidationError(f"Import file {import_path} has no macros list")

        imported = 0
        for entry in import_data["macros"]:
            recording = Recording.from_dict(entry)
            if not overwrite and self.load(recording.id) is not None:
                logger.debug(f"Skipping existing macro {recording.id}")
                continue
            self.save(recording)
            imported += 1

        return imported

    def _from_row(self, row) -> Recording:
        try:
            data = json.loads(row["data"])
        except json.JSONDecodeError as e:
            raise ValidationError(f"Stored macro is not valid JSON: {e}") from e
        return Recording.from_dict(data)

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
