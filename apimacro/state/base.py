"""
Base storage interface.

The engine only needs a keyed store for finalized recordings. Implementations
must serialize their own writes and raise StorageError on failure.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from apimacro.core.models import Recording


class MacroStorage(ABC):
    """
    Abstract base class for macro persistence.

    Implementations:
    - MacroStore: SQLite database
    """

    @abstractmethod
    def save(self, recording: Recording) -> None:
        """
        Save or replace a recording.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def load(self, macro_id: str) -> Optional[Recording]:
        """
        Load a recording by id.

        Returns:
            Recording or None if not found

        Raises:
            ValidationError: If the stored recording is malformed
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def list(self) -> List[Recording]:
        """List all recordings, most recently updated first."""
        pass

    @abstractmethod
    def delete(self, macro_id: str) -> None:
        """
        Delete a recording.

        Raises:
            MacroNotFoundError: If no recording has this id
        """
        pass

    def search(
        self,
        name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        category: Optional[str] = None,
    ) -> List[Recording]:
        """
        Filter recordings by name substring, required tags and category.

        Example:
            store.search(name="backend", tags=["haproxy"])
        """
        matches = []
        for recording in self.list():
            if name and name.lower() not in recording.name.lower():
                continue
            if category and recording.metadata.get("category") != category:
                continue
            if tags and not all(tag in (recording.metadata.get("tags") or []) for tag in tags):
                continue
            matches.append(recording)
        return matches
