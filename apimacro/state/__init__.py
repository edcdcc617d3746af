"""
Macro persistence for apimacro.

Stores finalized recordings using SQLite.
"""

from apimacro.state.base import MacroStorage
from apimacro.state.store import MacroStore

__all__ = ["MacroStorage", "MacroStore"]
