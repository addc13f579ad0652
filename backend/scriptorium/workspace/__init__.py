"""
Client-side glue for the editor, parts and reader views.
"""

from .client import ScriptoriumClient, ScriptoriumAPIError
from .editor import EditorSession, ERROR_MARKER, NEW_CHAPTER_TITLE, NEW_CHAPTER_CONTENT
from .parts import PartsSession
from .reader import ReaderView

__all__ = [
    "ScriptoriumClient", "ScriptoriumAPIError",
    "EditorSession", "ERROR_MARKER", "NEW_CHAPTER_TITLE", "NEW_CHAPTER_CONTENT",
    "PartsSession", "ReaderView",
]
