"""
Chapter editor session

State and actions behind the chapter list and editor: the active chapter,
the editor buffer, saves, drag-reorder and the streamed AI critique/summary.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from ..services.context_assembler import (
    DEFAULT_CONTEXT_CHAPTERS,
    current_chapter_text,
    recent_chapters_content,
)
from ..services.llm import ANALYSIS_RESULT_FIELDS, PROMPT_TYPES
from .client import ScriptoriumClient

logger = logging.getLogger(__name__)

NEW_CHAPTER_TITLE = "New Chapter"
NEW_CHAPTER_CONTENT = "<p>Start writing...</p>"
ERROR_MARKER = "\n\n--- ERROR ---\n"


def sort_by_order(chapters: List[dict]) -> List[dict]:
    return sorted(chapters, key=lambda chapter: (chapter["order"], chapter["id"]))


class EditorSession:
    """
    One editor view over the manuscript.

    `chapters` is kept in reading order. `editor_content` is the unsaved HTML of
    the active chapter; `save()` writes it back together with the title.
    """

    def __init__(self, client: ScriptoriumClient, context_chapters: int = DEFAULT_CONTEXT_CHAPTERS):
        self.client = client
        self.context_chapters = context_chapters
        self.chapters: List[dict] = []
        self.story: Optional[dict] = None
        self.active: Optional[dict] = None
        self.editor_content = ""
        self.ai_response = ""
        self.is_saving = False
        self.ai_busy: Optional[str] = None

    async def load(self):
        chapters, story = await asyncio.gather(self.client.list_chapters(), self.client.get_story())
        self.chapters = sort_by_order(chapters)
        self.story = story
        self._activate(self.chapters[0] if self.chapters else None)

    def _activate(self, chapter: Optional[dict]):
        self.active = chapter
        self.editor_content = chapter["content"] if chapter else ""

    def _index_of(self, chapter_id: int) -> int:
        for index, chapter in enumerate(self.chapters):
            if chapter["id"] == chapter_id:
                return index
        raise KeyError(f"Chapter {chapter_id} is not loaded")

    def select(self, chapter_id: int):
        self._activate(self.chapters[self._index_of(chapter_id)])

    def set_title(self, title: str):
        if self.active is not None:
            self.active = {**self.active, "title": title}

    def set_content(self, html: str):
        self.editor_content = html

    async def add_chapter(self) -> dict:
        """Append a placeholder chapter and make it active"""
        chapter = await self.client.create_chapter(NEW_CHAPTER_TITLE, NEW_CHAPTER_CONTENT, order=len(self.chapters))
        self.chapters.append(chapter)
        self._activate(chapter)
        return chapter

    async def save(self, **extra_fields) -> Optional[dict]:
        """Write the active title and editor content, plus any extra fields"""
        if self.active is None:
            return None
        self.is_saving = True
        try:
            updated = await self.client.update_chapter(
                self.active["id"],
                title=self.active["title"],
                content=self.editor_content,
                **extra_fields,
            )
        finally:
            self.is_saving = False

        self.chapters[self._index_of(updated["id"])] = updated
        self.active = updated
        return updated

    async def delete_chapter(self, chapter_id: int):
        """Delete a chapter; if it was active, fall back to the first one left"""
        await self.client.delete_chapter(chapter_id)
        self.chapters = [chapter for chapter in self.chapters if chapter["id"] != chapter_id]
        if self.active is not None and self.active["id"] == chapter_id:
            self._activate(self.chapters[0] if self.chapters else None)

    async def reorder(self, dragged_id: int, drop_id: int) -> List[dict]:
        """Move the dragged chapter into the drop target's slot"""
        ordered = list(self.chapters)
        dragged = ordered.pop(self._index_of(dragged_id))
        ordered.insert(self._index_of(drop_id), dragged)
        return await self.apply_order([chapter["id"] for chapter in ordered])

    async def apply_order(self, chapter_ids: List[int]) -> List[dict]:
        """
        Renumber chapters to match `chapter_ids` and write one update per chapter.

        The updates run concurrently and independently: if one fails the others
        still land, and the error is raised once all of them have finished.
        """
        by_id = {chapter["id"]: chapter for chapter in self.chapters}
        self.chapters = [{**by_id[chapter_id], "order": index} for index, chapter_id in enumerate(chapter_ids)]

        results = await asyncio.gather(
            *(self.client.update_chapter(chapter["id"], order=chapter["order"]) for chapter in self.chapters),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, Exception)]
        if failures:
            logger.error(f"Reorder left {len(failures)} of {len(results)} chapters unsaved: {failures[0]}")
            raise failures[0]

        if self.active is not None:
            self.active = self.chapters[self._index_of(self.active["id"])]
        return self.chapters

    async def save_story_context(self, plot_summary: str) -> dict:
        self.story = await self.client.update_story(plot_summary)
        return self.story

    def build_ai_request(self, prompt_type: str) -> dict:
        """Payload for POST /ai from the active chapter and its predecessors"""
        index = self._index_of(self.active["id"])
        current = {"title": self.active["title"], "content": self.editor_content}
        return {
            "content": current_chapter_text(current),
            "prompt_type": prompt_type,
            "story_context": (self.story or {}).get("plotSummary", ""),
            "chapter_number": index + 1,
            "recent_chapters_content": recent_chapters_content(self.chapters, index, self.context_chapters),
        }

    async def run_ai(self, prompt_type: str, on_chunk: Optional[Callable[[str], None]] = None) -> str:
        """
        Stream a critique or summary for the active chapter.

        Text is appended to `ai_response` as it arrives. On completion it is saved
        into the chapter's critique/summary field. On failure an error note is
        appended to the visible text instead and nothing is saved.
        """
        if self.active is None:
            return ""
        if prompt_type not in PROMPT_TYPES:
            raise ValueError(f"Unknown prompt type: {prompt_type}")

        self.ai_busy = prompt_type
        self.ai_response = ""
        try:
            async for chunk in self.client.stream_ai(**self.build_ai_request(prompt_type)):
                self.ai_response += chunk
                if on_chunk:
                    on_chunk(chunk)
            await self.save(**{ANALYSIS_RESULT_FIELDS[prompt_type]: self.ai_response})
        except Exception as e:
            logger.error(f"AI stream failed: {e}")
            self.ai_response += f"{ERROR_MARKER}{e}"
        finally:
            self.ai_busy = None
        return self.ai_response
