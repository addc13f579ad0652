"""
Story parts session

Manages parts, their chapter membership and the part-level AI analysis over
an arbitrary selection of the active part's chapters.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from ..services.context_assembler import part_context
from .client import ScriptoriumClient
from .editor import ERROR_MARKER

logger = logging.getLogger(__name__)


class PartsSession:
    def __init__(self, client: ScriptoriumClient):
        self.client = client
        self.parts: List[dict] = []
        self.all_chapters: List[dict] = []
        self.story: Optional[dict] = None
        self.active_part: Optional[dict] = None
        # dict keeps the order in which chapters were ticked
        self.selected: dict = {}
        self.ai_response = ""
        self.ai_busy = False

    async def load(self):
        self.parts, self.all_chapters, self.story = await asyncio.gather(
            self.client.list_parts(),
            self.client.list_chapters(),
            self.client.get_story(),
        )

    def _replace(self, part: dict):
        self.parts = [part if existing["id"] == part["id"] else existing for existing in self.parts]

    def select_part(self, part_id: int):
        self.active_part = next(part for part in self.parts if part["id"] == part_id)
        self.selected = {}

    async def add_part(self, **fields) -> dict:
        part = await self.client.create_part(**fields)
        self.parts.append(part)
        return part

    async def delete_part(self, part_id: int):
        await self.client.delete_part(part_id)
        self.parts = [part for part in self.parts if part["id"] != part_id]
        if self.active_part is not None and self.active_part["id"] == part_id:
            self.active_part = None
            self.selected = {}

    async def update_part(self, part_id: int, **fields) -> dict:
        part = await self.client.update_part(part_id, **fields)
        self._replace(part)
        self.active_part = part
        return part

    def _active_chapter_ids(self) -> List[int]:
        return [chapter["id"] for chapter in self.active_part["chapters"]]

    async def assign(self, chapter_id: int) -> Optional[dict]:
        """Add a chapter to the end of the active part"""
        if self.active_part is None:
            return None
        return await self.update_part(self.active_part["id"], chapters=self._active_chapter_ids() + [chapter_id])

    async def unassign(self, chapter_id: int) -> Optional[dict]:
        if self.active_part is None:
            return None
        remaining = [existing for existing in self._active_chapter_ids() if existing != chapter_id]
        self.selected.pop(chapter_id, None)
        return await self.update_part(self.active_part["id"], chapters=remaining)

    def toggle_selection(self, chapter_id: int):
        if chapter_id in self.selected:
            del self.selected[chapter_id]
        else:
            self.selected[chapter_id] = True

    def selected_chapters(self) -> List[dict]:
        members = {chapter["id"]: chapter for chapter in self.active_part["chapters"]} if self.active_part else {}
        return [members[chapter_id] for chapter_id in self.selected if chapter_id in members]

    async def analyze(self, on_chunk: Optional[Callable[[str], None]] = None) -> str:
        """Stream an analysis of the selected chapters under the part's instruction"""
        selection = self.selected_chapters()
        if self.active_part is None or not selection:
            return ""

        self.ai_busy = True
        self.ai_response = ""
        try:
            stream = self.client.stream_part_ai(
                part_context=part_context(selection),
                system_instruction=self.active_part["systemInstruction"],
                story_context=(self.story or {}).get("plotSummary", ""),
            )
            async for chunk in stream:
                self.ai_response += chunk
                if on_chunk:
                    on_chunk(chunk)
        except Exception as e:
            logger.error(f"Part analysis failed: {e}")
            self.ai_response += f"{ERROR_MARKER}{e}"
        finally:
            self.ai_busy = False
        return self.ai_response
