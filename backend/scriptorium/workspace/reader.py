"""Read-only, chapter-at-a-time view of the manuscript."""

from typing import List, Optional

from ..utils.html_text import strip_html
from .client import ScriptoriumClient
from .editor import sort_by_order


class ReaderView:
    def __init__(self, client: ScriptoriumClient):
        self.client = client
        self.chapters: List[dict] = []
        self.index = 0

    async def load(self):
        self.chapters = sort_by_order(await self.client.list_chapters())
        self.index = 0

    @property
    def current(self) -> Optional[dict]:
        return self.chapters[self.index] if self.chapters else None

    def next(self) -> Optional[dict]:
        self.index = min(self.index + 1, max(len(self.chapters) - 1, 0))
        return self.current

    def previous(self) -> Optional[dict]:
        self.index = max(self.index - 1, 0)
        return self.current

    def render_current(self) -> str:
        chapter = self.current
        if chapter is None:
            return "This story has no chapters yet."
        return f"{chapter['title']}\n\n{strip_html(chapter['content'])}"

    def render_manuscript(self) -> str:
        """Whole book as plain text, chapters in reading order"""
        return "\n\n\n".join(
            f"{chapter['title']}\n\n{strip_html(chapter['content'])}" for chapter in self.chapters
        )
