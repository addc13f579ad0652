"""
Context Assembler

Builds the user message sent along with an analysis request:

    1. the overall plot summary
    2. the preceding chapters (at most `ai_context_chapters` of them)
    3. the current chapter, tagged with its 1-based position

or, for part analysis, the plot summary plus an arbitrary caller-selected set
of chapters. Everything here is a pure function of its inputs; the only state
is the prompt templates held by the PromptManager.

Chapters may be ORM objects or plain mappings with `title`, `content` and
`order` keys, so the same code serves the API and the workspace client.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..config import settings
from ..utils.html_text import strip_html
from .llm.prompts import PromptManager, prompt_manager

logger = logging.getLogger(__name__)

CHAPTER_SEPARATOR = "\n\n---\n\n"
DEFAULT_CONTEXT_CHAPTERS = 10


def _field(chapter: Any, name: str, default: Any = None) -> Any:
    if isinstance(chapter, dict):
        return chapter.get(name, default)
    return getattr(chapter, name, default)


def format_chapter(chapter: Any) -> str:
    """Render one chapter as `Chapter (Order <n>): <title>` followed by its text"""
    order = _field(chapter, "order", 0) or 0
    title = _field(chapter, "title", "") or ""
    body = strip_html(_field(chapter, "content", ""))
    return f"Chapter (Order {order + 1}): {title}\n{body}"


def recent_chapters_content(
    chapters: Sequence[Any],
    index: int,
    count: int = DEFAULT_CONTEXT_CHAPTERS,
) -> str:
    """Join the up-to-`count` chapters that precede position `index`"""
    start = max(0, index - count)
    return CHAPTER_SEPARATOR.join(format_chapter(chapter) for chapter in chapters[start:index])


def current_chapter_text(chapter: Any) -> str:
    """Title plus plain text of the chapter under review"""
    title = _field(chapter, "title", "") or ""
    return f"{title}\n\n{strip_html(_field(chapter, 'content', ''))}"


def part_context(chapters: Sequence[Any]) -> str:
    """Join the selected chapters in the order given"""
    return CHAPTER_SEPARATOR.join(format_chapter(chapter) for chapter in chapters)


def estimate_tokens(text: str, model: Optional[str] = None) -> int:
    """Token count of a prompt, estimated when the tokenizer is unavailable"""
    try:
        import litellm
        return litellm.token_counter(model=model or settings.llm_model, text=text)
    except Exception as e:
        logger.debug(f"Token counting failed ({e}), using estimation")
        # 1 token is about 3.5 characters of English prose
        return int(len(text) / 3.5)


@dataclass
class ChapterPrompt:
    chapter: Any
    chapter_number: int
    system_prompt: str
    user_prompt: str


class ContextAssembler:
    """Renders analysis prompts from chapter data and the YAML templates"""

    def __init__(self, prompts: PromptManager = None, context_chapters: int = None):
        self.prompts = prompts or prompt_manager
        self.context_chapters = context_chapters if context_chapters is not None else settings.ai_context_chapters

    def chapter_prompt(
        self,
        content: str,
        story_context: Optional[str] = None,
        chapter_number: Optional[int] = None,
        recent_chapters: Optional[str] = None,
    ) -> str:
        """User message for a chapter critique or summary"""
        return self.prompts.get_chapter_user_prompt(
            story_context=story_context or self.prompts.get_placeholder("story_context"),
            recent_chapters=recent_chapters or self.prompts.get_placeholder("recent_chapters"),
            chapter_number=chapter_number if chapter_number is not None else "?",
            content=content,
        )

    def part_prompt(self, part_context_text: str, story_context: Optional[str] = None) -> str:
        """User message for analyzing a selection of chapters"""
        return self.prompts.get_part_user_prompt(
            story_context=story_context or self.prompts.get_placeholder("story_context"),
            part_context=part_context_text or "",
        )

    def for_chapter(
        self,
        chapters: Sequence[Any],
        target_id: Any,
        plot_summary: Optional[str],
        prompt_type: str,
    ) -> ChapterPrompt:
        """Assemble the full request for the chapter `target_id` of an order-sorted list"""
        index = next((i for i, chapter in enumerate(chapters) if _field(chapter, "id") == target_id), None)
        if index is None:
            raise LookupError(f"Chapter {target_id} is not in the chapter list")

        chapter = chapters[index]
        user_prompt = self.chapter_prompt(
            content=current_chapter_text(chapter),
            story_context=plot_summary,
            chapter_number=index + 1,
            recent_chapters=recent_chapters_content(chapters, index, self.context_chapters),
        )
        return ChapterPrompt(
            chapter=chapter,
            chapter_number=index + 1,
            system_prompt=self.prompts.get_chapter_system_prompt(prompt_type),
            user_prompt=user_prompt,
        )


def warn_if_oversized(system_prompt: str, user_prompt: str) -> int:
    """Log the prompt size and warn when it exceeds the configured budget"""
    tokens = estimate_tokens(f"{system_prompt}\n{user_prompt}")
    if tokens > settings.ai_context_warn_tokens:
        logger.warning(f"Assembled prompt is {tokens} tokens, above the {settings.ai_context_warn_tokens} token warning level")
    else:
        logger.info(f"Assembled prompt is {tokens} tokens")
    return tokens


# Global assembler instance
context_assembler = ContextAssembler()
