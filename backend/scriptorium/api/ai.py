"""
AI analysis endpoints

Each endpoint assembles a system/user prompt pair, opens the upstream stream
and answers with a raw text body carrying only the generated text, flushed
delta by delta. Errors that happen before streaming starts come back as
`{"error": "<message>"}` with a 4xx/5xx status.
"""
from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from ..database import get_db
from ..dependencies import get_assembler, get_relay, get_session_factory
from ..models import Chapter, DEFAULT_SYSTEM_INSTRUCTION
from ..services.context_assembler import ContextAssembler, warn_if_oversized
from ..services.llm import ANALYSIS_RESULT_FIELDS, LLMRelay, PROMPT_TYPES, RelayStream, prompt_manager
from .chapters import list_chapters_in_order
from .errors import ai_error
from .story import get_or_create_story
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

# Request bodies are permissive; required fields are checked in the handlers
class ChapterAIRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = None
    prompt_type: Optional[str] = Field(None, alias="promptType")
    story_context: Optional[str] = Field(None, alias="storyContext")
    chapter_number: Optional[int] = Field(None, alias="chapterNumber")
    recent_chapters_content: Optional[str] = Field(None, alias="recentChaptersContent")


class PartAIRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    part_context: Optional[str] = Field(None, alias="partContext")
    system_instruction: Optional[str] = Field(None, alias="systemInstruction")
    story_context: Optional[str] = Field(None, alias="storyContext")


class StoredChapterAIRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt_type: str = Field("critique", alias="promptType")
    persist: bool = True


def stream_response(stream: RelayStream, body=None, headers: Optional[dict] = None) -> StreamingResponse:
    """Raw text response over the relay; the upstream is released however the response ends"""
    response_headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    response_headers.update(headers or {})
    return StreamingResponse(
        body if body is not None else stream.iter_bytes(),
        media_type="text/plain; charset=utf-8",
        headers=response_headers,
        background=BackgroundTask(stream.aclose),
    )


@router.post("")
async def analyze_chapter(
    request: ChapterAIRequest = Body(...),
    relay: LLMRelay = Depends(get_relay),
    assembler: ContextAssembler = Depends(get_assembler),
):
    """Stream a critique or summary of client-supplied chapter text"""
    if not request.content or not request.prompt_type:
        return ai_error("Content and promptType are required.", status.HTTP_400_BAD_REQUEST)
    if request.prompt_type not in PROMPT_TYPES:
        return ai_error(f"Unknown promptType: {request.prompt_type}", status.HTTP_400_BAD_REQUEST)

    system_prompt = prompt_manager.get_chapter_system_prompt(request.prompt_type)
    user_prompt = assembler.chapter_prompt(
        content=request.content,
        story_context=request.story_context,
        chapter_number=request.chapter_number,
        recent_chapters=request.recent_chapters_content,
    )
    tokens = warn_if_oversized(system_prompt, user_prompt)

    logger.info(f"[AI] {request.prompt_type} requested for chapter {request.chapter_number}")
    stream = await relay.open_stream(system_prompt, user_prompt)
    return stream_response(stream, headers={"X-Prompt-Tokens": str(tokens)})


@router.post("/part")
async def analyze_part(
    request: PartAIRequest = Body(...),
    relay: LLMRelay = Depends(get_relay),
    assembler: ContextAssembler = Depends(get_assembler),
):
    """Stream an analysis of a chapter selection under the part's own instruction"""
    if not request.part_context:
        return ai_error("partContext is required.", status.HTTP_400_BAD_REQUEST)

    system_prompt = request.system_instruction or DEFAULT_SYSTEM_INSTRUCTION
    user_prompt = assembler.part_prompt(request.part_context, request.story_context)
    tokens = warn_if_oversized(system_prompt, user_prompt)

    logger.info("[AI] Part analysis requested")
    stream = await relay.open_stream(system_prompt, user_prompt)
    return stream_response(stream, headers={"X-Prompt-Tokens": str(tokens)})


@router.post("/chapters/{chapter_id}")
async def analyze_stored_chapter(
    chapter_id: int,
    request: Optional[StoredChapterAIRequest] = Body(None),
    db: Session = Depends(get_db),
    relay: LLMRelay = Depends(get_relay),
    assembler: ContextAssembler = Depends(get_assembler),
    session_factory=Depends(get_session_factory),
):
    """
    Assemble the prompt from stored chapters and the story context, stream the
    result, and write the finished text into the chapter's critique or summary.

    Nothing is written when the stream fails or the client disconnects early.
    """
    request = request or StoredChapterAIRequest()
    if request.prompt_type not in PROMPT_TYPES:
        return ai_error(f"Unknown promptType: {request.prompt_type}", status.HTTP_400_BAD_REQUEST)

    chapter = db.query(Chapter).filter(Chapter.id == chapter_id).first()
    if not chapter:
        return ai_error("Chapter not found", status.HTTP_404_NOT_FOUND)

    chapters = list_chapters_in_order(db)
    story = get_or_create_story(db)
    assembled = assembler.for_chapter(chapters, chapter_id, story.plot_summary, request.prompt_type)
    tokens = warn_if_oversized(assembled.system_prompt, assembled.user_prompt)

    stream = await relay.open_stream(assembled.system_prompt, assembled.user_prompt)
    field = ANALYSIS_RESULT_FIELDS[request.prompt_type]

    async def relay_and_persist():
        parts = []
        try:
            async for chunk in stream.iter_bytes():
                parts.append(chunk)
                yield chunk
        finally:
            await stream.aclose()

        if request.persist:
            persist_result(session_factory, chapter_id, field, b"".join(parts).decode("utf-8"))

    return stream_response(
        stream,
        body=relay_and_persist(),
        headers={
            "X-Prompt-Tokens": str(tokens),
            "X-Chapter-Number": str(assembled.chapter_number),
        },
    )


def persist_result(session_factory, chapter_id: int, field: str, text: str):
    """Write a completed analysis into the chapter, if it still exists"""
    db = session_factory()
    try:
        chapter = db.query(Chapter).filter(Chapter.id == chapter_id).first()
        if chapter is None:
            logger.warning(f"[AI] Chapter {chapter_id} was deleted before its {field} could be saved")
            return
        setattr(chapter, field, text)
        db.commit()
        logger.info(f"[AI] Saved {len(text)} characters into chapter {chapter_id}.{field}")
    finally:
        db.close()
