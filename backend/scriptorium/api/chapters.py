from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator
from ..database import get_db
from ..models import Chapter
from .errors import success
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

# Columns that exist on every chapter and may not be cleared with null
NON_NULLABLE_FIELDS = ("title", "content", "order")


def _clean_title(value):
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("Chapter title is required.")
    return value


# Pydantic models for request bodies
class ChapterCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    content: str
    order: int
    critique: Optional[str] = None
    summary: Optional[str] = None

    @field_validator("title")
    @classmethod
    def clean_title(cls, value):
        return _clean_title(value)


class ChapterUpdate(BaseModel):
    """Fields a chapter update may touch; anything else is rejected"""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    content: Optional[str] = None
    order: Optional[int] = None
    critique: Optional[str] = None
    summary: Optional[str] = None

    @field_validator("title")
    @classmethod
    def clean_title(cls, value):
        return _clean_title(value)


def get_chapter_or_404(chapter_id: int, db: Session) -> Chapter:
    chapter = db.query(Chapter).filter(Chapter.id == chapter_id).first()
    if not chapter:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chapter not found")
    return chapter


def list_chapters_in_order(db: Session):
    """All chapters in reading order; equal orders fall back to creation order"""
    return db.query(Chapter).order_by(Chapter.order, Chapter.id).all()


@router.get("")
async def list_chapters(db: Session = Depends(get_db)):
    """List chapters sorted by order"""
    chapters = list_chapters_in_order(db)
    return success([chapter.to_dict() for chapter in chapters])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_chapter(chapter_data: ChapterCreate, db: Session = Depends(get_db)):
    """Create a chapter at the caller-given order"""
    chapter = Chapter(**chapter_data.model_dump())
    db.add(chapter)
    db.commit()
    db.refresh(chapter)

    logger.info(f"[CHAPTER] Created chapter {chapter.id} at order {chapter.order}")
    return success(chapter.to_dict(), status.HTTP_201_CREATED)


@router.get("/{chapter_id}")
async def get_chapter(chapter_id: int, db: Session = Depends(get_db)):
    chapter = get_chapter_or_404(chapter_id, db)
    return success(chapter.to_dict())


@router.put("/{chapter_id}")
async def update_chapter(chapter_id: int, chapter_data: ChapterUpdate, db: Session = Depends(get_db)):
    """Partial update: only the fields present in the body are written"""
    update_data = chapter_data.model_dump(exclude_unset=True)

    cleared = [field for field in NON_NULLABLE_FIELDS if field in update_data and update_data[field] is None]
    if cleared:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Field(s) cannot be null: {', '.join(cleared)}"
        )

    chapter = get_chapter_or_404(chapter_id, db)
    for field, value in update_data.items():
        setattr(chapter, field, value)

    db.commit()
    db.refresh(chapter)

    logger.debug(f"[CHAPTER] Updated chapter {chapter_id}: {sorted(update_data)}")
    return success(chapter.to_dict())


@router.delete("/{chapter_id}")
async def delete_chapter(chapter_id: int, db: Session = Depends(get_db)):
    """Delete a chapter; its memberships in parts go with it"""
    chapter = get_chapter_or_404(chapter_id, db)
    db.delete(chapter)
    db.commit()

    logger.info(f"[CHAPTER] Deleted chapter {chapter_id}")
    return success({})
