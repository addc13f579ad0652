from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from ..database import get_db
from ..models import Chapter, Part
from .errors import success
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_text(value, label):
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError(f"{label} cannot be empty.")
    return value


# Pydantic models for request bodies
class PartCreate(BaseModel):
    """Request model for creating a part; every field is optional"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: Optional[str] = None
    system_instruction: Optional[str] = Field(None, alias="systemInstruction")
    chapters: Optional[List[int]] = None

    @field_validator("title")
    @classmethod
    def clean_title(cls, value):
        return _require_text(value, "Part title")

    @field_validator("system_instruction")
    @classmethod
    def clean_instruction(cls, value):
        return _require_text(value, "System instruction")


class PartUpdate(BaseModel):
    """Request model for updating a part"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: Optional[str] = None
    order: Optional[int] = None
    system_instruction: Optional[str] = Field(None, alias="systemInstruction")
    chapters: Optional[List[int]] = None

    @field_validator("title")
    @classmethod
    def clean_title(cls, value):
        return _require_text(value, "Part title")

    @field_validator("system_instruction")
    @classmethod
    def clean_instruction(cls, value):
        return _require_text(value, "System instruction")


# Helper functions
def get_part_or_404(part_id: int, db: Session) -> Part:
    part = db.query(Part).filter(Part.id == part_id).first()
    if not part:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Part not found")
    return part


def resolve_chapters(chapter_ids: List[int], db: Session) -> List[Chapter]:
    """Load chapters in the requested order, refusing ids that do not exist"""
    if not chapter_ids:
        return []
    found = {chapter.id: chapter for chapter in db.query(Chapter).filter(Chapter.id.in_(chapter_ids)).all()}
    missing = [chapter_id for chapter_id in dict.fromkeys(chapter_ids) if chapter_id not in found]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown chapter id(s): {', '.join(str(m) for m in missing)}"
        )
    return [found[chapter_id] for chapter_id in chapter_ids]


# API Endpoints
@router.get("")
async def list_parts(db: Session = Depends(get_db)):
    """List parts by order with their chapters populated"""
    parts = db.query(Part).order_by(Part.order, Part.id).all()
    return success([part.to_dict() for part in parts])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_part(part_data: Optional[PartCreate] = Body(None), db: Session = Depends(get_db)):
    """Create a part at the end of the part list"""
    part_data = part_data or PartCreate()
    count = db.query(Part).count()

    part = Part(order=count)
    if part_data.title is not None:
        part.title = part_data.title
    if part_data.system_instruction is not None:
        part.system_instruction = part_data.system_instruction
    if part_data.chapters:
        part.set_chapters(resolve_chapters(part_data.chapters, db))

    db.add(part)
    db.commit()
    db.refresh(part)

    logger.info(f"[PART] Created part {part.id} at order {part.order}")
    return success(part.to_dict(), status.HTTP_201_CREATED)


@router.put("/{part_id}")
async def update_part(part_id: int, part_data: PartUpdate, db: Session = Depends(get_db)):
    """Update title, instruction, order or the chapter reference list"""
    update_data = part_data.model_dump(exclude_unset=True)

    cleared = [field for field in ("title", "order", "system_instruction") if field in update_data and update_data[field] is None]
    if cleared:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Field(s) cannot be null: {', '.join(cleared)}"
        )

    part = get_part_or_404(part_id, db)

    if "chapters" in update_data:
        part.set_chapters(resolve_chapters(update_data.pop("chapters") or [], db))
    for field, value in update_data.items():
        setattr(part, field, value)

    db.commit()
    db.refresh(part)
    return success(part.to_dict())


@router.delete("/{part_id}")
async def delete_part(part_id: int, db: Session = Depends(get_db)):
    """Delete a part; the chapters it referenced are left untouched"""
    part = get_part_or_404(part_id, db)
    db.delete(part)
    db.commit()

    logger.info(f"[PART] Deleted part {part_id}")
    return success({})
