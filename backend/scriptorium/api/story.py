from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from ..database import get_db
from ..models import Story
from .errors import success
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class StoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    plot_summary: str = Field(..., alias="plotSummary")


def get_or_create_story(db: Session) -> Story:
    """The single story record, created with the default summary on first access"""
    story = db.query(Story).order_by(Story.id).first()
    if story is None:
        story = Story()
        db.add(story)
        db.commit()
        db.refresh(story)
        logger.info("[STORY] Created story context record")
    return story


@router.get("")
async def get_story(db: Session = Depends(get_db)):
    story = get_or_create_story(db)
    return success(story.to_dict())


@router.put("")
async def update_story(story_data: StoryUpdate, db: Session = Depends(get_db)):
    """Upsert the plot summary"""
    story = db.query(Story).order_by(Story.id).first()
    if story is None:
        story = Story(plot_summary=story_data.plot_summary)
        db.add(story)
    else:
        story.plot_summary = story_data.plot_summary

    db.commit()
    db.refresh(story)
    return success(story.to_dict())
