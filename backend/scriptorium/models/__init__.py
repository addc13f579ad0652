# Import Base from database first
from ..database import Base

# Import all models to ensure they're registered with SQLAlchemy
from .chapter import Chapter
from .part import Part, PartChapter, DEFAULT_PART_TITLE, DEFAULT_SYSTEM_INSTRUCTION
from .story import Story, DEFAULT_PLOT_SUMMARY

__all__ = [
    "Base",
    "Chapter",
    "Part", "PartChapter", "DEFAULT_PART_TITLE", "DEFAULT_SYSTEM_INSTRUCTION",
    "Story", "DEFAULT_PLOT_SUMMARY",
]
