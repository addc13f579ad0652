"""
Story Part Model

A part is a named grouping of chapters (an arc or act of the novel) that
carries its own system instruction for AI analysis. Membership is a
non-exclusive, ordered reference list: the same chapter may sit in several
parts, and deleting a chapter removes it from every part that referenced it.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base

DEFAULT_PART_TITLE = "New Part"

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are an expert literary editor. Analyze the provided chapter selections from this part "
    "of the novel for overall coherence, pacing, and thematic consistency. Use the provided "
    "overall story context to inform your analysis."
)


class PartChapter(Base):
    """Ordered membership of a chapter in a part"""
    __tablename__ = "part_chapters"

    part_id = Column(Integer, ForeignKey("parts.id", ondelete="CASCADE"), primary_key=True)
    chapter_id = Column(Integer, ForeignKey("chapters.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    part = relationship("Part", back_populates="chapter_links")
    chapter = relationship("Chapter", back_populates="part_links")

    def __repr__(self):
        return f"<PartChapter(part_id={self.part_id}, chapter_id={self.chapter_id}, position={self.position})>"


class Part(Base):
    """
    Major section of the novel.

    Attributes:
        id: Primary key
        title: Display title, defaults to "New Part"
        order: Position among parts, assigned from the part count on creation
        system_instruction: System prompt used when analyzing this part's chapters
        chapter_links: Ordered PartChapter rows; use `chapters` for the Chapter objects
    """
    __tablename__ = "parts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(300), nullable=False, default=DEFAULT_PART_TITLE)
    order = Column("sort_order", Integer, nullable=False, default=0)
    system_instruction = Column(Text, nullable=False, default=DEFAULT_SYSTEM_INSTRUCTION)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    chapter_links = relationship(
        "PartChapter",
        back_populates="part",
        cascade="all, delete-orphan",
        order_by="PartChapter.position",
    )

    @property
    def chapters(self):
        return [link.chapter for link in self.chapter_links]

    def set_chapters(self, chapters):
        """Replace the membership list, keeping the given order and dropping repeats"""
        existing = {link.chapter_id: link for link in self.chapter_links}
        links = []
        seen = set()
        for chapter in chapters:
            if chapter.id in seen:
                continue
            seen.add(chapter.id)
            link = existing.get(chapter.id) or PartChapter(chapter=chapter)
            link.position = len(links)
            links.append(link)
        self.chapter_links = links

    def __repr__(self):
        return f"<Part(id={self.id}, order={self.order}, title='{self.title}')>"

    def to_dict(self):
        """Convert part to dictionary with its chapters embedded in part order"""
        chapters = [chapter.to_dict() for chapter in self.chapters]
        return {
            "id": self.id,
            "title": self.title,
            "order": self.order,
            "systemInstruction": self.system_instruction,
            "chapters": chapters,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
