from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base

class Chapter(Base):
    """A unit of the manuscript; reading order is defined by `order`"""
    __tablename__ = "chapters"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(300), nullable=False)
    content = Column(Text, nullable=False, default="")  # HTML from the rich-text editor
    order = Column("sort_order", Integer, nullable=False, index=True)

    # AI output persisted after a completed stream
    critique = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Removing a chapter drops its part memberships with it
    part_links = relationship("PartChapter", back_populates="chapter", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Chapter(id={self.id}, order={self.order}, title='{self.title}')>"

    def to_dict(self):
        """Convert chapter to dictionary for API responses"""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "order": self.order,
            "critique": self.critique,
            "summary": self.summary,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
