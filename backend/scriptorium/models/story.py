from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func
from ..database import Base

DEFAULT_PLOT_SUMMARY = (
    "No overall plot summary has been set yet. This is where you can keep track of major plot "
    "points, character arcs, and thematic elements for the AI to reference."
)

class Story(Base):
    """Singleton record holding the master plot summary of the novel"""
    __tablename__ = "story"

    id = Column(Integer, primary_key=True, index=True)
    plot_summary = Column(Text, nullable=False, default=DEFAULT_PLOT_SUMMARY)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Story(id={self.id})>"

    def to_dict(self):
        return {
            "id": self.id,
            "plotSummary": self.plot_summary,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
