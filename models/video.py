from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base

# Videos a user has watched; one row per pair, watched_at moves on every view
watch_history = Table(
    "watch_history",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("video_id", String(36), ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True),
    Column("watched_at", DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)),
)


class Video(BaseModel, Base):
    __tablename__ = "videos"

    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    video_file = Column(String(512), nullable=False)  # CDN url
    video_public_id = Column(String(255), nullable=True)
    thumbnail = Column(String(512), nullable=False)  # CDN url
    thumbnail_public_id = Column(String(255), nullable=True)
    duration = Column(Float, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    is_published = Column(Boolean, nullable=False, default=True)

    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    owner = relationship("User", back_populates="videos")

    __table_args__ = (
        CheckConstraint("views >= 0", name="ck_videos_views_nonnegative"),
    )

    def visible_to(self, user) -> bool:
        """Unpublished videos are only visible to their owner."""
        return bool(self.is_published) or (user is not None and user.id == self.owner_id)
