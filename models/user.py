from models.base_model import Base, BaseModel
from models.video import watch_history
from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship

from utils.security import hash_password, verify_password


class User(BaseModel, Base):
    __tablename__ = "users"
    username = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False, index=True)
    avatar = Column(String(512), nullable=False)  # CDN url
    avatar_public_id = Column(String(255), nullable=True)  # CDN asset id, for deletion
    cover_image = Column(String(512), nullable=True)  # CDN url
    cover_image_public_id = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    # The single refresh token this account accepts; NULL means no session
    refresh_token = Column(Text, nullable=True)

    videos = relationship("Video", back_populates="owner", passive_deletes=True)
    # Most recently watched first
    watch_history = relationship("Video", secondary=watch_history, order_by=watch_history.c.watched_at.desc())

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def set_password(self, plaintext: str) -> None:
        """Hash and store a new password. The only code path that touches password_hash."""
        self.password_hash = hash_password(plaintext)

    def check_password(self, plaintext: str) -> bool:
        return verify_password(plaintext, self.password_hash)
