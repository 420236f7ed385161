"""
SQLAlchemy model for cached synthesized audio.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from surveycall.shared.database import Base, utcnow


class AudioAsset(Base):
    """Write-once mapping from a (text, voice) content hash to a playable URL."""

    __tablename__ = "audio_assets"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    voice_id: Mapped[str] = mapped_column(String(64), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<AudioAsset(key={self.key[:12]}, voice={self.voice_id})>"
