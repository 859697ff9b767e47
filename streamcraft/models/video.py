"""
Video model untuk menyimpan metadata video.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from streamcraft.database import Base
from datetime import datetime


class Video(Base):
    """
    Model untuk menyimpan informasi video.

    Attributes:
        id: Primary key
        user_id: Uploading user
        title: Judul video
        filename: Stored file name
        filepath: Path ke file video
        filesize: File size dalam bytes
        duration: Duration dalam detik (diisi setelah processing)
        format: Mime type
        thumbnail_path: Path ke thumbnail
        status: uploaded, processed, failed
    """
    __tablename__ = "videos"

    STATUS_UPLOADED = "uploaded"
    STATUS_PROCESSED = "processed"
    STATUS_FAILED = "failed"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # File info
    filename = Column(String, nullable=False)
    filepath = Column(String, nullable=False)
    filesize = Column(Integer, default=0)
    format = Column(String)

    duration = Column(Integer, default=0, nullable=False)
    thumbnail_path = Column(String, nullable=True)
    status = Column(String, default=STATUS_UPLOADED, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stream_links = relationship("StreamVideo", back_populates="video", cascade="all, delete", passive_deletes=True)

    def __repr__(self):
        return f"<Video(id={self.id}, title='{self.title}', status='{self.status}')>"

    def to_dict(self):
        """Convert model to dictionary"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "filename": self.filename,
            "filepath": self.filepath,
            "filesize": self.filesize,
            "duration": self.duration,
            "format": self.format,
            "thumbnail_path": self.thumbnail_path,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }
