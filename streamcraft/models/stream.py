"""
Stream model: playlist + RTMP target + schedule.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from streamcraft.database import Base


class Stream(Base):
    """
    Model untuk live stream (playlist yang di-broadcast ke RTMP).

    Attributes:
        id: Primary key
        user_id: Owning user
        rtmp_url: RTMP ingest URL (e.g. rtmp://a.rtmp.youtube.com/live2)
        stream_key: Stream key appended to rtmp_url
        status: idle, live, error, ended, scheduled, waiting
        type: Legacy type ('manual' or 'scheduled')
        loop: Loop the playlist forever
        schedule: Raw JSON schedule descriptor
        is_scheduled: Picked up by the scheduler loop
        scheduled_start_time: UTC instant to start
        scheduled_end_time: UTC instant to stop
    """
    __tablename__ = "streams"

    STATUS_IDLE = "idle"
    STATUS_LIVE = "live"
    STATUS_ERROR = "error"
    STATUS_ENDED = "ended"
    STATUS_SCHEDULED = "scheduled"
    STATUS_WAITING = "waiting"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # RTMP target
    rtmp_url = Column(String, nullable=True)
    stream_key = Column(String, nullable=True)

    status = Column(String, default=STATUS_IDLE, nullable=False)
    type = Column(String, default="manual")
    loop = Column(Boolean, default=False)

    # Scheduling
    schedule = Column(Text, nullable=True)  # JSON
    is_scheduled = Column(Boolean, default=False)
    scheduled_start_time = Column(DateTime, nullable=True)  # UTC
    scheduled_end_time = Column(DateTime, nullable=True)  # UTC

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    video_links = relationship(
        "StreamVideo",
        back_populates="stream",
        cascade="all, delete",
        passive_deletes=True,
        order_by="StreamVideo.sort_order",
    )

    def __repr__(self):
        return f"<Stream(id={self.id}, title='{self.title}', status='{self.status}')>"


class StreamVideo(Base):
    """Ordered association between a stream and its videos"""
    __tablename__ = "stream_videos"

    stream_id = Column(Integer, ForeignKey("streams.id", ondelete="CASCADE"), primary_key=True)
    video_id = Column(Integer, ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True)
    sort_order = Column(Integer, nullable=False)

    stream = relationship("Stream", back_populates="video_links")
    video = relationship("Video", back_populates="stream_links")

    def __repr__(self):
        return f"<StreamVideo(stream_id={self.stream_id}, video_id={self.video_id}, sort_order={self.sort_order})>"
