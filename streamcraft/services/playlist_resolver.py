"""
Resolver untuk stream: row + ordered videos + normalized schedule.
"""
import os
import logging
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from streamcraft.models.stream import Stream, StreamVideo
from streamcraft.models.video import Video
from streamcraft.utils.schedule import normalize_schedule, to_iso_instant

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class PlaylistResolver:
    """Service untuk membangun detail lengkap sebuah stream"""

    def __init__(self, db: Session):
        self.db = db

    def get_stream_videos(self, stream_id: int) -> List[Video]:
        """
        Mendapatkan video dalam stream sesuai sort_order.

        Args:
            stream_id: ID stream

        Returns:
            List of Video objects (concat order)
        """
        return (
            self.db.query(Video)
            .join(StreamVideo, StreamVideo.video_id == Video.id)
            .filter(StreamVideo.stream_id == stream_id)
            .order_by(StreamVideo.sort_order.asc())
            .all()
        )

    def resolve(self, stream_id: int) -> Optional[Dict]:
        """
        Load a stream with everything needed to display or broadcast it.

        Args:
            stream_id: ID stream

        Returns:
            Dictionary stream, atau None jika stream tidak ditemukan
        """
        stream = self.db.query(Stream).filter(Stream.id == stream_id).first()

        if not stream:
            logger.warning(f"Stream with ID {stream_id} not found.")
            return None

        videos = [self._video_entry(video) for video in self.get_stream_videos(stream_id)]

        return {
            "id": stream.id,
            "user_id": stream.user_id,
            "title": stream.title,
            "description": stream.description,
            "rtmp_url": stream.rtmp_url,
            "stream_key": stream.stream_key,
            "status": stream.status,
            "type": stream.type,
            "loop": bool(stream.loop),
            "is_scheduled": bool(stream.is_scheduled),
            "scheduled_start_time": to_iso_instant(stream.scheduled_start_time),
            "scheduled_end_time": to_iso_instant(stream.scheduled_end_time),
            "schedule": normalize_schedule(
                stream.schedule,
                legacy_type=stream.type,
                scheduled_start_time=stream.scheduled_start_time,
                stream_id=stream.id
            ),
            "videos": videos,
            "total_duration": sum(video["duration"] for video in videos),
            "created_at": to_iso_instant(stream.created_at),
            "updated_at": to_iso_instant(stream.updated_at)
        }

    def _video_entry(self, video: Video) -> Dict:
        return {
            "id": video.id,
            "title": video.title,
            "filename": video.filename,
            "filepath": os.path.abspath(video.filepath) if video.filepath else None,
            "duration": video.duration or 0,
            "thumbnail_path": video.thumbnail_path,
            "status": video.status
        }
