"""
Service untuk mengelola video dan metadata.
"""
import os
import logging
from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session

from streamcraft.config import THUMBNAIL_STORAGE_PATH
from streamcraft.exceptions import MediaProbeError
from streamcraft.models.video import Video
from streamcraft.utils.media_probe import MediaProbe

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class VideoService:
    """Service untuk mengelola video dan metadata"""

    def __init__(self, db: Session, probe: Optional[MediaProbe] = None, thumbnail_dir: str = THUMBNAIL_STORAGE_PATH):
        self.db = db
        self.probe = probe or MediaProbe()
        self.thumbnail_dir = thumbnail_dir

    def register_upload(
        self,
        user_id: str,
        title: str,
        filename: str,
        filepath: str,
        filesize: int,
        mime_type: str,
        description: str = ""
    ) -> Video:
        """
        Simpan video yang baru di-upload (status 'uploaded').

        Returns:
            Video object yang sudah disave
        """
        video = Video(
            user_id=user_id,
            title=title or filename,
            description=description or "",
            filename=filename,
            filepath=filepath,
            filesize=filesize,
            format=mime_type,
            status=Video.STATUS_UPLOADED
        )

        self.db.add(video)
        self.db.commit()
        self.db.refresh(video)

        logger.info(f"✅ Video saved to database with ID: {video.id}")
        return video

    def process_video(self, video_id: int) -> Optional[Video]:
        """
        Fill duration and thumbnail. Failures mark the video as failed.

        Args:
            video_id: ID video

        Returns:
            Updated Video object atau None jika tidak ditemukan
        """
        video = self.get_video(video_id)
        if not video:
            logger.error(f"Video {video_id} tidak ditemukan untuk diproses.")
            return None

        stem = os.path.splitext(video.filename)[0]
        thumbnail_path = os.path.join(self.thumbnail_dir, f"thumbnail-{stem}.jpg").replace("\\", "/")

        try:
            duration = self.probe.probe_duration(video.filepath)
            self.probe.generate_thumbnail(video.filepath, thumbnail_path)
        except MediaProbeError as e:
            logger.error(f"Gagal memproses video {video_id}: {e}")
            video.status = Video.STATUS_FAILED
            video.updated_at = datetime.utcnow()
            self.db.commit()
            return video

        video.duration = int(round(duration))
        video.thumbnail_path = thumbnail_path
        video.status = Video.STATUS_PROCESSED
        video.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(video)

        logger.info(f"Video {video_id} processed. Duration: {video.duration}s")
        return video

    def get_video(self, video_id: int) -> Optional[Video]:
        """Get video by ID"""
        return self.db.query(Video).filter(Video.id == video_id).first()

    def list_for_user(self, user_id: str) -> List[Video]:
        return self.db.query(Video).filter(
            Video.user_id == user_id
        ).order_by(Video.created_at.desc(), Video.id.desc()).all()

    def delete_video(self, video_id: int) -> bool:
        """
        Delete video file, thumbnail and database row.

        Args:
            video_id: ID video yang akan dihapus

        Returns:
            True jika berhasil, False jika video tidak ditemukan
        """
        video = self.get_video(video_id)

        if not video:
            logger.error(f"Video {video_id} tidak ditemukan")
            return False

        for path in (video.filepath, video.thumbnail_path):
            if path and os.path.exists(path):
                try:
                    os.remove(path)
                    logger.info(f"Deleted file: {path}")
                except OSError as e:
                    logger.warning(f"Could not delete {path}: {e}")

        self.db.delete(video)
        self.db.commit()
        logger.info(f"✅ Video {video_id} deleted")
        return True
