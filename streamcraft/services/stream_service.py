"""
Stream service: create, update and delete streams.

Writes scalar fields and video associations only. Status changes that come
from a broadcast belong to the BroadcastSupervisor.
"""
import json
import logging
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from streamcraft.exceptions import ScheduleConflict, StreamError
from streamcraft.models.stream import Stream, StreamVideo
from streamcraft.models.video import Video
from streamcraft.services.broadcast_supervisor import BroadcastSupervisor
from streamcraft.services.credential_service import CredentialService
from streamcraft.services.playlist_resolver import PlaylistResolver
from streamcraft.utils.schedule import find_slot_conflicts, next_window, to_utc_naive

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class StreamService:
    """Service untuk mengelola stream records"""

    def __init__(self, db: Session, supervisor: BroadcastSupervisor):
        self.db = db
        self.supervisor = supervisor
        self.resolver = PlaylistResolver(db)

    def get(self, stream_id: int) -> Optional[Dict]:
        return self.resolver.resolve(stream_id)

    def list_for_user(self, user_id: str) -> List[Dict]:
        """Resolved streams milik user, terbaru dulu"""
        rows = self.db.query(Stream.id).filter(
            Stream.user_id == user_id
        ).order_by(Stream.created_at.desc(), Stream.id.desc()).all()

        streams = [self.resolver.resolve(row.id) for row in rows]
        return [stream for stream in streams if stream]

    def create(self, stream_data: Dict, user_id: str) -> Dict:
        """
        Create stream beserta urutan videonya.

        Args:
            stream_data: Validated stream fields
            user_id: Owning user

        Returns:
            Resolved stream dictionary
        """
        rtmp_url = stream_data.get('rtmp_url') or ''
        stream_key = stream_data.get('stream_key') or ''

        platform = stream_data.get('platform')
        if platform:
            credentials = CredentialService(self.db).get(user_id, platform)
            if credentials:
                rtmp_url = credentials['rtmp_url']
                stream_key = credentials['stream_key']
            else:
                logger.warning(f"No {platform} credentials stored for user {user_id}")

        video_ids = list(stream_data.get('videos') or [])
        self._check_videos_exist(video_ids)

        stream = Stream(
            user_id=user_id,
            title=stream_data['title'],
            description=stream_data.get('description') or '',
            rtmp_url=rtmp_url,
            stream_key=stream_key,
            status=Stream.STATUS_SCHEDULED if stream_data.get('is_scheduled') else Stream.STATUS_IDLE,
            type=stream_data.get('type') or 'manual'
        )
        self._apply_scalars(stream, stream_data)

        try:
            self.db.add(stream)
            self.db.flush()
            self._insert_videos(stream.id, video_ids)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created stream {stream.id} for user {user_id} with {len(video_ids)} video(s)")
        return self.resolver.resolve(stream.id)

    def update(self, stream_id: int, stream_data: Dict) -> Optional[Dict]:
        """
        Update stream fields and replace its video list.

        The stream key is only replaced when a non-empty value is given.

        Returns:
            Resolved stream dictionary atau None jika tidak ditemukan
        """
        stream = self.db.query(Stream).filter(Stream.id == stream_id).first()
        if not stream:
            return None

        video_ids = list(stream_data.get('videos') or [])
        self._check_videos_exist(video_ids)

        stream.title = stream_data.get('title') or stream.title
        stream.description = stream_data.get('description') or ''
        stream.rtmp_url = stream_data.get('rtmp_url') or ''
        if stream_data.get('type'):
            stream.type = stream_data['type']
        if stream_data.get('stream_key'):
            stream.stream_key = stream_data['stream_key']
        self._apply_scalars(stream, stream_data)
        stream.updated_at = datetime.utcnow()

        try:
            self.db.query(StreamVideo).filter(StreamVideo.stream_id == stream_id).delete(synchronize_session="fetch")
            self._insert_videos(stream_id, video_ids)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Updated stream {stream_id}")
        return self.resolver.resolve(stream_id)

    def delete(self, stream_id: int) -> bool:
        """
        Stop the broadcast (if any), then delete associations and the row.

        Returns:
            True jika berhasil, False jika stream tidak ditemukan
        """
        stream = self.db.query(Stream).filter(Stream.id == stream_id).first()
        if not stream:
            return False

        self.supervisor.stop(stream_id)

        try:
            self.db.query(StreamVideo).filter(StreamVideo.stream_id == stream_id).delete(synchronize_session="fetch")
            self.db.delete(stream)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Deleted stream {stream_id}")
        return True

    def _apply_scalars(self, stream: Stream, stream_data: Dict):
        """loop, schedule and scheduling window shared by create/update"""
        schedule = self._prepare_schedule(stream_data.get('schedule'))

        stream.loop = bool(stream_data.get('loop'))
        stream.is_scheduled = bool(stream_data.get('is_scheduled'))
        stream.schedule = json.dumps(schedule) if schedule is not None else None

        try:
            start = to_utc_naive(stream_data.get('scheduled_start_time'))
            end = to_utc_naive(stream_data.get('scheduled_end_time'))
        except ValueError as e:
            raise StreamError(f"Invalid scheduled time: {e}") from e

        if stream.is_scheduled and start is None and schedule:
            try:
                window = next_window(schedule)
            except ValueError as e:
                raise StreamError(f"Invalid schedule date: {e}") from e
            if window:
                start, end = window
                logger.info(f"Derived schedule window {start} - {end} from {schedule['type']} schedule")

        if start and end and end <= start:
            raise StreamError("scheduled_end_time must be after scheduled_start_time")

        stream.scheduled_start_time = start
        stream.scheduled_end_time = end

    def _prepare_schedule(self, schedule: Optional[Dict]) -> Optional[Dict]:
        if not schedule:
            return None

        schedule = dict(schedule)
        schedule.setdefault('type', 'manual')

        if schedule['type'] == 'manual':
            schedule['schedules'] = []
            return schedule

        slots = list(schedule.get('schedules') or [])
        try:
            conflicts = find_slot_conflicts(slots)
        except (KeyError, ValueError, TypeError) as e:
            raise StreamError(f"Invalid schedule slot: {e}") from e
        if conflicts:
            raise ScheduleConflict("; ".join(conflicts))

        schedule['schedules'] = slots
        return schedule

    def _check_videos_exist(self, video_ids: List[int]):
        if not video_ids:
            return

        if len(set(video_ids)) != len(video_ids):
            raise StreamError("A video can only appear once in a stream")

        found = {
            row.id for row in self.db.query(Video.id).filter(Video.id.in_(video_ids)).all()
        }
        missing = [video_id for video_id in video_ids if video_id not in found]
        if missing:
            raise StreamError(f"Video(s) not found: {missing}")

    def _insert_videos(self, stream_id: int, video_ids: List[int]):
        for index, video_id in enumerate(video_ids):
            self.db.add(StreamVideo(stream_id=stream_id, video_id=video_id, sort_order=index))
