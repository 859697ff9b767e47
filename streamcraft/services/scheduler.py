"""
Scheduler loop menggunakan APScheduler.

Every interval the loop compares the streams that should be on air
(is_scheduled rows whose start time has passed) with the broadcasts that are
actually running, and asks the supervisor to start or stop them.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from streamcraft.config import SCHEDULER_INTERVAL_SECONDS
from streamcraft.exceptions import StreamError
from streamcraft.models.stream import Stream
from streamcraft.services.broadcast_supervisor import BroadcastSupervisor

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

JOB_ID = "stream_reconciliation"


class StreamScheduler:
    """Service untuk auto start/stop scheduled streams"""

    def __init__(
        self,
        supervisor: BroadcastSupervisor,
        session_factory: Callable,
        interval_seconds: int = SCHEDULER_INTERVAL_SECONDS
    ):
        self.supervisor = supervisor
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.scheduler = BackgroundScheduler()

    def start(self):
        """Start the interval job, first tick runs immediately"""
        self.scheduler.add_job(
            func=self.tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            next_run_time=datetime.now()
        )
        self.scheduler.start()
        logger.info("Automated stream scheduler has been initialized.")
        logger.info(f"Checking schedules every {self.interval_seconds} seconds.")

    def shutdown(self):
        """Shutdown scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Stream scheduler shutdown")

    def get_jobs(self) -> List[Dict]:
        """Get all jobs from APScheduler"""
        return [
            {
                'id': job.id,
                'next_run_time': job.next_run_time.isoformat() if job.next_run_time else None,
                'trigger': str(job.trigger)
            }
            for job in self.scheduler.get_jobs()
        ]

    def get_scheduled_streams(self) -> List[Stream]:
        """Fetch all streams with is_scheduled set"""
        db = self.session_factory()
        try:
            streams = db.query(Stream).filter(Stream.is_scheduled.is_(True)).all()
            # Detach so attributes stay readable after close
            db.expunge_all()
            return streams
        finally:
            db.close()

    def tick(self, now: Optional[datetime] = None) -> Dict[str, List[int]]:
        """
        Run one reconciliation pass.

        Args:
            now: Current UTC time (naive), defaults to utcnow

        Returns:
            Dictionary berisi stream IDs yang di-start, di-stop dan gagal
        """
        now = now or datetime.utcnow()
        result = {'started': [], 'stopped': [], 'failed': []}

        try:
            scheduled_streams = self.get_scheduled_streams()
        except Exception as e:
            logger.error(f"Error fetching scheduled streams: {e}")
            return result

        running = set(self.supervisor.list_running())
        logger.debug(f"Checking {len(scheduled_streams)} scheduled stream(s), {len(running)} running")

        for stream in scheduled_streams:
            is_running = stream.id in running

            if stream.scheduled_start_time and now >= stream.scheduled_start_time and not is_running:
                logger.info(f"Starting stream {stream.id} as per schedule.")
                try:
                    self.supervisor.start(stream.id)
                    result['started'].append(stream.id)
                except StreamError as e:
                    logger.error(f"Failed to auto-start stream {stream.id}: {e}")
                    result['failed'].append(stream.id)
                except Exception as e:
                    logger.exception(f"Unexpected error auto-starting stream {stream.id}: {e}")
                    result['failed'].append(stream.id)

            if stream.scheduled_end_time and now >= stream.scheduled_end_time and is_running:
                logger.info(f"Stopping stream {stream.id} as per schedule.")
                try:
                    self.supervisor.stop(stream.id)
                    result['stopped'].append(stream.id)
                except Exception as e:
                    logger.exception(f"Failed to auto-stop stream {stream.id}: {e}")
                    result['failed'].append(stream.id)

        return result
