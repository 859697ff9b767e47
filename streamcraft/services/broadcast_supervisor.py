"""
Broadcast supervisor: one ffmpeg process per live stream.

Owns the registry of running broadcasts, starts ffmpeg over a concat playlist,
stops it on request and records how each broadcast ended. Persisted stream
status changes caused by a broadcast are written only from here.
"""
import os
import logging
import tempfile
import threading
import subprocess
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

import psutil
from sqlalchemy.exc import SQLAlchemyError

from streamcraft.config import (
    FFMPEG_PATH,
    FFMPEG_LOGLEVEL,
    FFMPEG_LOG_DIR,
    MAX_CONCURRENT_STREAMS,
    PLAYLIST_TEMP_DIR,
    STOP_TIMEOUT_SECONDS,
)
from streamcraft.exceptions import (
    AlreadyRunning,
    ConcurrencyLimitReached,
    MissingCredentials,
    NoVideos,
    SpawnFailure,
    StreamNotFound,
)
from streamcraft.models.stream import Stream
from streamcraft.services.playlist_resolver import PlaylistResolver

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)
ffmpeg_logger = logging.getLogger("streamcraft.ffmpeg")


@dataclass
class RunningBroadcast:
    """Registry value for one running ffmpeg process"""
    stream_id: int
    process: subprocess.Popen
    playlist_path: str
    loop: bool
    log_path: Optional[str] = None
    manually_stopped: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished: threading.Event = field(default_factory=threading.Event)
    exit_code: Optional[int] = None
    kill_timer: Optional[threading.Timer] = None


class BroadcastSupervisor:
    """Service untuk mengelola ffmpeg broadcast processes"""

    def __init__(
        self,
        session_factory: Callable,
        ffmpeg_path: str = FFMPEG_PATH,
        temp_dir: str = PLAYLIST_TEMP_DIR,
        log_dir: str = FFMPEG_LOG_DIR,
        stop_timeout: float = STOP_TIMEOUT_SECONDS,
        max_concurrent: int = MAX_CONCURRENT_STREAMS,
        spawn: Callable = subprocess.Popen
    ):
        self.session_factory = session_factory
        self.ffmpeg_path = ffmpeg_path
        self.temp_dir = os.path.abspath(temp_dir)
        self.log_dir = log_dir
        self.stop_timeout = stop_timeout
        self.max_concurrent = max_concurrent
        self._spawn = spawn

        # Format: {stream_id: RunningBroadcast}
        self._running: Dict[int, RunningBroadcast] = {}
        # Stream IDs between the limit check and registration
        self._starting: Set[int] = set()
        self._registry_lock = threading.Lock()
        self._stream_locks: Dict[int, threading.Lock] = defaultdict(threading.Lock)

        os.makedirs(self.temp_dir, exist_ok=True)
        os.makedirs(self.log_dir, exist_ok=True)

    def _lock_for(self, stream_id: int) -> threading.Lock:
        with self._registry_lock:
            return self._stream_locks[stream_id]

    # ------------------------------------------------------------------
    # Registry reads
    # ------------------------------------------------------------------

    def is_running(self, stream_id: int) -> bool:
        with self._registry_lock:
            return stream_id in self._running

    def list_running(self) -> List[int]:
        """Get list of all running stream IDs"""
        with self._registry_lock:
            return list(self._running.keys())

    def get_broadcast(self, stream_id: int) -> Optional[RunningBroadcast]:
        with self._registry_lock:
            return self._running.get(stream_id)

    def get_status(self, stream_id: int) -> Optional[Dict]:
        """
        Get status of a running broadcast.

        Args:
            stream_id: Stream ID

        Returns:
            Dictionary dengan status info atau None
        """
        broadcast = self.get_broadcast(stream_id)
        if not broadcast:
            return None

        return {
            'stream_id': stream_id,
            'pid': broadcast.process.pid,
            'loop': broadcast.loop,
            'stopping': broadcast.manually_stopped,
            'playlist_path': broadcast.playlist_path,
            'log_file': broadcast.log_path,
            'started_at': broadcast.started_at.isoformat(),
            'uptime_seconds': (datetime.now() - broadcast.started_at).total_seconds()
        }

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(self, stream_id: int) -> subprocess.Popen:
        """
        Start ffmpeg broadcast for a stream.

        Args:
            stream_id: Stream ID

        Returns:
            The spawned process handle

        Raises:
            AlreadyRunning, ConcurrencyLimitReached, StreamNotFound, NoVideos,
            MissingCredentials, SpawnFailure
        """
        with self._lock_for(stream_id):
            self._reserve_slot(stream_id)
            try:
                return self._launch(stream_id)
            finally:
                with self._registry_lock:
                    self._starting.discard(stream_id)

    def _reserve_slot(self, stream_id: int):
        """Count a start in progress against the concurrency limit"""
        with self._registry_lock:
            if stream_id in self._running:
                logger.warning(f"Stream {stream_id} is already running.")
                raise AlreadyRunning(f"Stream {stream_id} is already running.")
            if len(self._running) + len(self._starting) >= self.max_concurrent:
                raise ConcurrencyLimitReached(
                    f"Maximum concurrent streams limit reached ({self.max_concurrent})."
                )
            self._starting.add(stream_id)

    def _launch(self, stream_id: int) -> subprocess.Popen:
        stream = self._resolve(stream_id)
        if stream is None:
            raise StreamNotFound(f"Stream {stream_id} not found.")

        video_paths = [video["filepath"] for video in stream["videos"] if video["filepath"]]
        if not video_paths:
            raise NoVideos(f"There are no videos in stream {stream_id}.")

        if not stream["rtmp_url"] or not stream["stream_key"]:
            raise MissingCredentials(f"RTMP URL or Stream Key is missing for stream {stream_id}.")

        stream_key = stream["stream_key"]
        target = f"{stream['rtmp_url'].rstrip('/')}/{stream_key}"
        loop = stream["loop"]

        playlist_path = self._create_concat_file(video_paths, stream_id)
        cmd = self._build_ffmpeg_command(playlist_path, target, loop)

        # Log command (mask stream key)
        masked_cmd = [c.replace(stream_key, '****') for c in cmd]
        logger.info(f"Starting stream {stream_id}")
        logger.info(f"Command: {' '.join(masked_cmd)}")

        try:
            # stdin stays open so the stream can be stopped with 'q'
            process = self._spawn(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE
            )
        except OSError as e:
            logger.error(f"Error starting stream {stream_id}: {e}")
            self._remove_concat_file(playlist_path)
            self._persist_safely(stream_id, status=Stream.STATUS_ERROR)
            raise SpawnFailure(f"Failed to launch ffmpeg for stream {stream_id}: {e}") from e

        log_path = os.path.join(
            self.log_dir,
            f"stream_{stream_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        )
        broadcast = RunningBroadcast(
            stream_id=stream_id,
            process=process,
            playlist_path=playlist_path,
            loop=loop,
            log_path=log_path
        )

        with self._registry_lock:
            self._running[stream_id] = broadcast

        watcher = threading.Thread(
            target=self._watch,
            args=(broadcast, stream_key),
            name=f"broadcast-{stream_id}",
            daemon=True
        )
        watcher.start()

        # The broadcast is registered either way, the exit hook writes the final status
        self._persist_safely(stream_id, status=Stream.STATUS_LIVE)

        logger.info(f"[OK] Stream {stream_id} is live")
        logger.info(f"     PID: {process.pid}")
        logger.info(f"     Videos: {len(video_paths)}")
        logger.info(f"     Loop: {loop}")

        return process

    def _resolve(self, stream_id: int) -> Optional[Dict]:
        db = self.session_factory()
        try:
            return PlaylistResolver(db).resolve(stream_id)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    def stop(self, stream_id: int) -> bool:
        """
        Request a graceful stop. Cleanup happens when ffmpeg exits.

        Args:
            stream_id: Stream ID

        Returns:
            True jika stop diminta, False jika stream tidak berjalan
        """
        with self._lock_for(stream_id):
            broadcast = self.get_broadcast(stream_id)

            if broadcast is None:
                logger.info(f"Stream {stream_id} is not running, ensuring status is correct.")
                self._repair_status(stream_id)
                return False

            if broadcast.manually_stopped:
                logger.info(f"Stream {stream_id} is already stopping")
                return True

            broadcast.manually_stopped = True
            logger.info(f"Stopping stream {stream_id} (PID: {broadcast.process.pid})")

            try:
                self._request_quit(broadcast)
            finally:
                timer = threading.Timer(self.stop_timeout, self._force_kill, args=(broadcast,))
                timer.daemon = True
                broadcast.kill_timer = timer
                timer.start()

            return True

    def _request_quit(self, broadcast: RunningBroadcast):
        """Send 'q' to ffmpeg for graceful shutdown, terminate if stdin is unusable"""
        process = broadcast.process
        try:
            process.stdin.write(b'q')
            process.stdin.flush()
            return
        except (AttributeError, OSError, ValueError) as e:
            logger.warning(f"Could not send quit to stream {broadcast.stream_id}: {e}, terminating")

        try:
            process.terminate()
        except (OSError, ValueError) as e:
            # Process already gone, or the kill timer will take over
            logger.warning(f"Could not terminate stream {broadcast.stream_id}: {e}")

    def stop_all(self) -> int:
        """Stop semua running broadcasts"""
        running = self.list_running()
        for stream_id in running:
            self.stop(stream_id)
        return len(running)

    def _force_kill(self, broadcast: RunningBroadcast):
        if broadcast.finished.is_set():
            return

        logger.warning(
            f"Stream {broadcast.stream_id} didn't stop within {self.stop_timeout}s, force killing"
        )
        try:
            broadcast.process.kill()
        except (OSError, ValueError) as e:
            logger.warning(f"Force kill failed for stream {broadcast.stream_id}: {e}")

    def _repair_status(self, stream_id: int):
        db = self.session_factory()
        try:
            stream = db.query(Stream).filter(Stream.id == stream_id).first()
            if stream and stream.status == Stream.STATUS_LIVE:
                stream.status = Stream.STATUS_IDLE
                stream.updated_at = datetime.utcnow()
                db.commit()
                logger.info(f"Stream {stream_id} was marked live without a process, reset to idle")
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Process completion
    # ------------------------------------------------------------------

    def _watch(self, broadcast: RunningBroadcast, stream_key: str):
        """Forward ffmpeg stderr, then wait for exit and run the exit hook"""
        process = broadcast.process
        stream_id = broadcast.stream_id

        if process.stderr is not None:
            log_handle = self._open_log(broadcast)
            try:
                # stderr must be drained to EOF even without a log file, or ffmpeg blocks on a full pipe
                for raw in iter(process.stderr.readline, b''):
                    line = raw.decode('utf-8', errors='replace').rstrip()
                    if not line:
                        continue
                    line = line.replace(stream_key, '****')
                    ffmpeg_logger.info(f"[FFMPEG Stream {stream_id}]: {line}")

                    if log_handle is not None:
                        try:
                            log_handle.write(line + "\n")
                            log_handle.flush()
                        except OSError as e:
                            logger.error(f"Writing ffmpeg log for stream {stream_id} failed, logger only from now: {e}")
                            self._close_log(log_handle)
                            log_handle = None
            except Exception as e:
                logger.error(f"Error reading ffmpeg output for stream {stream_id}: {e}")
            finally:
                self._close_log(log_handle)

        try:
            exit_code = process.wait()
        except Exception as e:
            logger.error(f"Error waiting for ffmpeg of stream {stream_id}: {e}")
            exit_code = -1

        self._on_exit(broadcast, exit_code)

    def _open_log(self, broadcast: RunningBroadcast):
        try:
            return open(broadcast.log_path, 'a', encoding='utf-8')
        except OSError as e:
            logger.error(f"Cannot open ffmpeg log {broadcast.log_path}: {e}")
            return None

    def _close_log(self, log_handle):
        if log_handle is None:
            return
        try:
            log_handle.close()
        except OSError as e:
            logger.warning(f"Closing ffmpeg log failed: {e}")

    def _on_exit(self, broadcast: RunningBroadcast, exit_code: int):
        """
        Record how a broadcast ended.

        The registry entry and the playlist file are removed before the
        status is written.
        """
        stream_id = broadcast.stream_id
        logger.info(f"Stream {stream_id} process exited with code {exit_code}")

        try:
            with self._lock_for(stream_id):
                if broadcast.kill_timer:
                    broadcast.kill_timer.cancel()

                with self._registry_lock:
                    if self._running.get(stream_id) is broadcast:
                        del self._running[stream_id]

                self._remove_concat_file(broadcast.playlist_path)
                self._close_stdin(broadcast.process)
                broadcast.exit_code = exit_code

                if broadcast.manually_stopped:
                    # Unschedule so the scheduler does not restart it
                    self._persist_safely(stream_id, status=Stream.STATUS_IDLE, is_scheduled=False)
                    logger.info(f"Stream {stream_id} was manually stopped and has been unscheduled.")
                else:
                    fields = {'status': Stream.STATUS_ENDED if exit_code == 0 else Stream.STATUS_ERROR}
                    if not broadcast.loop:
                        fields['is_scheduled'] = False
                    self._persist_safely(stream_id, **fields)
                    logger.info(
                        f"Stream {stream_id} ended on its own ({fields['status']}), "
                        f"{'unscheduled' if not broadcast.loop else 'remains scheduled'}."
                    )
        finally:
            broadcast.finished.set()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _update_stream(self, stream_id: int, **fields) -> bool:
        db = self.session_factory()
        try:
            stream = db.query(Stream).filter(Stream.id == stream_id).first()
            if not stream:
                logger.warning(f"Stream {stream_id} no longer exists, skipping update {fields}")
                return False

            for key, value in fields.items():
                setattr(stream, key, value)
            stream.updated_at = datetime.utcnow()
            db.commit()
            return True
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def _persist_safely(self, stream_id: int, **fields) -> bool:
        try:
            return self._update_stream(stream_id, **fields)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist {fields} for stream {stream_id}: {e}")
            return False

    # ------------------------------------------------------------------
    # ffmpeg helpers
    # ------------------------------------------------------------------

    def _create_concat_file(self, video_paths: List[str], stream_id: int) -> str:
        """
        Create concat file untuk ffmpeg.

        Args:
            video_paths: List path video (concat order)
            stream_id: Stream ID untuk naming

        Returns:
            Path ke concat file
        """
        concat_file = tempfile.NamedTemporaryFile(
            mode='w',
            delete=False,
            dir=self.temp_dir,
            prefix=f'stream_{stream_id}_',
            suffix='_playlist.txt'
        )

        with concat_file:
            for path in video_paths:
                abs_path = os.path.abspath(path)
                escaped_path = abs_path.replace("'", "'\\''")
                concat_file.write(f"file '{escaped_path}'\n")

        logger.info(f"Created concat file: {concat_file.name}")
        return concat_file.name

    def _close_stdin(self, process):
        try:
            if process.stdin is not None:
                process.stdin.close()
        except (AttributeError, OSError, ValueError) as e:
            logger.debug(f"Closing ffmpeg stdin failed: {e}")

    def _remove_concat_file(self, path: str):
        try:
            if path and os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove concat file {path}: {e}")

    def _build_ffmpeg_command(self, concat_file: str, target: str, loop: bool) -> List[str]:
        """
        Build ffmpeg command.

        Args:
            concat_file: Path ke concat file
            target: rtmp_url/stream_key
            loop: Enable infinite loop

        Returns:
            List command arguments
        """
        cmd = [
            self.ffmpeg_path,
            '-loglevel', FFMPEG_LOGLEVEL,
            '-re',                   # Read input at native frame rate
        ]

        if loop:
            cmd.extend(['-stream_loop', '-1'])

        cmd.extend([
            '-f', 'concat',
            '-safe', '0',
            '-i', concat_file,

            # Stream copy, no re-encode
            '-c', 'copy',

            '-f', 'flv',
            target
        ])

        return cmd

    # ------------------------------------------------------------------
    # Logs & recovery
    # ------------------------------------------------------------------

    def get_log_tail(self, stream_id: int, lines: int = 50) -> Optional[str]:
        """
        Get last N lines from the latest ffmpeg log of a stream.

        Args:
            stream_id: Stream ID
            lines: Number of lines to read

        Returns:
            Log content atau None
        """
        lines = max(1, lines)
        broadcast = self.get_broadcast(stream_id)
        if broadcast:
            log_file = broadcast.log_path
        else:
            if not os.path.isdir(self.log_dir):
                return None
            log_files = sorted(
                f for f in os.listdir(self.log_dir) if f.startswith(f"stream_{stream_id}_")
            )
            if not log_files:
                return None
            log_file = os.path.join(self.log_dir, log_files[-1])

        if not log_file or not os.path.exists(log_file):
            return None

        try:
            with open(log_file, 'r', encoding='utf-8') as f:
                return ''.join(f.readlines()[-lines:])
        except OSError as e:
            logger.error(f"Error reading log file: {e}")
            return None

    def recover_orphans(self) -> Dict:
        """
        Repair state left behind by a previous process.

        Streams persisted as live without a registry entry are reset to idle,
        and leftover ffmpeg processes that read from our playlist directory
        are killed.

        Returns:
            Dictionary dengan hasil operasi
        """
        running = set(self.list_running())
        reset_ids = []

        db = self.session_factory()
        try:
            live_streams = db.query(Stream).filter(Stream.status == Stream.STATUS_LIVE).all()
            for stream in live_streams:
                if stream.id not in running:
                    stream.status = Stream.STATUS_IDLE
                    stream.updated_at = datetime.utcnow()
                    reset_ids.append(stream.id)
            db.commit()
        finally:
            db.close()

        if reset_ids:
            logger.info(f"Reset {len(reset_ids)} orphaned live stream(s) to idle: {reset_ids}")

        own_pids = {broadcast.process.pid for broadcast in self._snapshot()}
        killed_pids = []

        for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
            try:
                name = (proc.info['name'] or '').lower()
                cmdline = proc.info['cmdline'] or []
                if 'ffmpeg' not in name or proc.info['pid'] in own_pids:
                    continue
                if any(arg.startswith(self.temp_dir) for arg in cmdline):
                    proc.kill()
                    killed_pids.append(proc.info['pid'])
                    logger.info(f"Killed orphaned ffmpeg process {proc.info['pid']}")
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue

        return {
            'reset_streams': reset_ids,
            'killed_count': len(killed_pids),
            'killed_pids': killed_pids
        }

    def _snapshot(self) -> List[RunningBroadcast]:
        with self._registry_lock:
            return list(self._running.values())
