import os
import tempfile
import threading
import itertools

# Point the application config at a throwaway database before any import
_TEST_ROOT = tempfile.mkdtemp(prefix="streamcraft-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_ROOT, 'app.db')}")
os.environ.setdefault("PLAYLIST_TEMP_DIR", os.path.join(_TEST_ROOT, "temp"))
os.environ.setdefault("FFMPEG_LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("VIDEO_STORAGE_PATH", os.path.join(_TEST_ROOT, "videos"))
os.environ.setdefault("THUMBNAIL_STORAGE_PATH", os.path.join(_TEST_ROOT, "thumbnails"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from streamcraft.database import Base
from streamcraft.models import Stream, StreamVideo, Video
from streamcraft.services.broadcast_supervisor import BroadcastSupervisor

_pids = itertools.count(4000)


class FakeStderr:
    """Yields queued lines, then blocks until the process exits"""

    def __init__(self, process, lines):
        self._process = process
        self._lines = list(lines)
        self.drained = threading.Event()

    def readline(self):
        if self._lines:
            return self._lines.pop(0)
        self.drained.set()
        self._process.exited.wait()
        return b''


class FakeStdin:
    """Records what is written; 'q' makes the process quit like ffmpeg"""

    def __init__(self, process):
        self._process = process
        self.writes = []
        self.closed = False

    def write(self, data):
        if self.closed:
            raise ValueError("write to closed file")
        self.writes.append(data)
        if data == b'q' and self._process.exit_on_quit is not None:
            self._process.exit(self._process.exit_on_quit)
        return len(data)

    def flush(self):
        pass

    def close(self):
        self.closed = True


class FakeProcess:
    """Stands in for an ffmpeg Popen handle"""

    def __init__(self, args, exit_on_quit=255, stderr_lines=()):
        self.args = args
        self.pid = next(_pids)
        self.returncode = None
        self.terminated = False
        self.killed = False
        self.exit_on_quit = exit_on_quit
        self.exited = threading.Event()
        self.stdin = FakeStdin(self)
        self.stderr = FakeStderr(self, stderr_lines)

        # The playlist is deleted on exit, so capture it now
        playlist_path = args[args.index('-i') + 1]
        self.playlist_path = playlist_path
        with open(playlist_path, 'r', encoding='utf-8') as f:
            self.playlist = f.read()

    def exit(self, code=0):
        if self.returncode is None:
            self.returncode = code
        self.exited.set()

    def wait(self, timeout=None):
        self.exited.wait(timeout)
        return self.returncode

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.exit(-15)

    def kill(self):
        self.killed = True
        self.exit(-9)


class FakeSpawn:
    """Callable replacing subprocess.Popen inside the supervisor"""

    def __init__(self):
        self.processes = []
        self.calls = []
        self.error = None
        self.exit_on_quit = 255
        self.stderr_lines = []
        self.delay = 0
        self.process_class = FakeProcess
        self._lock = threading.Lock()

    def __call__(self, args, **kwargs):
        if self.error is not None:
            raise self.error
        if self.delay:
            threading.Event().wait(self.delay)

        process = self.process_class(args, exit_on_quit=self.exit_on_quit, stderr_lines=self.stderr_lines)
        with self._lock:
            self.calls.append((args, kwargs))
            self.processes.append(process)
        return process

    @property
    def last(self):
        return self.processes[-1]


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_spawn():
    return FakeSpawn()


@pytest.fixture
def supervisor(session_factory, fake_spawn, tmp_path):
    supervisor = BroadcastSupervisor(
        session_factory,
        ffmpeg_path="ffmpeg",
        temp_dir=str(tmp_path / "temp"),
        log_dir=str(tmp_path / "logs"),
        stop_timeout=0.2,
        max_concurrent=10,
        spawn=fake_spawn
    )
    yield supervisor

    # Let every watcher thread finish before the database goes away
    broadcasts = supervisor._snapshot()
    for process in fake_spawn.processes:
        process.exit(0)
    for broadcast in broadcasts:
        broadcast.finished.wait(5)


@pytest.fixture
def make_video(db, tmp_path):
    def _make_video(title="clip", duration=30, user_id="user-1", filename=None):
        filename = filename or f"{title}.mp4"
        filepath = tmp_path / "videos" / filename
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_bytes(b"\x00")

        video = Video(
            user_id=user_id,
            title=title,
            filename=filename,
            filepath=str(filepath),
            filesize=1,
            format="video/mp4",
            duration=duration,
            status=Video.STATUS_PROCESSED
        )
        db.add(video)
        db.commit()
        db.refresh(video)
        return video

    return _make_video


@pytest.fixture
def make_stream(db):
    def _make_stream(videos=(), **fields):
        values = {
            "user_id": "user-1",
            "title": "Test stream",
            "rtmp_url": "rtmp://live.example.com/app",
            "stream_key": "secret-key",
            "status": Stream.STATUS_IDLE,
            "loop": False,
            "is_scheduled": False,
        }
        values.update(fields)

        stream = Stream(**values)
        db.add(stream)
        db.flush()
        for index, video in enumerate(videos):
            db.add(StreamVideo(stream_id=stream.id, video_id=video.id, sort_order=index))
        db.commit()
        db.refresh(stream)
        return stream

    return _make_stream


@pytest.fixture
def read_stream(session_factory):
    """Fresh-session read of a stream row as a dict (None when deleted)"""
    def _read_stream(stream_id):
        session = session_factory()
        try:
            stream = session.query(Stream).filter(Stream.id == stream_id).first()
            if not stream:
                return None
            return {
                "status": stream.status,
                "is_scheduled": bool(stream.is_scheduled),
                "loop": bool(stream.loop),
                "stream_key": stream.stream_key,
                "scheduled_start_time": stream.scheduled_start_time,
                "scheduled_end_time": stream.scheduled_end_time,
            }
        finally:
            session.close()

    return _read_stream
