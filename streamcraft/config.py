from dotenv import load_dotenv
import os

load_dotenv()

FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")
FFMPEG_LOGLEVEL = os.getenv("FFMPEG_LOGLEVEL", "warning")

# Determine absolute path to the database to avoid CWD issues
BASE_DIR = os.path.dirname(os.path.abspath(__file__)) # streamcraft/
PROJECT_ROOT = os.path.dirname(BASE_DIR) # project root

# Default to streamcraft.db in project root
DEFAULT_DB_PATH = os.path.join(PROJECT_ROOT, "streamcraft.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")

# Security
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION_ENV_FILE")

# Stream limits
MAX_CONCURRENT_STREAMS = int(os.getenv("MAX_CONCURRENT_STREAMS", "10"))

# Scheduler
SCHEDULER_INTERVAL_SECONDS = int(os.getenv("SCHEDULER_INTERVAL_SECONDS", "60"))

# Seconds to wait after SIGINT before ffmpeg is killed
STOP_TIMEOUT_SECONDS = float(os.getenv("STOP_TIMEOUT_SECONDS", "10"))

# Storage
PLAYLIST_TEMP_DIR = os.getenv("PLAYLIST_TEMP_DIR", "temp")
FFMPEG_LOG_DIR = os.getenv("FFMPEG_LOG_DIR", os.path.join("logs", "ffmpeg"))
VIDEO_STORAGE_PATH = os.getenv("VIDEO_STORAGE_PATH", os.path.join("uploads", "videos"))
THUMBNAIL_STORAGE_PATH = os.getenv("THUMBNAIL_STORAGE_PATH", os.path.join("uploads", "thumbnails"))
