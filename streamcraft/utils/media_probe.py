"""
Utility untuk probe video menggunakan FFprobe / FFmpeg.
"""
import os
import json
import logging
import subprocess
from pathlib import Path

from streamcraft.config import FFMPEG_PATH, FFPROBE_PATH
from streamcraft.exceptions import MediaProbeError

logger = logging.getLogger(__name__)


class MediaProbe:
    """Duration lookup and thumbnail generation for uploaded videos"""

    def __init__(self, ffprobe_path: str = FFPROBE_PATH, ffmpeg_path: str = FFMPEG_PATH, timeout: int = 30):
        """
        Initialize media probe.

        Args:
            ffprobe_path: Path ke ffprobe executable
            ffmpeg_path: Path ke ffmpeg executable
            timeout: Seconds before a probe is abandoned
        """
        self.ffprobe_path = ffprobe_path
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def _run(self, cmd):
        try:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise MediaProbeError(f"{cmd[0]} timeout") from e
        except OSError as e:
            raise MediaProbeError(f"{cmd[0]} could not be executed: {e}") from e

    def probe_duration(self, video_path: str) -> float:
        """
        Duration dalam detik.

        Raises:
            MediaProbeError: file missing or ffprobe failed
        """
        if not Path(video_path).exists():
            raise MediaProbeError(f"File tidak ditemukan: {video_path}")

        result = self._run([
            self.ffprobe_path,
            '-v', 'quiet',
            '-print_format', 'json',
            '-show_format',
            video_path
        ])

        if result.returncode != 0:
            raise MediaProbeError(f"FFprobe error: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout)
            return float(data.get('format', {}).get('duration', 0))
        except (ValueError, TypeError) as e:
            raise MediaProbeError(f"Unreadable ffprobe output: {e}") from e

    def generate_thumbnail(self, video_path: str, output_path: str, size: str = "320x180") -> str:
        """
        Grab one frame one second in as a jpeg thumbnail.

        Returns:
            output_path
        """
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

        result = self._run([
            self.ffmpeg_path,
            '-y',
            '-loglevel', 'error',
            '-ss', '1',
            '-i', video_path,
            '-frames:v', '1',
            '-s', size,
            output_path
        ])

        if result.returncode != 0 or not os.path.exists(output_path):
            raise MediaProbeError(f"Thumbnail generation failed: {result.stderr.strip()}")

        logger.info(f"Thumbnail generated at {output_path}")
        return output_path
