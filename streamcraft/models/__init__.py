from streamcraft.models.video import Video
from streamcraft.models.stream import Stream, StreamVideo
from streamcraft.models.credential import PlatformCredential

__all__ = [
    "Video",
    "Stream",
    "StreamVideo",
    "PlatformCredential"
]
