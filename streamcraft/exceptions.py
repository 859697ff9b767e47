"""
Error taxonomy untuk stream lifecycle.

Every error a router may surface derives from StreamError and carries the
HTTP status code it maps to.
"""


class StreamError(Exception):
    """Base class for stream lifecycle errors"""
    status_code = 400


class StreamNotFound(StreamError):
    status_code = 404


class AlreadyRunning(StreamError):
    status_code = 409


class NoVideos(StreamError):
    status_code = 400


class MissingCredentials(StreamError):
    status_code = 400


class ConcurrencyLimitReached(StreamError):
    status_code = 429


class ScheduleConflict(StreamError):
    status_code = 400


class SpawnFailure(StreamError):
    """ffmpeg could not be launched by the OS"""
    status_code = 500


class MalformedSchedule(ValueError):
    """Stored schedule JSON cannot be used. Always recovered locally."""


class MediaProbeError(Exception):
    """ffprobe/ffmpeg failed on an uploaded video"""
