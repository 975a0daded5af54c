"""FFmpeg progress monitoring."""

import re
from collections.abc import Callable

_TIME_RE = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")


class FFmpegProgressMonitor:
    """Turns ffmpeg stderr ``time=`` lines into 0..100 stage progress."""

    def __init__(self, total_duration: float, callback: Callable[[int], None] | None = None):
        self.total_duration = total_duration
        self.callback = callback
        self.current_time = 0.0
        self._last_reported = -1

    def parse_line(self, line: str) -> int | None:
        match = _TIME_RE.search(line)
        if not match:
            return None
        hours, minutes, seconds = int(match.group(1)), int(match.group(2)), float(match.group(3))
        self.current_time = hours * 3600 + minutes * 60 + seconds
        progress = self.progress
        # ffmpeg prints several lines per second; only report changes
        if self.callback and progress > self._last_reported:
            self._last_reported = progress
            self.callback(progress)
        return progress

    @property
    def progress(self) -> int:
        if self.total_duration <= 0:
            return 0
        return int(min(100.0, self.current_time / self.total_duration * 100))
