"""Runs ffmpeg/ffprobe subprocesses."""

import json
import logging
import subprocess
from collections.abc import Callable
from pathlib import Path

from reelcast.models.errors import RenderingError
from reelcast.models.pipeline import MediaMetadata
from reelcast.rendering.progress import FFmpegProgressMonitor

logger = logging.getLogger(__name__)


class FFmpegRunner:
    """Executes ffmpeg commands, streaming stderr into a progress monitor."""

    def run(
        self,
        cmd: list[str],
        output_path: Path,
        total_duration: float = 0.0,
        progress_callback: Callable[[int], None] | None = None,
    ) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        monitor = FFmpegProgressMonitor(total_duration, progress_callback)

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
            stderr_tail: list[str] = []
            try:
                for line in process.stderr:
                    stderr_tail.append(line)
                    del stderr_tail[:-30]
                    monitor.parse_line(line)
            except BaseException:
                # never leave ffmpeg writing into a directory about to be removed
                process.kill()
                process.wait()
                raise
            process.wait()
        except FileNotFoundError:
            raise RenderingError(
                "FFmpeg not found. Please install FFmpeg.",
                details={"command": cmd[0]},
            )

        if process.returncode != 0:
            logger.error("FFmpeg failed (code %d): %s", process.returncode, " ".join(cmd))
            raise RenderingError(
                f"FFmpeg exited with code {process.returncode}",
                details={"stderr": "".join(stderr_tail)},
            )
        if not output_path.exists():
            raise RenderingError("FFmpeg did not produce an output file", details={"output": str(output_path)})

        if progress_callback:
            progress_callback(100)
        return output_path

    def probe(self, path: Path) -> MediaMetadata:
        """Summarize a media file with ffprobe."""
        try:
            result = subprocess.run(
                [
                    "ffprobe",
                    "-v",
                    "quiet",
                    "-print_format",
                    "json",
                    "-show_format",
                    "-show_streams",
                    str(path),
                ],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except FileNotFoundError:
            raise RenderingError("ffprobe not found. Please install FFmpeg.", details={"command": "ffprobe"})
        except subprocess.TimeoutExpired:
            raise RenderingError("ffprobe timed out", details={"path": str(path)})

        if result.returncode != 0:
            raise RenderingError("ffprobe could not read the file", details={"path": str(path)})
        try:
            probe = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise RenderingError(f"ffprobe returned invalid JSON: {e}", details={"path": str(path)})

        fmt = probe.get("format", {})
        metadata = MediaMetadata(
            duration=float(fmt.get("duration", 0) or 0),
            file_size=int(fmt.get("size", 0) or 0),
        )
        for stream in probe.get("streams", []):
            if stream.get("codec_type") == "video":
                metadata.width = int(stream.get("width", 0) or 0)
                metadata.height = int(stream.get("height", 0) or 0)
                metadata.codec = stream.get("codec_name", "")
                break
        return metadata
