"""Concatenate rendered scene videos with ffmpeg."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Sequence

import aiofiles

from utils.errors import AppError

LOGGER = logging.getLogger(__name__)


class VideoStitchError(AppError):
    status_code = 500


def concat_list(paths: Sequence[Path]) -> str:
    """Return an ffmpeg concat-demuxer list with single quotes escaped."""
    lines = []
    for path in paths:
        escaped = str(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines)


class VideoStitcher:
    """Join scene files losslessly with the concat demuxer."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg") -> None:
        self.ffmpeg_binary = ffmpeg_binary

    def available(self) -> bool:
        return shutil.which(self.ffmpeg_binary) is not None

    async def write_scene(self, directory: Path, index: int, data: bytes) -> Path:
        path = directory / f"scene{index + 1}.mp4"
        async with aiofiles.open(path, "wb") as handle:
            await handle.write(data)
        return path

    async def stitch(self, scene_paths: Sequence[Path], output_path: Path) -> Path:
        """Write the concat list next to the output and run ffmpeg with stream copy."""
        if not scene_paths:
            raise VideoStitchError("No scene videos to stitch")
        list_path = output_path.parent / "concat.txt"
        async with aiofiles.open(list_path, "w") as handle:
            await handle.write(concat_list(scene_paths))

        command = [
            self.ffmpeg_binary,
            "-y",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(list_path),
            "-c",
            "copy",
            str(output_path),
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *command, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as exc:
            raise VideoStitchError("ffmpeg is not installed") from exc
        _, stderr = await process.communicate()
        if process.returncode != 0:
            LOGGER.error("ffmpeg exited with %s: %s", process.returncode, stderr.decode(errors="replace")[-500:])
            raise VideoStitchError("Video stitching failed", details=f"ffmpeg exit code {process.returncode}")
        LOGGER.info("Stitched %d scene(s) into %s", len(scene_paths), output_path.name)
        return output_path
