# downloader_bot/services/converter.py

from __future__ import annotations

import os

from ..config import CONVERT_TIMEOUT_SECONDS, logger
from .errors import ConvertFailed, excerpt
from .process_runner import run_tool
from .sanitizer import validate_command_argument

AUDIO_EXTENSIONS = (".mp3", ".m4a", ".opus", ".ogg", ".wav", ".flac", ".aac")
VIDEO_FORMATS = ("mp4", "mkv", "webm")
BLACK_FRAME_SOURCE = "color=black:size=1280x720:rate=1"


def build_ffmpeg_args(
    input_path: str, output_path: str, output_format: str, executable: str = "ffmpeg"
) -> list[str]:
    """Argument vector for ffmpeg; audio going to video gets a black picture track."""
    audio_to_video = (
        os.path.splitext(input_path)[1].lower() in AUDIO_EXTENSIONS
        and output_format in VIDEO_FORMATS
    )
    args = [executable]
    if audio_to_video:
        args += ["-f", "lavfi", "-i", BLACK_FRAME_SOURCE]
    args += ["-i", input_path]
    if audio_to_video:
        args += ["-c:v", "libx264", "-c:a", "aac", "-shortest"]
    args += ["-y", output_path]
    return args


async def convert_file(
    input_path: str, output_format: str, *, executable: str = "ffmpeg"
) -> str:
    """
    Re-encodes `input_path` into `output_format` next to the original.

    The original file is deleted only after ffmpeg exits successfully.

    Returns:
        The path of the converted file.

    Raises:
        ConvertFailed: ffmpeg could not be run or exited with an error.
    """
    source_format = os.path.splitext(input_path)[1].lstrip(".").lower() or "unknown"
    target_format = validate_command_argument(output_format).lower()
    if not target_format:
        raise ConvertFailed(source_format, output_format, None, "Invalid output format")

    base, _ = os.path.splitext(input_path)
    output_path = f"{base}.{target_format}"
    if output_path == input_path:
        return input_path

    args = build_ffmpeg_args(input_path, output_path, target_format, executable)
    logger.info(f"[CONVERT] {source_format} -> {target_format}: {' '.join(args)}")
    output = await run_tool(args, timeout=CONVERT_TIMEOUT_SECONDS)

    if not output.ok:
        if os.path.exists(output_path):
            try:
                os.remove(output_path)
            except OSError as e:
                logger.warning(f"[CONVERT] Could not remove partial output {output_path}: {e}")
        logger.error(
            f"[CONVERT] ffmpeg exited with code {output.exit_code}: {output.diagnostic()}"
        )
        raise ConvertFailed(
            source_format,
            target_format,
            output.exit_code,
            excerpt(output.stderr or output.stdout),
        )

    try:
        os.remove(input_path)
    except OSError as e:
        logger.warning(f'[CONVERT] Failed to delete original file "{input_path}" after conversion: {e}')

    logger.info(f"[CONVERT] File converted successfully: {output_path}")
    return output_path
