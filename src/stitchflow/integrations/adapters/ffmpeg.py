"""ffmpeg-based merger concatenating clips end to end."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from stitchflow.errors.exceptions import MergeError
from stitchflow.integrations.adapters.base import Merger

logger = logging.getLogger(__name__)


class FfmpegMerger(Merger):
    """Concatenates inputs in order.

    By default the concat demuxer copies streams without re-encoding, which
    requires inputs with matching codecs and parameters (true for clips from
    one render provider and format). ``reencode=True`` switches to the concat
    filter, which accepts mismatched inputs at the cost of a full encode.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 600.0, reencode: bool = False):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.reencode = reencode

    def build_command(self, inputs: Sequence[Path], output: Path, concat_list: Path) -> list[str]:
        if self.reencode:
            cmd = [self.ffmpeg_path, "-y"]
            for path in inputs:
                cmd += ["-i", str(path)]
            streams = "".join(f"[{i}:v][{i}:a]" for i in range(len(inputs)))
            cmd += [
                "-filter_complex", f"{streams}concat=n={len(inputs)}:v=1:a=1[v][a]",
                "-map", "[v]",
                "-map", "[a]",
                "-movflags", "+faststart",
                str(output),
            ]
            return cmd
        return [
            self.ffmpeg_path,
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_list),
            "-c", "copy",
            "-movflags", "+faststart",
            str(output),
        ]

    async def merge(self, inputs: Sequence[Path], output: Path) -> Path:
        if len(inputs) < 2:
            raise MergeError(f"Merge needs at least two inputs, got {len(inputs)}")
        missing = [str(p) for p in inputs if not p.is_file()]
        if missing:
            raise MergeError(f"Merge inputs missing: {', '.join(missing)}")

        output.parent.mkdir(parents=True, exist_ok=True)
        partial = output.with_name(f"{output.stem}.partial{output.suffix}")
        concat_list = output.with_name(f"{output.stem}.concat.txt")
        cmd = self.build_command(inputs, partial, concat_list)
        logger.info("Merging %d clips into %s", len(inputs), output)
        logger.debug("ffmpeg command: %s", " ".join(cmd))

        try:
            if not self.reencode:
                lines = []
                for path in inputs:
                    escaped = str(path.resolve()).replace("'", "'\\''")
                    lines.append(f"file '{escaped}'\n")
                concat_list.write_text("".join(lines), encoding="utf-8")
            await self._run(cmd)
            partial.replace(output)
        except OSError as exc:
            raise MergeError(f"Failed to run ffmpeg: {exc}") from exc
        finally:
            partial.unlink(missing_ok=True)
            concat_list.unlink(missing_ok=True)

        logger.info("Clips merged successfully: %s", output)
        return output

    async def _run(self, cmd: list[str]) -> None:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            raise MergeError(f"ffmpeg timed out after {self.timeout:.0f}s")
        except BaseException:
            # Cancelled while ffmpeg runs: never leave the child behind
            logger.warning("Merge interrupted, killing ffmpeg (pid %s)", proc.pid)
            await _kill(proc)
            raise

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace").strip()
            logger.error("ffmpeg exited with %s: %s", proc.returncode, stderr_text[-2000:])
            raise MergeError(
                f"ffmpeg exited with code {proc.returncode}",
                details={"stderr": stderr_text[-2000:]},
            )


async def _kill(proc) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()
