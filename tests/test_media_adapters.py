"""Tests for the artifact downloader and the ffmpeg merger."""

import asyncio

import httpx
import pytest

from stitchflow.errors.exceptions import FetchError, MergeError
from stitchflow.integrations.adapters.downloader import HttpArtifactFetcher
from stitchflow.integrations.adapters.ffmpeg import FfmpegMerger


# --- Downloader ---


@pytest.mark.asyncio
async def test_fetch_writes_file(tmp_path):
    fetcher = HttpArtifactFetcher(
        transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"clip-bytes")),
    )
    dest = tmp_path / "job" / "input_0.mp4"
    assert await fetcher.fetch("https://cdn.test/a.mp4", dest) == dest
    assert dest.read_bytes() == b"clip-bytes"
    assert not (tmp_path / "job" / "input_0.mp4.part").exists()


@pytest.mark.asyncio
async def test_fetch_failure_leaves_no_partial(tmp_path):
    fetcher = HttpArtifactFetcher(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
    dest = tmp_path / "input_0.mp4"
    with pytest.raises(FetchError, match="a.mp4"):
        await fetcher.fetch("https://cdn.test/a.mp4", dest)
    assert list(tmp_path.iterdir()) == []


# --- ffmpeg ---


class FakeProcess:
    pid = 4242

    def __init__(self, returncode=0, stderr=b"", hang=False):
        self.returncode = None if hang else returncode
        self._stderr = stderr
        self._hang = hang
        self.killed = False
        self.waited = False

    async def communicate(self):
        if self._hang:
            await asyncio.sleep(10)
        return b"", self._stderr

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        self.waited = True
        return self.returncode


@pytest.fixture
def clips(tmp_path):
    paths = []
    for n in range(2):
        path = tmp_path / f"input_{n}.mp4"
        path.write_bytes(b"clip")
        paths.append(path)
    return paths


def test_build_command_stream_copy(tmp_path):
    merger = FfmpegMerger(ffmpeg_path="/usr/bin/ffmpeg")
    cmd = merger.build_command([tmp_path / "a.mp4", tmp_path / "b.mp4"], tmp_path / "out.mp4", tmp_path / "list.txt")
    assert cmd[0] == "/usr/bin/ffmpeg"
    assert cmd[cmd.index("-f") + 1] == "concat"
    assert cmd[cmd.index("-i") + 1] == str(tmp_path / "list.txt")
    assert cmd[cmd.index("-c") + 1] == "copy"
    assert cmd[-1] == str(tmp_path / "out.mp4")


def test_build_command_reencode_keeps_input_order(tmp_path):
    merger = FfmpegMerger(reencode=True)
    a, b = tmp_path / "a.mp4", tmp_path / "b.mp4"
    cmd = merger.build_command([a, b], tmp_path / "out.mp4", tmp_path / "list.txt")
    inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
    assert inputs == [str(a), str(b)]
    assert "[0:v][0:a][1:v][1:a]concat=n=2:v=1:a=1[v][a]" in cmd


@pytest.mark.asyncio
async def test_merge_success(monkeypatch, clips, tmp_path):
    captured = {}

    async def fake_exec(*cmd, **kwargs):
        captured["cmd"] = cmd
        concat_list = tmp_path / "merged.concat.txt"
        captured["list"] = concat_list.read_text()
        (tmp_path / "merged.partial.mp4").write_bytes(b"merged")
        return FakeProcess()

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    output = await FfmpegMerger().merge(clips, tmp_path / "merged.mp4")

    assert output.read_bytes() == b"merged"
    assert captured["list"].splitlines() == [f"file '{clips[0].resolve()}'", f"file '{clips[1].resolve()}'"]
    assert not (tmp_path / "merged.concat.txt").exists()
    assert not (tmp_path / "merged.partial.mp4").exists()
    assert [p.read_bytes() for p in clips] == [b"clip", b"clip"]


@pytest.mark.asyncio
async def test_merge_failure_leaves_no_output(monkeypatch, clips, tmp_path):
    async def fake_exec(*cmd, **kwargs):
        (tmp_path / "merged.partial.mp4").write_bytes(b"half")
        return FakeProcess(returncode=1, stderr=b"Invalid data found when processing input")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    with pytest.raises(MergeError) as exc_info:
        await FfmpegMerger().merge(clips, tmp_path / "merged.mp4")

    assert "Invalid data" in exc_info.value.details["stderr"]
    assert not (tmp_path / "merged.mp4").exists()
    assert not (tmp_path / "merged.partial.mp4").exists()


@pytest.mark.asyncio
async def test_merge_timeout_kills_process(monkeypatch, clips, tmp_path):
    proc = FakeProcess(hang=True)

    async def fake_exec(*cmd, **kwargs):
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    with pytest.raises(MergeError, match="timed out"):
        await FfmpegMerger(timeout=0.05).merge(clips, tmp_path / "merged.mp4")
    assert proc.killed


@pytest.mark.asyncio
async def test_cancelled_merge_kills_process(monkeypatch, clips, tmp_path):
    proc = FakeProcess(hang=True)
    started = asyncio.Event()

    async def fake_exec(*cmd, **kwargs):
        (tmp_path / "merged.partial.mp4").write_bytes(b"half")
        started.set()
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    task = asyncio.create_task(FfmpegMerger().merge(clips, tmp_path / "merged.mp4"))
    await started.wait()
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert proc.killed
    assert proc.waited
    assert not (tmp_path / "merged.partial.mp4").exists()
    assert not (tmp_path / "merged.concat.txt").exists()


@pytest.mark.asyncio
async def test_merge_missing_binary(monkeypatch, clips, tmp_path):
    async def fake_exec(*cmd, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    with pytest.raises(MergeError, match="Failed to run ffmpeg"):
        await FfmpegMerger().merge(clips, tmp_path / "merged.mp4")


@pytest.mark.asyncio
async def test_merge_validates_inputs(clips, tmp_path):
    with pytest.raises(MergeError, match="at least two"):
        await FfmpegMerger().merge(clips[:1], tmp_path / "merged.mp4")
    with pytest.raises(MergeError, match="missing"):
        await FfmpegMerger().merge([clips[0], tmp_path / "nope.mp4"], tmp_path / "merged.mp4")
