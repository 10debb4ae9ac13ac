import json
import os
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import FakeResponse
from downloader_bot.services.errors import DownloadFailed, NotFound, UpstreamError
from downloader_bot.services.process_runner import ToolOutput
from downloader_bot.services.providers.ytdlp import (
    YtDlpProvider,
    find_newest_file,
)
from downloader_bot.services.sanitizer import SHELL_METACHARACTERS

RUN_TOOL = "downloader_bot.services.providers.ytdlp.run_tool"
VIDEO_URL = "https://youtube.com/watch?v=dQw4w9WgXcQ"
PAGE = "<html><head><title>Rick Astley - Never Gonna Give You Up - YouTube</title></head></html>"


def _dump_json(**info) -> ToolOutput:
    return ToolOutput(0, json.dumps(info) + "\n", "")


@pytest.mark.asyncio
async def test_get_metadata_reads_dump_json_output(fake_http, fake_tool):
    fake_http({VIDEO_URL: FakeResponse(PAGE)})
    tool = fake_tool(
        RUN_TOOL,
        _dump_json(
            title="Never Gonna Give You Up",
            uploader="Rick Astley",
            duration=213,
            view_count=1500,
            upload_date="20091025",
        ),
    )

    metadata = await YtDlpProvider().get_metadata(VIDEO_URL)

    assert metadata.title == "Never Gonna Give You Up"
    assert metadata.author == "Rick Astley"
    assert metadata.duration_seconds == 213
    assert metadata.view_count == 1500
    assert metadata.creation_date == "20091025"
    args = tool.call_args.args[0]
    assert args[0] == "yt-dlp"
    assert "--dump-json" in args
    assert args[-1] == VIDEO_URL


@pytest.mark.asyncio
async def test_get_metadata_is_cached_per_url(fake_http, fake_tool):
    client = fake_http({VIDEO_URL: FakeResponse(PAGE)})
    tool = fake_tool(RUN_TOOL, _dump_json(title="T"))
    provider = YtDlpProvider()

    first = await provider.get_metadata(VIDEO_URL)
    second = await provider.get_metadata(VIDEO_URL)

    assert first == second
    assert tool.await_count == 1
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_page_title_is_used_when_metadata_has_no_title(fake_http, fake_tool):
    fake_http({VIDEO_URL: FakeResponse(PAGE)})
    fake_tool(RUN_TOOL, _dump_json(channel="Rick Astley"))

    metadata = await YtDlpProvider().get_metadata(VIDEO_URL)

    assert metadata.title == "Rick Astley - Never Gonna Give You Up - YouTube"
    assert metadata.author == "Rick Astley"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(status_code=404),
        FakeResponse("<title> - YouTube</title>"),
        FakeResponse("This video is unavailable"),
        FakeResponse(""),
    ],
)
async def test_unreachable_page_is_not_found(fake_http, fake_tool, response):
    fake_http({VIDEO_URL: response})
    tool = fake_tool(RUN_TOOL)

    with pytest.raises(NotFound):
        await YtDlpProvider().get_metadata(VIDEO_URL)
    tool.assert_not_awaited()


@pytest.mark.asyncio
async def test_server_error_is_upstream_error(fake_http, fake_tool):
    fake_http({VIDEO_URL: FakeResponse(status_code=503)})
    fake_tool(RUN_TOOL)

    with pytest.raises(UpstreamError):
        await YtDlpProvider().get_metadata(VIDEO_URL)


@pytest.mark.asyncio
async def test_network_error_is_upstream_error(fake_http, fake_tool):
    fake_http(error=httpx.ConnectError("connection refused"))
    fake_tool(RUN_TOOL)

    with pytest.raises(UpstreamError):
        await YtDlpProvider().get_metadata(VIDEO_URL)


@pytest.mark.asyncio
async def test_tool_reporting_unavailable_video_is_not_found(fake_http, fake_tool):
    fake_http({VIDEO_URL: FakeResponse(PAGE)})
    fake_tool(RUN_TOOL, ToolOutput(1, "", "ERROR: [youtube] x: Video unavailable"))

    with pytest.raises(NotFound):
        await YtDlpProvider().get_metadata(VIDEO_URL)


@pytest.mark.asyncio
async def test_other_metadata_failures_are_upstream_errors(fake_http, fake_tool):
    fake_http({VIDEO_URL: FakeResponse(PAGE)})
    fake_tool(RUN_TOOL, ToolOutput(1, "", "ERROR: Sign in to confirm your age"))

    with pytest.raises(UpstreamError, match="Sign in"):
        await YtDlpProvider().get_metadata(VIDEO_URL)


@pytest.mark.asyncio
async def test_unparseable_metadata_output_is_upstream_error(fake_http, fake_tool):
    fake_http({VIDEO_URL: FakeResponse(PAGE)})
    fake_tool(RUN_TOOL, ToolOutput(0, "not json", ""))

    with pytest.raises(UpstreamError):
        await YtDlpProvider().get_metadata(VIDEO_URL)


def test_build_download_args_for_audio():
    provider = YtDlpProvider(max_file_size_mb=100)

    args = provider.build_download_args(
        VIDEO_URL, audio_only=True, output_template="temp/abc.%(ext)s", fmt="mp3"
    )

    assert args[:4] == ["yt-dlp", "-x", "--audio-format", "mp3"]
    assert args[args.index("--max-filesize") + 1] == "100m"
    assert args[args.index("-o") + 1] == "temp/abc.%(ext)s"
    assert args[-1] == VIDEO_URL


def test_build_download_args_for_video_sanitizes_values():
    provider = YtDlpProvider()

    args = provider.build_download_args(
        VIDEO_URL,
        audio_only=False,
        output_template="temp/abc.%(ext)s",
        fmt="mp4;rm -rf /",
        quality="720p",
    )

    assert "best[height<=720]" in args
    requested_format = args[args.index("-f") + 1]
    assert requested_format == "mp4rm -rf /"
    assert not any(ch in requested_format for ch in SHELL_METACHARACTERS)


@pytest.mark.asyncio
async def test_download_returns_the_produced_file(mocker, tmp_path):
    async def fake_run(args, timeout):
        template = args[args.index("-o") + 1]
        with open(template.replace("%(ext)s", "mp4"), "wb") as f:
            f.write(b"video")
        return ToolOutput(0, "", "")

    tool = mocker.patch(RUN_TOOL, new=AsyncMock(side_effect=fake_run))

    result = await YtDlpProvider().download(
        VIDEO_URL, audio_only=False, output_dir=str(tmp_path)
    )

    assert os.path.dirname(result.file_path) == str(tmp_path)
    assert result.file_name.endswith(".mp4")
    assert result.file_name == os.path.basename(result.file_path)
    assert "-x" not in tool.call_args.args[0]


@pytest.mark.asyncio
async def test_download_passes_multi_parameter_query_as_one_parameter(mocker, tmp_path):
    async def fake_run(args, timeout):
        template = args[args.index("-o") + 1]
        with open(template.replace("%(ext)s", "mp4"), "wb") as f:
            f.write(b"video")
        return ToolOutput(0, "", "")

    tool = mocker.patch(RUN_TOOL, new=AsyncMock(side_effect=fake_run))

    await YtDlpProvider().download(
        "https://vimeo.com/123456?h=abc123&share=copy",
        audio_only=False,
        output_dir=str(tmp_path),
    )

    url = tool.call_args.args[0][-1]
    assert url == "https://vimeo.com/123456?h=abc123%26share=copy"
    assert "&" not in url


@pytest.mark.asyncio
async def test_failed_download_removes_partial_files(mocker, tmp_path):
    async def fake_run(args, timeout):
        template = args[args.index("-o") + 1]
        with open(template.replace("%(ext)s", "mp3.part"), "wb") as f:
            f.write(b"half")
        return ToolOutput(1, "", "ERROR: unable to download video data")

    mocker.patch(RUN_TOOL, new=AsyncMock(side_effect=fake_run))

    with pytest.raises(DownloadFailed) as exc_info:
        await YtDlpProvider().download(VIDEO_URL, audio_only=True, output_dir=str(tmp_path))

    assert exc_info.value.exit_code == 1
    assert "unable to download" in exc_info.value.stderr_excerpt
    assert os.listdir(tmp_path) == []


@pytest.mark.asyncio
async def test_download_without_output_file_fails(fake_tool, tmp_path):
    fake_tool(RUN_TOOL, ToolOutput(0, "", ""))

    with pytest.raises(DownloadFailed, match="Unable to find"):
        await YtDlpProvider().download(VIDEO_URL, audio_only=True, output_dir=str(tmp_path))


@pytest.mark.asyncio
async def test_download_rejects_unsafe_output_dir(fake_tool):
    tool = fake_tool(RUN_TOOL)

    with pytest.raises(DownloadFailed, match="Sanitization failed"):
        await YtDlpProvider().download(VIDEO_URL, audio_only=True, output_dir="../outside")
    tool.assert_not_awaited()


def test_find_newest_file_ignores_other_names_and_extensions(tmp_path):
    (tmp_path / "abc.mp3").write_bytes(b"a")
    (tmp_path / "abc.jpg").write_bytes(b"thumb")
    (tmp_path / "other.mp3").write_bytes(b"b")
    newest = tmp_path / "abc.m4a"
    newest.write_bytes(b"c")
    os.utime(newest, (os.path.getmtime(tmp_path / "abc.mp3") + 10,) * 2)

    assert find_newest_file(str(tmp_path), "abc") == str(newest)
    assert find_newest_file(str(tmp_path), "missing") is None
