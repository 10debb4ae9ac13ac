import pytest

from downloader_bot.services.errors import NotFound, UpstreamError
from downloader_bot.services.media_data import Metadata
from downloader_bot.services.registry import AdapterRegistry
from downloader_bot.services.resolution import ResolutionPipeline
from fakes import FakeProvider, FakeSearch, FakeSubprovider

CATALOG_URL = "https://catalog.example/track/1"


def _pipeline(*, universal=None, providers=(), subproviders=(), search=None):
    registry = AdapterRegistry(
        universal=universal or FakeProvider("universal"),
        providers=providers,
        subproviders=subproviders,
        search_backends=[search or FakeSearch()],
    )
    return ResolutionPipeline(registry)


@pytest.mark.asyncio
async def test_direct_link_is_described_by_its_provider():
    tube = FakeProvider("tube", hosts=("youtube.com",))
    pipeline = _pipeline(providers=[tube])

    result = await pipeline.resolve("http://youtu.be/abc?t=42")

    assert result["success"] is True
    assert result["final_url"] == "https://youtube.com/watch?v=abc"
    assert result["adapter_id"] == "tube"
    assert result["metadata"] == tube.metadata
    assert result["indirection"] is None
    assert tube.metadata_calls == ["https://youtube.com/watch?v=abc"]


@pytest.mark.asyncio
async def test_resolving_the_final_url_again_is_stable():
    pipeline = _pipeline(providers=[FakeProvider("tube", hosts=("youtube.com",))])

    first = await pipeline.resolve("https://www.youtube.com/watch?v=abc&si=share")
    second = await pipeline.resolve(first["final_url"])

    assert second["final_url"] == first["final_url"]
    assert second["adapter_id"] == first["adapter_id"]


@pytest.mark.asyncio
async def test_catalog_link_is_resolved_through_search():
    search = FakeSearch({"Band - Song": "https://video.example/xyz"})
    universal = FakeProvider("universal")
    pipeline = _pipeline(
        universal=universal, subproviders=[FakeSubprovider()], search=search
    )

    result = await pipeline.resolve(CATALOG_URL)

    assert result["success"] is True
    assert result["final_url"] == "https://video.example/xyz"
    assert result["adapter_id"] == "universal"
    assert search.queries == ["Song - Band", "Band - Song"]
    assert result["indirection"].metadata == Metadata(title="Song", author="Band")
    assert universal.metadata_calls == ["https://video.example/xyz"]


@pytest.mark.asyncio
async def test_search_stops_at_the_first_hit():
    search = FakeSearch(
        {"B": "https://video.example/b", "C": "https://video.example/c"}
    )
    pipeline = _pipeline(
        subproviders=[FakeSubprovider(queries=["A", "B", "C"])], search=search
    )

    result = await pipeline.resolve(CATALOG_URL)

    assert result["final_url"] == "https://video.example/b"
    assert search.queries == ["A", "B"]


@pytest.mark.asyncio
async def test_search_results_are_canonicalized():
    tube = FakeProvider("tube", hosts=("youtube.com",))
    search = FakeSearch({"Song - Band": "http://www.youtube.com/watch?v=xyz&si=1"})
    pipeline = _pipeline(providers=[tube], subproviders=[FakeSubprovider()], search=search)

    result = await pipeline.resolve(CATALOG_URL)

    assert result["final_url"] == "https://youtube.com/watch?v=xyz"
    assert result["adapter_id"] == "tube"


@pytest.mark.asyncio
async def test_progress_is_reported_around_the_search():
    stages = []

    async def on_progress(stage, details):
        stages.append((stage, details.metadata.title))

    search = FakeSearch({"Song - Band": "https://video.example/xyz"})
    pipeline = _pipeline(subproviders=[FakeSubprovider()], search=search)

    await pipeline.resolve(CATALOG_URL, on_progress=on_progress)

    assert stages == [("searching", "Song"), ("found", "Song")]


@pytest.mark.asyncio
async def test_exhausted_queries_give_no_match_with_every_attempt():
    search = FakeSearch()
    pipeline = _pipeline(subproviders=[FakeSubprovider()], search=search)

    result = await pipeline.resolve(CATALOG_URL)

    assert result["success"] is False
    assert result["kind"] == "no_match"
    assert result["attempts"] == [
        'No results found for "Song - Band"',
        'No results found for "Band - Song"',
        'No results found for "Band Song"',
    ]


@pytest.mark.asyncio
async def test_search_failure_is_recorded_and_the_next_query_tried():
    search = FakeSearch(
        {"Band - Song": "https://video.example/xyz"},
        errors={"Song - Band": UpstreamError("rate limited")},
    )
    pipeline = _pipeline(subproviders=[FakeSubprovider()], search=search)

    result = await pipeline.resolve(CATALOG_URL)

    assert result["success"] is True
    assert search.queries == ["Song - Band", "Band - Song"]


@pytest.mark.asyncio
async def test_unknown_search_backend_is_skipped_per_query():
    search = FakeSearch()
    pipeline = _pipeline(
        subproviders=[FakeSubprovider(queries=["A", "B"], backend_id="elsewhere")],
        search=search,
    )

    result = await pipeline.resolve(CATALOG_URL)

    assert result["kind"] == "no_match"
    assert result["attempts"] == [
        "Search platform with id elsewhere is not supported, skipping...",
    ] * 2
    assert search.queries == []


@pytest.mark.asyncio
async def test_unreadable_catalog_page_is_content_extraction_failure():
    search = FakeSearch()
    pipeline = _pipeline(
        subproviders=[FakeSubprovider(error="Unable to find title or artist name")],
        search=search,
    )

    result = await pipeline.resolve(CATALOG_URL)

    assert result["kind"] == "content_extraction_failed"
    assert result["error"] == "Unable to find title or artist name"
    assert search.queries == []


@pytest.mark.asyncio
async def test_missing_catalog_page_is_not_found():
    pipeline = _pipeline(subproviders=[FakeSubprovider(raises=NotFound("404: gone"))])

    result = await pipeline.resolve(CATALOG_URL)

    assert result["kind"] == "not_found"


@pytest.mark.asyncio
async def test_provider_failure_is_reported():
    universal = FakeProvider("universal", error=UpstreamError("Failed to read metadata"))

    result = await _pipeline(universal=universal).resolve("https://video.example/1")

    assert result == {
        "success": False,
        "error": "Failed to read metadata",
        "kind": "upstream_error",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [None, "", "not a url", "ftp://example.com/a"])
async def test_invalid_urls_are_rejected_before_any_lookup(raw):
    universal = FakeProvider("universal")

    result = await _pipeline(universal=universal).resolve(raw)

    assert result["kind"] == "invalid_url"
    assert universal.metadata_calls == []


@pytest.mark.asyncio
async def test_unexpected_errors_are_contained():
    universal = FakeProvider("universal", error=RuntimeError("boom"))

    result = await _pipeline(universal=universal).resolve("https://video.example/1")

    assert result["success"] is False
    assert result["kind"] == "upstream_error"
    assert "boom" in result["error"]
