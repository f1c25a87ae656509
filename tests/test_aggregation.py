import pytest

from trawler.core.exceptions import DownloadEngineError
from trawler.services.aggregation import DownloadAggregator, summarize_progress


@pytest.mark.asyncio
async def test_single_job_progress(engine):
    engine.set_status(
        "root", "active", total_bytes=1000, completed_bytes=250, download_speed=25
    )

    progress = await DownloadAggregator(engine).get_download_progress("root")

    assert progress.progress == 25
    assert progress.speed == "25.0 B/s"
    assert progress.eta == "30s"
    assert not progress.is_complete
    assert not progress.is_failed


@pytest.mark.asyncio
async def test_magnet_root_reports_child_totals(engine):
    engine.set_status("root", "complete", followed_by=["a", "b"])
    engine.set_status("a", "complete", total_bytes=600, completed_bytes=600)
    engine.set_status(
        "b", "active", total_bytes=400, completed_bytes=100, download_speed=2048
    )

    aggregator = DownloadAggregator(engine)
    progress = await aggregator.get_download_progress("root")

    assert progress.total_bytes == 1000
    assert progress.completed_bytes == 700
    assert progress.progress == 70
    assert progress.speed == "2.0 KB/s"
    assert progress.child_job_ids == ["a", "b"]
    assert not progress.is_complete
    assert not await aggregator.is_download_complete("root")

    engine.set_status("b", "complete", total_bytes=400, completed_bytes=400)
    assert await aggregator.is_download_complete("root")


@pytest.mark.asyncio
async def test_unreadable_child_blocks_completion(engine):
    engine.set_status("root", "complete", followed_by=["a", "missing"])
    engine.set_status("a", "complete", total_bytes=100, completed_bytes=100)

    progress = await DownloadAggregator(engine).get_download_progress("root")

    assert progress.progress == 100
    assert not progress.is_complete


@pytest.mark.asyncio
async def test_root_error_is_a_failure(engine):
    engine.set_status("root", "error", error_message="No space left on device")
    aggregator = DownloadAggregator(engine)

    progress = await aggregator.get_download_progress("root")

    assert progress.is_failed
    assert progress.error_message == "No space left on device"
    assert await aggregator.is_download_failed("root")


@pytest.mark.asyncio
async def test_unreadable_root_raises(engine):
    with pytest.raises(DownloadEngineError):
        await DownloadAggregator(engine).get_download_progress("nope")


@pytest.mark.asyncio
async def test_related_job_ids(engine):
    engine.set_status("root", "complete", followed_by=["a"])

    assert await DownloadAggregator(engine).related_job_ids("root") == ["root", "a"]


@pytest.mark.asyncio
async def test_summarize_progress(engine):
    engine.set_status("x", "active", total_bytes=100, completed_bytes=20, download_speed=1024)
    engine.set_status("y", "active", total_bytes=100, completed_bytes=60, download_speed=1024)
    aggregator = DownloadAggregator(engine)

    summary = summarize_progress(
        [await aggregator.get_download_progress("x"), await aggregator.get_download_progress("y")]
    )

    assert summary == {
        "active_downloads": 2,
        "total_speed": "2.0 KB/s",
        "average_progress": 40,
    }
    assert summarize_progress([])["active_downloads"] == 0
