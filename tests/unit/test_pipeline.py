import asyncio
import time
from pathlib import Path

import pytest

from clipguard.services import repository
from clipguard.services.broadcast import StatusBroadcaster
from clipguard.services.pipeline import ModerationPipeline
from clipguard.services.publisher import StatusPublisher


def _pipeline(session_factory, provider, config, staging_root: Path):
    broadcaster = StatusBroadcaster()
    broadcaster.open()
    pipeline = ModerationPipeline(
        StatusPublisher(broadcaster, session_factory),
        session_factory=session_factory,
        config_loader=lambda: config,
        staging_root=staging_root,
        transport=provider.transport,
    )
    return pipeline, broadcaster


def _run(pipeline: ModerationPipeline, broadcaster: StatusBroadcaster, video_id: str) -> list[dict]:
    async def scenario() -> list[dict]:
        async with broadcaster.subscribe() as queue:
            await pipeline.run(video_id)
            events = []
            while not queue.empty():
                events.append(queue.get_nowait().model_dump(by_alias=True, mode="json"))
            return events

    return asyncio.run(scenario())


def _status(session_factory, video_id: str) -> str:
    with session_factory() as db:
        return repository.get_video(db, video_id).sensitivity_status


def test_happy_path_flags_and_cleans_up(session_factory, seed, provider, config_factory, tmp_path) -> None:
    seed("v1")
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(), tmp_path)

    events = _run(pipeline, broadcaster, "v1")

    assert _status(session_factory, "v1") == "flagged"
    assert events == [{"videoId": "v1", "status": "flagged"}]
    assert provider.deleted == ["files/upload1"]
    assert provider.files == {}
    assert list(tmp_path.iterdir()) == []


def test_degraded_mode_leaves_record_pending(session_factory, seed, provider, config_factory, tmp_path) -> None:
    seed("v1")
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(api_key=""), tmp_path)

    events = _run(pipeline, broadcaster, "v1")

    assert _status(session_factory, "v1") == "pending"
    assert events == []
    assert provider.uploads == 0
    assert provider.media_requests == 0


def test_placeholder_key_is_degraded_mode(session_factory, seed, provider, config_factory, tmp_path) -> None:
    seed("v1")
    config = config_factory(api_key="your_gemini_api_key_here")
    pipeline, broadcaster = _pipeline(session_factory, provider, config, tmp_path)

    assert _run(pipeline, broadcaster, "v1") == []
    assert provider.uploads == 0


def test_provider_failure_keeps_pending_and_cleans_up(
    session_factory, seed, make_provider, config_factory, tmp_path
) -> None:
    seed("v1")
    provider = make_provider(states=["PROCESSING", "FAILED"])
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(), tmp_path)

    events = _run(pipeline, broadcaster, "v1")

    assert _status(session_factory, "v1") == "pending"
    assert events == []
    assert provider.generate_calls == 0
    assert provider.files == {}
    assert list(tmp_path.iterdir()) == []


def test_unparseable_answer_defaults_to_safe(session_factory, seed, make_provider, config_factory, tmp_path) -> None:
    seed("v1")
    provider = make_provider(answer="I cannot decide.")
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(), tmp_path)

    assert _run(pipeline, broadcaster, "v1") == [{"videoId": "v1", "status": "safe"}]
    assert _status(session_factory, "v1") == "safe"


def test_missing_record_is_a_no_op(session_factory, provider, config_factory, tmp_path) -> None:
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(), tmp_path)

    assert _run(pipeline, broadcaster, "ghost") == []
    assert provider.media_requests == 0


def test_unreachable_media_is_fatal(session_factory, seed, make_provider, config_factory, tmp_path) -> None:
    seed("v1")
    provider = make_provider(media_status=404)
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(), tmp_path)

    assert _run(pipeline, broadcaster, "v1") == []
    assert _status(session_factory, "v1") == "pending"
    assert provider.uploads == 0
    assert list(tmp_path.iterdir()) == []


def test_retryable_failure_retries_whole_job(
    session_factory, seed, make_provider, config_factory, tmp_path
) -> None:
    seed("v1")
    provider = make_provider(media_status=503)
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(max_attempts=3), tmp_path)

    assert _run(pipeline, broadcaster, "v1") == []
    assert provider.media_requests == 3


def test_same_answer_yields_same_terminal_status(
    session_factory, seed, provider, config_factory, tmp_path
) -> None:
    seed("v1")
    seed("v2")
    pipeline, broadcaster = _pipeline(session_factory, provider, config_factory(), tmp_path)

    first = _run(pipeline, broadcaster, "v1")
    second = _run(pipeline, broadcaster, "v2")

    assert first[0]["status"] == second[0]["status"] == "flagged"
    assert provider.files == {}


def test_job_deadline_keeps_pending_and_cleans_up(
    session_factory, seed, make_provider, config_factory, tmp_path
) -> None:
    seed("v1")
    provider = make_provider(states=["PROCESSING"])
    config = config_factory(analysis={"poll_interval_s": 0.05, "max_polls": 10_000}, job_timeout_s=1)
    pipeline, broadcaster = _pipeline(session_factory, provider, config, tmp_path)

    assert _run(pipeline, broadcaster, "v1") == []
    assert _status(session_factory, "v1") == "pending"
    assert provider.generate_calls == 0
    assert provider.deleted == ["files/upload1"]
    assert provider.files == {}
    assert list(tmp_path.iterdir()) == []


def test_cancelled_job_releases_local_and_remote(
    session_factory, seed, make_provider, config_factory, tmp_path
) -> None:
    seed("v1")
    provider = make_provider(states=["PROCESSING"])
    config = config_factory(analysis={"poll_interval_s": 0.05, "max_polls": 10_000})
    pipeline, _ = _pipeline(session_factory, provider, config, tmp_path)

    async def scenario() -> None:
        task = asyncio.create_task(pipeline.run("v1"))
        for _ in range(500):
            if provider.files.get("files/upload1", 0) >= 1:
                break
            await asyncio.sleep(0.01)
        assert provider.uploads == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert _status(session_factory, "v1") == "pending"
    assert provider.deleted == ["files/upload1"]
    assert provider.files == {}
    assert list(tmp_path.iterdir()) == []


class SlowWritePublisher(StatusPublisher):
    def _write(self, video_id, status) -> bool:
        time.sleep(1.5)
        return super()._write(video_id, status)


def test_deadline_during_publish_still_broadcasts(
    session_factory, seed, provider, config_factory, tmp_path
) -> None:
    seed("v1")
    broadcaster = StatusBroadcaster()
    broadcaster.open()
    pipeline = ModerationPipeline(
        SlowWritePublisher(broadcaster, session_factory),
        session_factory=session_factory,
        config_loader=lambda: config_factory(job_timeout_s=1),
        staging_root=tmp_path,
        transport=provider.transport,
    )

    async def scenario() -> list[dict]:
        async with broadcaster.subscribe() as queue:
            await pipeline.run("v1")
            await asyncio.sleep(1.0)
            events = []
            while not queue.empty():
                events.append(queue.get_nowait().model_dump(by_alias=True, mode="json"))
            return events

    assert asyncio.run(scenario()) == [{"videoId": "v1", "status": "flagged"}]
    assert _status(session_factory, "v1") == "flagged"
    assert provider.files == {}
