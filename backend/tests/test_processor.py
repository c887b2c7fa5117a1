import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.errors import InvalidJobError, VideoNotFoundError, WorkflowError
from app.models.models import CLASSIFIED_AT_EPOCH, Comment, CommentSummary, Video
from app.services.comments.comment_store import as_utc
from app.services.jobs import processor as processor_module
from app.services.jobs.job_queue import InMemoryJobQueue
from app.services.jobs.job_types import Job, JobState, JobType
from app.services.workflow.workflow_client import DEFAULT_SUMMARY_TITLE
from conftest import add_comment, add_video, utc


def make_job(job_type: JobType, video_id: str = "vid1", **payload) -> Job:
    return Job(id=f"job-{job_type.value}", job_type=job_type, video_id=video_id, payload=payload)


async def load_comments(session_factory, video_id="vid1"):
    async with session_factory() as s:
        result = await s.execute(
            select(Comment).where(Comment.video_id == video_id).order_by(Comment.youtube_comment_id)
        )
        return {c.youtube_comment_id: c for c in result.scalars().all()}


async def load_video(session_factory, video_id="vid1") -> Video:
    async with session_factory() as s:
        return await s.get(Video, video_id)


# ── analysis ─────────────────────────────────────────────────────────────

class TestAnalysis:
    async def test_zero_comments_gives_null_ratio(self, processor, session_factory, workflow_api):
        await add_video(session_factory, "vid1")
        workflow_api.respond("comments-analysis", {"summary_title": "요약", "summary": "nothing yet"})

        result = await processor.process(make_job(JobType.ANALYSIS))

        assert result["positive_ratio"] is None
        async with session_factory() as s:
            summary = (await s.execute(select(CommentSummary))).scalar_one()
        assert summary.summary_title == "요약"
        assert summary.positive_ratio is None
        assert json.loads(summary.summary) == {"summary_title": "요약", "summary": "nothing yet"}

    async def test_ratio_comes_from_stored_comments(self, processor, session_factory, workflow_api):
        await add_video(session_factory, "vid1")
        for cid, ct in [("a", 1), ("b", 1), ("c", 1), ("d", 2), ("e", 0)]:
            await add_comment(session_factory, cid, comment_type=ct)
        # the workflow's own number is not trusted
        workflow_api.respond("comments-analysis", {"output": {"summary": "ok", "positive_ratio": 5}})

        result = await processor.process(make_job(JobType.ANALYSIS))

        assert result["positive_ratio"] == 75.0

    async def test_raw_response_uses_default_title(self, processor, session_factory, workflow_api):
        await add_video(session_factory, "vid1")
        workflow_api.respond("comments-analysis", text="plain narrative")

        await processor.process(make_job(JobType.ANALYSIS))

        async with session_factory() as s:
            summary = (await s.execute(select(CommentSummary))).scalar_one()
        assert summary.summary_title == DEFAULT_SUMMARY_TITLE
        assert json.loads(summary.summary)["summary"] == "plain narrative"

    async def test_each_run_appends_a_summary(self, processor, session_factory, workflow_api):
        await add_video(session_factory, "vid1")
        workflow_api.respond("comments-analysis", {"summary": "s"})

        await processor.process(make_job(JobType.ANALYSIS))
        await processor.process(make_job(JobType.ANALYSIS))

        async with session_factory() as s:
            assert await s.scalar(select(func.count(CommentSummary.id))) == 2

    async def test_unknown_video_fails(self, processor, workflow_api):
        with pytest.raises(VideoNotFoundError):
            await processor.process(make_job(JobType.ANALYSIS, "missing"))
        assert workflow_api.calls == []

    async def test_workflow_error_fails_job(self, processor, session_factory, workflow_api):
        await add_video(session_factory, "vid1")
        workflow_api.respond("comments-analysis", {"error": "down"}, status=502)

        with pytest.raises(WorkflowError):
            await processor.process(make_job(JobType.ANALYSIS))
        async with session_factory() as s:
            assert await s.scalar(select(func.count(CommentSummary.id))) == 0


# ── classify ─────────────────────────────────────────────────────────────

class TestClassify:
    async def test_sends_epoch_for_new_video(self, processor, session_factory, workflow_api):
        await add_video(session_factory, "vid1")
        workflow_api.respond("comments-classify", [])

        await processor.process(make_job(JobType.CLASSIFY))

        assert workflow_api.calls[0][1]["comment_classified_at"] == CLASSIFIED_AT_EPOCH.isoformat()

    async def test_persists_with_youtube_metadata(self, processor, session_factory, workflow_api, youtube_api):
        await add_video(session_factory, "vid1")
        youtube_api.add_comment("c1", author="alice")
        youtube_api.add_comment("c2", author="bob", parent_id="c1")
        workflow_api.respond("comments-classify", [
            {"id": "c1", "text": "love it", "comment_type": 1},
            {"id": "c2", "text": "meh", "comment_type": "2"},
        ])

        stats = await processor.process(make_job(JobType.CLASSIFY))

        assert stats["persisted"] == 2
        comments = await load_comments(session_factory)
        assert comments["c1"].author_name == "alice"
        assert comments["c1"].author_id == "UC-alice"
        assert comments["c1"].is_parent is True
        assert comments["c1"].comment_type == 1
        assert comments["c2"].is_parent is False
        assert comments["c2"].comment_type == 2

    async def test_metadata_failure_skips_item_and_job_completes(
        self, processor, session_factory, workflow_api, youtube_api,
    ):
        await add_video(session_factory, "vid1")
        youtube_api.add_comment("c1")
        youtube_api.failing_comments.add("c2")
        youtube_api.add_comment("c3")
        workflow_api.respond("comments-classify", [
            {"id": "c1", "text": "a", "comment_type": 1},
            {"id": "c2", "text": "b", "comment_type": 2},
            {"id": "c3", "text": "c", "comment_type": 0},
        ])

        stats = await processor.process(make_job(JobType.CLASSIFY))

        assert stats["persisted"] == 2
        assert stats["skipped_ids"] == ["c2"]
        assert set(await load_comments(session_factory)) == {"c1", "c3"}
        video = await load_video(session_factory)
        assert as_utc(video.comment_classified_at) > CLASSIFIED_AT_EPOCH

    async def test_invalid_type_is_skipped(self, processor, session_factory, workflow_api, youtube_api):
        await add_video(session_factory, "vid1")
        youtube_api.add_comment("c1")
        youtube_api.add_comment("c2")
        workflow_api.respond("comments-classify", [
            {"id": "c1", "text": "a", "comment_type": 7},
            {"id": "c2", "text": "b", "comment_type": None},
        ])

        stats = await processor.process(make_job(JobType.CLASSIFY))

        assert stats["persisted"] == 0
        assert stats["skipped"] == 2

    async def test_nothing_stored_keeps_watermark(self, processor, session_factory, workflow_api):
        await add_video(session_factory, "vid1", comment_classified_at=utc(2024, 1, 1))
        workflow_api.respond("comments-classify", {"comments": []})

        stats = await processor.process(make_job(JobType.CLASSIFY))

        assert "comment_classified_at" not in stats
        video = await load_video(session_factory)
        assert as_utc(video.comment_classified_at) == utc(2024, 1, 1)

    async def test_rerun_is_idempotent(self, processor, session_factory, workflow_api, youtube_api):
        await add_video(session_factory, "vid1")
        youtube_api.add_comment("c1")
        workflow_api.respond("comments-classify", [{"id": "c1", "text": "a", "comment_type": 1}])

        await processor.process(make_job(JobType.CLASSIFY))
        first = await load_video(session_factory)
        await processor.process(make_job(JobType.CLASSIFY))
        second = await load_video(session_factory)

        assert len(await load_comments(session_factory)) == 1
        assert as_utc(second.comment_classified_at) >= as_utc(first.comment_classified_at)
        # second run sends the watermark set by the first
        assert workflow_api.calls[1][1]["comment_classified_at"] == as_utc(first.comment_classified_at).isoformat()

    async def test_reclassification_overwrites_type(self, processor, session_factory, workflow_api, youtube_api):
        await add_video(session_factory, "vid1")
        await add_comment(session_factory, "c1", comment_type=1, is_filtered=True)
        youtube_api.add_comment("c1")
        workflow_api.respond("comments-classify", [{"id": "c1", "text": "changed", "comment_type": 2}])

        await processor.process(make_job(JobType.CLASSIFY))

        comment = (await load_comments(session_factory))["c1"]
        assert comment.comment_type == 2
        assert comment.comment == "changed"
        assert comment.is_filtered is True


    async def test_persist_failure_skips_item_and_batch_continues(
        self, processor, session_factory, workflow_api, youtube_api, monkeypatch,
    ):
        await add_video(session_factory, "vid1")
        for cid in ("c1", "c2", "c3"):
            youtube_api.add_comment(cid)
        workflow_api.respond("comments-classify", [
            {"id": "c1", "text": "a", "comment_type": 1},
            {"id": "c2", "text": "b", "comment_type": 2},
            {"id": "c3", "text": "c", "comment_type": 0},
        ])
        real_upsert = processor_module.upsert_comment

        async def flaky_upsert(db, values, *args, **kwargs):
            if values["youtube_comment_id"] == "c2":
                raise OperationalError("INSERT INTO comments", {}, Exception("database is locked"))
            return await real_upsert(db, values, *args, **kwargs)

        monkeypatch.setattr(processor_module, "upsert_comment", flaky_upsert)

        stats = await processor.process(make_job(JobType.CLASSIFY))

        assert stats["persisted"] == 2
        assert stats["skipped_ids"] == ["c2"]
        assert set(await load_comments(session_factory)) == {"c1", "c3"}
        video = await load_video(session_factory)
        assert as_utc(video.comment_classified_at) > CLASSIFIED_AT_EPOCH

    async def test_workflow_error_fails_job_and_keeps_watermark(
        self, processor, session_factory, workflow_api,
    ):
        await add_video(session_factory, "vid1", comment_classified_at=utc(2024, 1, 1))
        workflow_api.respond("comments-classify", {"error": "down"}, status=502)

        with pytest.raises(WorkflowError):
            await processor.process(make_job(JobType.CLASSIFY))

        assert await load_comments(session_factory) == {}
        video = await load_video(session_factory)
        assert as_utc(video.comment_classified_at) == utc(2024, 1, 1)

    async def test_only_comment_without_metadata_completes_with_nothing_stored(
        self, processor, session_factory, workflow_api, youtube_api,
    ):
        await add_video(session_factory, "vid1")
        youtube_api.failing_comments.add("c1")
        workflow_api.respond("comments-classify", [{"id": "c1", "text": "a", "comment_type": 1}])

        queue = InMemoryJobQueue(concurrency=3)
        queue.start(processor.process)
        try:
            job_id = await queue.add(JobType.CLASSIFY, "vid1", {})
            await queue.join()
            assert await queue.get_state(job_id) == JobState.COMPLETED
        finally:
            await queue.close()

        assert await load_comments(session_factory) == {}
        video = await load_video(session_factory)
        assert as_utc(video.comment_classified_at) == CLASSIFIED_AT_EPOCH


# ── filter ───────────────────────────────────────────────────────────────

class TestFilter:
    async def test_reset_then_apply(self, processor, session_factory, workflow_api, youtube_api):
        await add_video(session_factory, "vid1")
        await add_comment(session_factory, "old", comment_type=2, is_filtered=True)
        await add_comment(session_factory, "c1", comment_type=1, comment="keep my text")
        youtube_api.add_comment("new", author="carol")
        workflow_api.respond("comments-filter", [
            {"id": "c1", "text": "ignored", "is_filtered": True},
            {"id": "new", "text": "fresh spam", "is_filtered": "true"},
        ])

        stats = await processor.process(make_job(JobType.FILTER, filtering_keyword="spam"))

        assert stats["cleared"] == 1
        assert stats["persisted"] == 2
        comments = await load_comments(session_factory)
        assert comments["old"].is_filtered is False
        assert comments["c1"].is_filtered is True
        assert comments["c1"].comment_type == 1
        assert comments["c1"].comment == "keep my text"
        assert comments["new"].is_filtered is True
        assert comments["new"].comment_type == 0
        assert comments["new"].author_name == "carol"

        video = await load_video(session_factory)
        assert video.filtering_keyword == "spam"
        assert workflow_api.calls[0][1] == {"video_id": "vid1", "filtering_keyword": "spam"}

    async def test_new_comment_without_metadata_is_skipped(
        self, processor, session_factory, workflow_api, youtube_api,
    ):
        await add_video(session_factory, "vid1")
        workflow_api.respond("comments-filter", [{"id": "ghost", "text": "x", "is_filtered": True}])

        stats = await processor.process(make_job(JobType.FILTER, filtering_keyword="x"))

        assert stats["skipped_ids"] == ["ghost"]
        assert await load_comments(session_factory) == {}

    async def test_missing_keyword_is_invalid(self, processor, session_factory):
        await add_video(session_factory, "vid1")
        with pytest.raises(InvalidJobError):
            await processor.process(make_job(JobType.FILTER))
