from app.core.exceptions import StorageUnavailable, StoreUnavailable, UploadFailed
from app.models.analysis import Analysis, Recommendation
from app.models.user import TelegramUser
from app.services.pipeline_service import (
    MediaSubmission,
    PipelineState,
    RequestPipeline,
    Sender,
    TextSubmission,
)
from app.tests.fakes import PUBLIC_URL, FakeAnalyzer, FakeStorage
from app.utils.messages import get_message

MB = 1024 * 1024
SENDER = Sender(id=42, first_name="Anna", username="anna", language_code="en")


def text_submission(text, locale="en"):
    return TextSubmission(chat_id=100, sender=SENDER, text=text, locale=locale)


def photo_submission(size=2 * MB, caption=None, locale="en"):
    return MediaSubmission(chat_id=100, sender=SENDER, file_id="photo-file", file_size=size,
                           kind="photo", caption=caption, locale=locale)


async def test_text_question_is_analyzed_stored_and_replied(pipeline, telegram, analyzer, session_factory):
    analyzer.text = "Elevated TSH suggests..."

    result = await pipeline.process(text_submission("What does high TSH mean?"))

    assert result.state == PipelineState.REPLIED
    assert result.reply == "Elevated TSH suggests..."
    assert analyzer.calls == [("text", "What does high TSH mean?")]
    assert telegram.texts[-1] == "Elevated TSH suggests..."

    with session_factory() as db:
        assert db.get(TelegramUser, 42).first_name == "Anna"
        analyses = db.query(Analysis).all()
        assert len(analyses) == 1
        assert analyses[0].status == "completed"
        assert analyses[0].input_text == "What does high TSH mean?"
        assert analyses[0].file_url is None
        recs = db.query(Recommendation).all()
        assert [r.recommendation_text for r in recs] == ["Elevated TSH suggests..."]


async def test_too_long_text_aborts_before_any_store_call(pipeline, records, telegram, analyzer):
    result = await pipeline.process(text_submission("x" * 10001))

    assert result.state == PipelineState.ABORTED
    assert records.calls == []
    assert analyzer.calls == []
    assert telegram.texts == [get_message("text_too_long", "en", limit=10000)]


async def test_oversized_photo_is_rejected_with_limit(pipeline, records, storage, telegram):
    result = await pipeline.process(photo_submission(size=25 * MB))

    assert result.state == PipelineState.ABORTED
    assert "20MB" in result.reply
    assert telegram.texts == [result.reply]
    assert records.calls == []
    assert storage.uploads == []
    assert telegram.downloads == []


async def test_photo_with_caption_uses_caption_as_prompt(pipeline, telegram, storage, analyzer, session_factory):
    analyzer.text = "Your hemoglobin is normal."

    result = await pipeline.process(photo_submission(caption="check my bloodwork"))

    assert result.state == PipelineState.REPLIED
    assert telegram.downloads == ["photo-file"]
    assert storage.uploads[0]["data"] == telegram.file_bytes
    assert storage.uploads[0]["name"].startswith("user_42_")
    assert storage.uploads[0]["content_type"] == "image/jpeg"
    assert analyzer.calls == [("image", PUBLIC_URL, "check my bloodwork")]
    assert telegram.texts[0] == get_message("photo_received", "en")
    assert telegram.texts[-1] == "Your hemoglobin is normal."

    with session_factory() as db:
        analysis = db.query(Analysis).one()
        assert analysis.file_url == PUBLIC_URL
        assert analysis.input_text is None
        assert analysis.status == "completed"


async def test_photo_without_caption_uses_default_prompt(pipeline, analyzer):
    await pipeline.process(photo_submission(caption=None, locale="ru"))

    assert analyzer.calls == [("image", PUBLIC_URL, get_message("default_image_prompt", "ru"))]


async def test_image_document_keeps_file_name_and_mime(pipeline, storage):
    submission = MediaSubmission(chat_id=100, sender=SENDER, file_id="doc-file", file_size=MB,
                                 kind="document", file_name="labs.png", mime_type="image/png", locale="en")

    result = await pipeline.process(submission)

    assert result.state == PipelineState.REPLIED
    assert storage.uploads[0]["name"].endswith("_labs.png")
    assert storage.uploads[0]["content_type"] == "image/png"


async def test_upload_failure_leaves_no_analysis_row(records, telegram, analyzer, session_factory):
    storage = FakeStorage(error=UploadFailed(UploadFailed.PERMISSION_DENIED))
    pipeline = RequestPipeline(records, storage, analyzer, telegram)

    result = await pipeline.process(photo_submission(caption="check"))

    assert result.state == PipelineState.ABORTED
    assert result.reply == get_message("upload_error", "en")
    assert "create_pending_request" not in records.calls
    assert analyzer.calls == []
    with session_factory() as db:
        assert db.query(Analysis).count() == 0


async def test_unavailable_storage_aborts(records, telegram, analyzer, session_factory):
    pipeline = RequestPipeline(records, FakeStorage(error=StorageUnavailable("down")), analyzer, telegram)

    result = await pipeline.process(photo_submission())

    assert result.state == PipelineState.ABORTED
    with session_factory() as db:
        assert db.query(Analysis).count() == 0


async def test_download_failure_asks_user_to_retry(pipeline, telegram, storage):
    telegram.fail_download = True

    result = await pipeline.process(photo_submission())

    assert result.state == PipelineState.ABORTED
    assert result.reply == get_message("download_error", "en")
    assert storage.uploads == []


async def test_degraded_analysis_is_stored_and_replied_identically(records, storage, telegram, session_factory):
    fallback = get_message("analysis_text_failed", "en")
    pipeline = RequestPipeline(records, storage, FakeAnalyzer(text=fallback, degraded=True), telegram)

    result = await pipeline.process(text_submission("tsh 12"))

    assert result.state == PipelineState.REPLIED
    assert result.degraded is True
    assert telegram.texts[-1] == fallback
    with session_factory() as db:
        rec = db.query(Recommendation).one()
        assert rec.recommendation_text == fallback
        analysis = db.query(Analysis).one()
        assert analysis.status == "completed"
        assert analysis.raw_openai_response["degraded"] is True


async def test_user_store_failure_aborts_with_db_message(pipeline, records, analyzer, monkeypatch):
    async def broken(*args, **kwargs):
        raise StoreUnavailable("connection refused")

    monkeypatch.setattr(records.inner, "get_or_create_user", broken)

    result = await pipeline.process(text_submission("hello"))

    assert result.state == PipelineState.ABORTED
    assert result.reply == get_message("db_error", "en")
    assert analyzer.calls == []


async def test_pending_record_failure_aborts_before_analysis(pipeline, records, analyzer, monkeypatch):
    async def broken(*args, **kwargs):
        raise StoreUnavailable("insert failed")

    monkeypatch.setattr(records.inner, "create_pending_request", broken)

    result = await pipeline.process(text_submission("hello"))

    assert result.state == PipelineState.ABORTED
    assert result.reply == get_message("processing_error", "en")
    assert analyzer.calls == []


async def test_finalize_failure_still_replies(pipeline, records, telegram, monkeypatch):
    async def broken(*args, **kwargs):
        raise StoreUnavailable("update failed")

    monkeypatch.setattr(records.inner, "finalize_request", broken)

    result = await pipeline.process(text_submission("hello"))

    assert result.state == PipelineState.REPLIED
    assert telegram.texts[-1] == result.reply


async def test_lost_chat_still_finalizes(pipeline, telegram, session_factory):
    telegram.fail_send = True

    result = await pipeline.process(text_submission("hello"))

    assert result.state == PipelineState.FINALIZED
    with session_factory() as db:
        assert db.query(Analysis).one().status == "completed"
        assert db.query(Recommendation).count() == 1


async def test_long_analysis_is_sent_in_order_and_matches_stored_text(records, storage, telegram, session_factory):
    long_text = "\n\n".join(f"{i}. " + "Keep monitoring TSH every three months. " * 5 for i in range(32))
    assert len(long_text) > 6000
    pipeline = RequestPipeline(records, storage, FakeAnalyzer(text=long_text), telegram)

    result = await pipeline.process(text_submission("tsh 9.1"))

    assert result.state == PipelineState.REPLIED
    assert telegram.texts[0] == get_message("text_received", "en")
    chunks = telegram.texts[1:]
    assert len(chunks) == 2
    assert all(len(chunk) <= 4096 for chunk in chunks)
    assert "".join(chunks) == long_text
    with session_factory() as db:
        assert db.query(Recommendation).one().recommendation_text == "".join(chunks)
