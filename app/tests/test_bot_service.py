import pytest

from app.core.exceptions import TransportError
from app.schemas.telegram import Update
from app.services.bot_service import BotService
from app.services.pipeline_service import PipelineState
from app.utils.messages import get_message


def make_update(update_id=1, language_code="en", **message_fields):
    message = {
        "message_id": update_id,
        "date": 1700000000,
        "chat": {"id": 100, "type": "private"},
        "from": {"id": 42, "is_bot": False, "first_name": "Anna", "language_code": language_code},
    }
    message.update(message_fields)
    return Update.model_validate({"update_id": update_id, "message": message})


@pytest.fixture
def bot(telegram, pipeline, record_service):
    return BotService(telegram, pipeline, record_service, history_limit=5, default_locale="ru")


async def test_start_creates_user_and_shows_keyboard(bot, telegram, record_service):
    await bot.handle_update(make_update(text="/start"))

    assert telegram.sent[-1]["text"] == get_message("welcome", "en", name="Anna")
    assert telegram.sent[-1]["reply_markup"]["keyboard"] == [["/help", "/history"]]
    assert (await record_service.get_or_create_user(42)).first_name == "Anna"


async def test_help_uses_sender_locale(bot, telegram):
    await bot.handle_update(make_update(text="/help", language_code="de"))

    assert telegram.texts == [get_message("help", "ru")]


async def test_unknown_command_is_ignored(bot, telegram, analyzer):
    result = await bot.handle_update(make_update(text="/settings"))

    assert result is None
    assert telegram.sent == []
    assert analyzer.calls == []


async def test_text_goes_through_pipeline(bot, telegram, analyzer):
    result = await bot.handle_update(make_update(text="What does high TSH mean?"))

    assert result.state == PipelineState.REPLIED
    assert analyzer.calls == [("text", "What does high TSH mean?")]
    assert telegram.texts[-1] == analyzer.text


async def test_photo_uses_largest_size_and_caption(bot, telegram, analyzer):
    update = make_update(
        caption="check my bloodwork",
        photo=[
            {"file_id": "small", "width": 90, "height": 90, "file_size": 1000},
            {"file_id": "large", "width": 1280, "height": 1280, "file_size": 2 * 1024 * 1024},
        ],
    )

    result = await bot.handle_update(update)

    assert result.state == PipelineState.REPLIED
    assert telegram.downloads == ["large"]
    assert analyzer.calls[0][2] == "check my bloodwork"


async def test_non_image_document_is_declined(bot, telegram, storage):
    update = make_update(document={"file_id": "pdf", "file_name": "labs.pdf", "mime_type": "application/pdf"})

    result = await bot.handle_update(update)

    assert result is None
    assert telegram.texts == [get_message("unsupported_document", "en")]
    assert storage.uploads == []


async def test_image_document_goes_through_pipeline(bot, storage):
    update = make_update(document={"file_id": "img", "file_name": "labs.jpg", "mime_type": "image/jpeg",
                                   "file_size": 1024})

    result = await bot.handle_update(update)

    assert result.state == PipelineState.REPLIED
    assert storage.uploads[0]["name"].endswith("_labs.jpg")


async def test_history_lists_recent_analyses(bot, telegram, record_service):
    await record_service.get_or_create_user(42, first_name="Anna")
    analysis = await record_service.create_pending_request(42, text="TSH 9.1 <high>")
    await record_service.finalize_request(analysis.id, 42, "Consider thyroid tests & a doctor visit.",
                                          {"response": "..."})
    await record_service.create_pending_request(42, media_url="https://files/x.jpg")

    await bot.handle_update(make_update(text="/history"))

    assert telegram.texts[0] == get_message("history_loading", "en")
    history = telegram.sent[-1]
    assert history["parse_mode"] == "HTML"
    assert history["text"].startswith(get_message("history_header", "en", count=2))
    assert "TSH 9.1 &lt;high&gt;" in history["text"]
    assert "Consider thyroid tests &amp; a doctor visit." in history["text"]
    assert get_message("history_file", "en") in history["text"]
    assert get_message("history_no_recommendation", "en") in history["text"]


async def test_empty_history(bot, telegram):
    await bot.handle_update(make_update(text="/history"))

    assert telegram.texts[-1] == get_message("history_empty", "en")


async def test_register_commands_uses_default_locale(bot, telegram):
    await bot.register_commands()

    assert [c["command"] for c in telegram.commands] == ["start", "help", "history"]
    assert telegram.commands[0]["description"] == get_message("cmd_start", "ru")


async def test_scheduled_updates_are_awaited_on_stop(bot, telegram):
    bot.schedule(make_update(update_id=1, text="/help"))
    bot.schedule(make_update(update_id=2, text="/help", language_code="ru"))

    await bot.stop()

    assert sorted(telegram.texts) == sorted([get_message("help", "en"), get_message("help", "ru")])


async def test_polling_stops_on_conflict(bot, telegram):
    async def conflict(offset=None, timeout=10):
        raise TransportError("Conflict: terminated by other getUpdates request", 409)

    telegram.get_updates = conflict

    await bot.run_polling(timeout=0, interval=0)

    assert bot._polling is False


async def test_polling_dispatches_updates_and_advances_offset(bot, telegram):
    offsets = []

    async def get_updates(offset=None, timeout=10):
        offsets.append(offset)
        if len(offsets) == 1:
            return [make_update(update_id=7, text="/help")]
        bot._polling = False
        return []

    telegram.get_updates = get_updates

    await bot.run_polling(timeout=0, interval=0)
    await bot.stop()

    assert offsets == [None, 8]
    assert telegram.texts == [get_message("help", "en")]


async def test_polling_survives_unexpected_errors(bot, telegram):
    calls = []

    async def get_updates(offset=None, timeout=10):
        calls.append(offset)
        if len(calls) == 1:
            raise ValueError("unexpected payload")
        bot._polling = False
        return []

    telegram.get_updates = get_updates

    await bot.run_polling(timeout=0, interval=0)

    assert len(calls) == 2


async def test_long_reply_is_split(bot, telegram):
    text = "first part\n" + "y" * 5000

    await bot._reply(100, text, parse_mode="HTML")

    assert [len(t) for t in telegram.texts] == [11, 4096, 904]
    assert "".join(telegram.texts) == text
    assert all(item["parse_mode"] == "HTML" for item in telegram.sent)
