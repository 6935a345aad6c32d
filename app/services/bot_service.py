import asyncio
import html
import logging
from typing import Optional, Set

from app.core.config import settings
from app.core.exceptions import StoreUnavailable, TransportError
from app.schemas.telegram import Message, Update
from app.services.pipeline_service import (
    MediaSubmission,
    PipelineResult,
    RequestPipeline,
    Sender,
    TextSubmission,
)
from app.services.record_service import RecordService
from app.services.telegram_service import TelegramService
from app.utils.messages import get_message, resolve_locale, split_message

logger = logging.getLogger("bot_service")

COMMANDS = ("start", "help", "history")

class BotService:
    """
    Routes incoming Telegram updates to command handlers or the request pipeline.

    Updates arrive either from the polling loop (``run_polling``) or from the
    webhook controller (``schedule``). Each update is handled in its own task.
    """

    def __init__(
        self,
        telegram: TelegramService,
        pipeline: RequestPipeline,
        records: RecordService,
        history_limit: Optional[int] = None,
        default_locale: Optional[str] = None
    ):
        self.telegram = telegram
        self.pipeline = pipeline
        self.records = records
        self.history_limit = history_limit or settings.history_limit
        self.default_locale = default_locale or settings.default_locale
        self._tasks: Set[asyncio.Task] = set()
        self._polling = False

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle_update(self, update: Update) -> Optional[PipelineResult]:
        message = update.message
        if message is None or message.from_user is None:
            return None

        locale = resolve_locale(message.from_user.language_code, self.default_locale)

        if message.text and message.text.startswith("/"):
            await self._handle_command(message, locale)
            return None
        if message.photo:
            return await self._handle_photo(message, locale)
        if message.document:
            return await self._handle_document(message, locale)
        if message.text:
            return await self.pipeline.process(TextSubmission(
                chat_id=message.chat.id,
                sender=self._sender(message),
                text=message.text,
                locale=locale
            ))
        return None

    def schedule(self, update: Update) -> asyncio.Task:
        """Handle an update in the background and keep a reference until it finishes."""
        task = asyncio.create_task(self._safe_handle(update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _safe_handle(self, update: Update):
        try:
            await self.handle_update(update)
        except Exception as e:
            logger.error(f"Unhandled error for update {update.update_id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _handle_command(self, message: Message, locale: str):
        command = message.text.split()[0][1:].split("@")[0].lower()
        if command == "start":
            await self._cmd_start(message, locale)
        elif command == "help":
            await self._reply(message.chat.id, get_message("help", locale))
        elif command == "history":
            await self._cmd_history(message, locale)
        else:
            logger.debug(f"Ignoring unknown command /{command}")

    async def _cmd_start(self, message: Message, locale: str):
        chat_id = message.chat.id
        try:
            await self._get_or_create_user(message)
        except StoreUnavailable:
            await self._reply(chat_id, get_message("db_error", locale))
            return

        keyboard = {
            "keyboard": [["/help", "/history"]],
            "resize_keyboard": True,
            "one_time_keyboard": False,
        }
        welcome = get_message("welcome", locale, name=message.from_user.first_name)
        await self._reply(chat_id, welcome, reply_markup=keyboard)

    async def _cmd_history(self, message: Message, locale: str):
        chat_id = message.chat.id
        try:
            user = await self._get_or_create_user(message)
        except StoreUnavailable:
            await self._reply(chat_id, get_message("db_error", locale))
            return

        await self._reply(chat_id, get_message("history_loading", locale))

        try:
            entries = await self.records.fetch_recent_history(user.id, limit=self.history_limit)
        except StoreUnavailable:
            await self._reply(chat_id, get_message("history_error", locale))
            return

        if not entries:
            await self._reply(chat_id, get_message("history_empty", locale))
            return

        parts = [get_message("history_header", locale, count=len(entries))]
        for entry in entries:
            date = entry.created_at.strftime("%d.%m.%Y %H:%M") if entry.created_at else ""
            if entry.input_text:
                content = get_message("history_text", locale, preview=entry.input_text[:50])
            else:
                content = get_message("history_file", locale)
            if entry.recommendation_text:
                recommendation = entry.recommendation_text[:100] + "..."
            else:
                recommendation = get_message("history_no_recommendation", locale)
            parts.append(
                f"<b>{html.escape(date)}</b>\n"
                f"- {html.escape(content)}\n"
                f"- {get_message('history_recommendation', locale)}: <i>{html.escape(recommendation)}</i>"
            )
        await self._reply(chat_id, "\n\n".join(parts), parse_mode="HTML")

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def _handle_photo(self, message: Message, locale: str) -> PipelineResult:
        # Telegram lists sizes smallest first
        photo = message.photo[-1]
        return await self.pipeline.process(MediaSubmission(
            chat_id=message.chat.id,
            sender=self._sender(message),
            file_id=photo.file_id,
            file_size=photo.file_size,
            kind="photo",
            caption=message.caption,
            locale=locale
        ))

    async def _handle_document(self, message: Message, locale: str) -> Optional[PipelineResult]:
        doc = message.document
        if not (doc.mime_type and doc.mime_type.startswith("image/")):
            await self._reply(message.chat.id, get_message("unsupported_document", locale))
            return None

        return await self.pipeline.process(MediaSubmission(
            chat_id=message.chat.id,
            sender=self._sender(message),
            file_id=doc.file_id,
            file_size=doc.file_size,
            kind="document",
            file_name=doc.file_name,
            mime_type=doc.mime_type,
            caption=message.caption,
            locale=locale
        ))

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def run_polling(self, timeout: Optional[int] = None, interval: Optional[float] = None):
        timeout = timeout if timeout is not None else settings.polling_timeout
        interval = interval if interval is not None else settings.polling_interval
        offset = None
        self._polling = True
        logger.info("Bot has been started, polling for updates...")

        while self._polling:
            try:
                updates = await self.telegram.get_updates(offset=offset, timeout=timeout)
            except TransportError as e:
                if e.error_code == 409:
                    logger.error(
                        "Another bot instance is already polling with this token. "
                        "Stop the other instance before starting a new one."
                    )
                    self._polling = False
                    break
                logger.error(f"Polling error: {e}")
                await asyncio.sleep(interval)
                continue
            except Exception as e:
                logger.error(f"Unexpected polling error: {e}", exc_info=True)
                await asyncio.sleep(interval)
                continue

            for update in updates:
                offset = update.update_id + 1
                self.schedule(update)

        logger.info("Polling stopped")

    async def stop(self):
        self._polling = False
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def register_commands(self, locale: Optional[str] = None):
        locale = locale or self.default_locale
        commands = [{"command": name, "description": get_message(f"cmd_{name}", locale)} for name in COMMANDS]
        try:
            await self.telegram.set_my_commands(commands)
        except TransportError as e:
            logger.warning(f"Could not register bot commands: {e}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _sender(message: Message) -> Sender:
        user = message.from_user
        return Sender(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            language_code=user.language_code
        )

    async def _get_or_create_user(self, message: Message):
        sender = self._sender(message)
        return await self.records.get_or_create_user(
            sender.id,
            first_name=sender.first_name,
            last_name=sender.last_name,
            username=sender.username,
            language_code=sender.language_code
        )

    async def _reply(self, chat_id: int, text: str, **kwargs):
        # History entries are separated by blank lines, so HTML tags stay within one chunk
        try:
            for chunk in split_message(text):
                await self.telegram.send_message(chat_id, chunk, **kwargs)
        except TransportError as e:
            logger.warning(f"Could not send message to chat {chat_id}: {e}")
