"""
Request pipeline: turns one user submission into a stored analysis and a reply.

Order of operations for every submission::

    received -> validated -> (user resolved) -> [media uploaded] -> stored
             -> analyzed -> finalized -> replied

Any step before analysis may move the request to ``aborted``. The pending
record is created only after media is safely stored, so a failed upload never
leaves a ``processing`` row behind. Analysis cannot abort the pipeline: the
analysis service always yields text, which is stored and sent as is.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from app.core.config import settings
from app.core.exceptions import (
    StorageUnavailable,
    StoreUnavailable,
    TransportError,
    UploadFailed,
    ValidationFailure,
)
from app.services.openai_service import AnalysisResult, OpenAIService
from app.services.record_service import RecordService
from app.services.storage_service import StorageService
from app.services.telegram_service import TelegramService
from app.utils.messages import get_message, split_message
from app.utils.validators import check_media_size, check_text_length

logger = logging.getLogger("pipeline_service")

class PipelineState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    MEDIA_UPLOADED = "media_uploaded"
    STORED = "stored"
    ANALYZED = "analyzed"
    FINALIZED = "finalized"
    REPLIED = "replied"
    ABORTED = "aborted"

@dataclass
class Sender:
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None

@dataclass
class TextSubmission:
    chat_id: int
    sender: Sender
    text: str
    locale: Optional[str] = None

    kind = "text"

@dataclass
class MediaSubmission:
    chat_id: int
    sender: Sender
    file_id: str
    file_size: Optional[int] = None
    kind: str = "photo"  # photo | document
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    locale: Optional[str] = None

Submission = Union[TextSubmission, MediaSubmission]

@dataclass
class PipelineResult:
    state: PipelineState
    reply: Optional[str] = None
    analysis_id: Optional[int] = None
    degraded: bool = False

class RequestPipeline:
    def __init__(
        self,
        records: RecordService,
        storage: StorageService,
        analyzer: OpenAIService,
        transport: TelegramService,
        max_file_size: Optional[int] = None,
        max_text_length: Optional[int] = None
    ):
        self.records = records
        self.storage = storage
        self.analyzer = analyzer
        self.transport = transport
        self.max_file_size = max_file_size or settings.max_file_size
        self.max_text_length = max_text_length or settings.max_text_length

    async def process(self, submission: Submission) -> PipelineResult:
        locale = submission.locale or settings.default_locale
        sender = submission.sender
        self._trace(submission, PipelineState.RECEIVED)

        # 1. Validate before touching any collaborator
        try:
            self._validate(submission)
        except ValidationFailure as e:
            logger.info(f"Rejected {submission.kind} from user {sender.id}: {e}")
            if e.kind == "file_size":
                message = get_message("file_too_large", locale, limit_mb=e.limit // (1024 * 1024))
            else:
                message = get_message("text_too_long", locale, limit=e.limit)
            return await self._abort(submission, message)
        self._trace(submission, PipelineState.VALIDATED)

        # 2. Resolve the user
        try:
            user = await self.records.get_or_create_user(
                sender.id,
                first_name=sender.first_name,
                last_name=sender.last_name,
                username=sender.username,
                language_code=sender.language_code
            )
        except StoreUnavailable as e:
            logger.error(f"User lookup failed for {submission.kind} from user {sender.id}: {e}")
            return await self._abort(submission, get_message("db_error", locale))

        await self._acknowledge(submission, locale)

        # 3. Media goes to storage before any record references it
        media_url = None
        if isinstance(submission, MediaSubmission):
            try:
                media_url = await self._store_media(submission, user.id)
            except TransportError as e:
                logger.error(f"Download of {submission.kind} {submission.file_id} for user {user.id} failed: {e}")
                return await self._abort(submission, get_message("download_error", locale))
            except (StorageUnavailable, UploadFailed) as e:
                logger.error(f"Upload of {submission.kind} for user {user.id} failed: {e}")
                return await self._abort(submission, get_message("upload_error", locale))
            self._trace(submission, PipelineState.MEDIA_UPLOADED)

        # 4. Pending record
        try:
            if media_url is not None:
                analysis = await self.records.create_pending_request(user.id, media_url=media_url)
            else:
                analysis = await self.records.create_pending_request(user.id, text=submission.text)
        except StoreUnavailable as e:
            logger.error(f"Could not save {submission.kind} request for user {user.id}: {e}")
            return await self._abort(submission, get_message("processing_error", locale))
        self._trace(submission, PipelineState.STORED)

        # 5. Analysis never raises, failures come back as degraded text
        result = await self._analyze(submission, media_url, locale)
        if result.degraded:
            logger.warning(f"Analysis {analysis.id} for user {user.id} degraded to fallback text")
        state = self._trace(submission, PipelineState.ANALYZED)

        # 6. Finalize; a store failure here must not block the reply
        try:
            await self.records.finalize_request(analysis.id, user.id, result.text, result.as_raw_payload())
            state = self._trace(submission, PipelineState.FINALIZED)
        except StoreUnavailable as e:
            logger.error(f"Could not finalize analysis {analysis.id} for user {user.id}: {e}")

        # 7. Reply verbatim, in order, split to Telegram's message limit
        try:
            for chunk in split_message(result.text):
                await self.transport.send_message(submission.chat_id, chunk)
            state = self._trace(submission, PipelineState.REPLIED)
        except TransportError as e:
            logger.warning(f"Reply for analysis {analysis.id} to chat {submission.chat_id} not delivered: {e}")

        return PipelineResult(state=state, reply=result.text, analysis_id=analysis.id, degraded=result.degraded)

    def _validate(self, submission: Submission):
        if isinstance(submission, MediaSubmission):
            if not check_media_size(submission.file_size, self.max_file_size):
                raise ValidationFailure("file_size", self.max_file_size)
        elif not check_text_length(submission.text, self.max_text_length):
            raise ValidationFailure("text_length", self.max_text_length)

    async def _acknowledge(self, submission: Submission, locale: str):
        key = {"text": "text_received", "photo": "photo_received"}.get(submission.kind, "document_received")
        try:
            await self.transport.send_message(submission.chat_id, get_message(key, locale))
        except TransportError as e:
            logger.warning(f"Could not acknowledge {submission.kind} in chat {submission.chat_id}: {e}")

    async def _store_media(self, submission: MediaSubmission, user_id: int) -> str:
        data = await self.transport.download_file(submission.file_id)

        if submission.kind == "photo":
            object_name = self.storage.build_object_name(user_id)
            content_type = "image/jpeg"
        else:
            object_name = self.storage.build_object_name(user_id, submission.file_name)
            content_type = submission.mime_type or "application/octet-stream"

        return await self.storage.upload(data, object_name, content_type=content_type)

    async def _analyze(self, submission: Submission, media_url: Optional[str], locale: str) -> AnalysisResult:
        if media_url is not None:
            # Caption is the prompt; any other text on a media message is ignored
            prompt = submission.caption or get_message("default_image_prompt", locale)
            return await self.analyzer.analyze_image(media_url, prompt, locale=locale)
        return await self.analyzer.analyze_text(submission.text, locale=locale)

    async def _abort(self, submission: Submission, message: str) -> PipelineResult:
        self._trace(submission, PipelineState.ABORTED)
        try:
            await self.transport.send_message(submission.chat_id, message)
        except TransportError as e:
            logger.warning(f"Could not notify chat {submission.chat_id} about aborted request: {e}")
        return PipelineResult(state=PipelineState.ABORTED, reply=message)

    @staticmethod
    def _trace(submission: Submission, state: PipelineState) -> PipelineState:
        logger.debug(f"{submission.kind} from user {submission.sender.id} -> {state.value}")
        return state
