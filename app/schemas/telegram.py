from typing import List, Optional
from pydantic import Field
from .base import TelegramModel

# Subset of the Telegram Bot API objects the bot reads.

class TgUser(TelegramModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None

class TgChat(TelegramModel):
    id: int
    type: str = "private"

class PhotoSize(TelegramModel):
    file_id: str
    file_unique_id: Optional[str] = None
    width: int = 0
    height: int = 0
    file_size: Optional[int] = None

class Document(TelegramModel):
    file_id: str
    file_unique_id: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None

class Message(TelegramModel):
    message_id: int
    date: int = 0
    chat: TgChat
    from_user: Optional[TgUser] = Field(None, alias="from")
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: Optional[List[PhotoSize]] = None
    document: Optional[Document] = None

class Update(TelegramModel):
    update_id: int
    message: Optional[Message] = None
