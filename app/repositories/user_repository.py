from .base import BaseRepository
from app.models.user import TelegramUser
import app.models.analysis  # noqa: F401  registers Analysis for the relationship

class UserRepository(BaseRepository[TelegramUser]):
    def __init__(self):
        super().__init__(TelegramUser)

user_repository = UserRepository()
