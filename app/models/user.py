from sqlalchemy import Column, String, BigInteger
from sqlalchemy.orm import relationship
from .base import BaseModel

class TelegramUser(BaseModel):
    __tablename__ = "users"

    # Telegram account id, not generated by the database
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    first_name = Column(String(255))
    last_name = Column(String(255))
    username = Column(String(255), index=True)
    language_code = Column(String(16))

    analyses = relationship("Analysis", back_populates="user")
