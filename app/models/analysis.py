import enum
from sqlalchemy import Column, String, Integer, BigInteger, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from .base import BaseModel

class AnalysisStatus(str, enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"

class Analysis(BaseModel):
    """One submitted unit of input: either raw text or an uploaded file."""
    __tablename__ = "analyses"

    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    input_text = Column(Text)
    file_url = Column(Text)
    status = Column(String(20), nullable=False, default=AnalysisStatus.PROCESSING.value)
    raw_openai_response = Column(JSON)

    user = relationship("TelegramUser", back_populates="analyses")
    recommendations = relationship(
        "Recommendation",
        back_populates="analysis",
        order_by="Recommendation.id"
    )

class Recommendation(BaseModel):
    __tablename__ = "recommendations"

    analysis_id = Column(Integer, ForeignKey("analyses.id"), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    recommendation_text = Column(Text, nullable=False)

    analysis = relationship("Analysis", back_populates="recommendations")
