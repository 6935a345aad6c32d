from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session, selectinload
from .base import BaseRepository
from app.models.analysis import Analysis, AnalysisStatus, Recommendation
import app.models.user  # noqa: F401  registers TelegramUser for the relationship

class AnalysisRepository(BaseRepository[Analysis]):
    def __init__(self):
        super().__init__(Analysis)

    def create_pending(
        self,
        db: Session,
        user_id: int,
        input_text: Optional[str] = None,
        file_url: Optional[str] = None
    ) -> Analysis:
        return self.create(db, {
            "user_id": user_id,
            "input_text": input_text,
            "file_url": file_url,
            "status": AnalysisStatus.PROCESSING.value,
        })

    def mark_completed(self, db: Session, analysis_id: int, raw_response: Dict[str, Any]) -> bool:
        """Move a processing analysis to completed. Returns False if nothing was in processing."""
        updated = db.query(Analysis).filter(
            Analysis.id == analysis_id,
            Analysis.status == AnalysisStatus.PROCESSING.value
        ).update(
            {"status": AnalysisStatus.COMPLETED.value, "raw_openai_response": raw_response},
            synchronize_session=False
        )
        db.commit()
        return updated > 0

    def get_recent_for_user(self, db: Session, user_id: int, limit: int = 5) -> List[Analysis]:
        return db.query(Analysis).options(
            selectinload(Analysis.recommendations)
        ).filter(
            Analysis.user_id == user_id
        ).order_by(Analysis.created_at.desc(), Analysis.id.desc()).limit(limit).all()

class RecommendationRepository(BaseRepository[Recommendation]):
    def __init__(self):
        super().__init__(Recommendation)

    def get_by_analysis(self, db: Session, analysis_id: int) -> List[Recommendation]:
        return db.query(Recommendation).filter(
            Recommendation.analysis_id == analysis_id
        ).order_by(Recommendation.id).all()

analysis_repository = AnalysisRepository()
recommendation_repository = RecommendationRepository()
