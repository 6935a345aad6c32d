import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StoreUnavailable
from app.repositories.analysis_repository import analysis_repository, recommendation_repository
from app.repositories.user_repository import user_repository
from app.schemas.analysis import AnalysisResponse, HistoryEntry, UserResponse

logger = logging.getLogger("record_service")

class RecordService:
    """
    Persists users, analysis requests and recommendations.

    Each public method opens its own session from ``session_factory`` and runs
    the blocking SQLAlchemy work in the threadpool. Results are returned as
    pydantic schemas so nothing outside this class touches ORM objects.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def get_or_create_user(
        self,
        account_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
        language_code: Optional[str] = None
    ) -> UserResponse:
        fields = {
            "id": account_id,
            "first_name": first_name,
            "last_name": last_name,
            "username": username,
            "language_code": language_code,
        }
        return await run_in_threadpool(self._get_or_create_user, fields)

    def _get_or_create_user(self, fields: Dict[str, Any]) -> UserResponse:
        db = self.session_factory()
        try:
            user = user_repository.get_by_id(db, fields["id"])
            if user is None:
                logger.info(f"User {fields['id']} not found. Creating...")
                try:
                    user = user_repository.create(db, fields)
                except IntegrityError:
                    # A concurrent request inserted the same user first
                    db.rollback()
                    user = user_repository.get_by_id(db, fields["id"])
                    if user is None:
                        raise
            return UserResponse.model_validate(user)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching or creating user {fields['id']}: {e}", exc_info=True)
            raise StoreUnavailable(f"user lookup failed: {e}") from e
        finally:
            db.close()

    async def create_pending_request(
        self,
        user_id: int,
        text: Optional[str] = None,
        media_url: Optional[str] = None
    ) -> AnalysisResponse:
        if (text is None) == (media_url is None):
            raise ValueError("Exactly one of text or media_url must be given")
        return await run_in_threadpool(self._create_pending_request, user_id, text, media_url)

    def _create_pending_request(self, user_id: int, text: Optional[str], media_url: Optional[str]) -> AnalysisResponse:
        db = self.session_factory()
        try:
            analysis = analysis_repository.create_pending(db, user_id, input_text=text, file_url=media_url)
            return AnalysisResponse.model_validate(analysis)
        except SQLAlchemyError as e:
            logger.error(f"Error saving analysis request for user {user_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"could not save analysis request: {e}") from e
        finally:
            db.close()

    async def finalize_request(
        self,
        analysis_id: int,
        user_id: int,
        recommendation_text: str,
        raw_payload: Dict[str, Any]
    ) -> None:
        await run_in_threadpool(self._finalize_request, analysis_id, user_id, recommendation_text, raw_payload)

    def _finalize_request(
        self,
        analysis_id: int,
        user_id: int,
        recommendation_text: str,
        raw_payload: Dict[str, Any]
    ) -> None:
        db = self.session_factory()
        try:
            try:
                if recommendation_repository.get_by_analysis(db, analysis_id):
                    logger.warning(f"Analysis {analysis_id} already has a recommendation, not adding another")
                else:
                    recommendation_repository.create(db, {
                        "analysis_id": analysis_id,
                        "user_id": user_id,
                        "recommendation_text": recommendation_text,
                    })
            except SQLAlchemyError as e:
                # The user still gets the text, only the stored copy is missing
                db.rollback()
                logger.error(f"Error saving recommendation for analysis {analysis_id}: {e}", exc_info=True)

            try:
                completed = analysis_repository.mark_completed(db, analysis_id, raw_payload)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Error completing analysis {analysis_id}: {e}", exc_info=True)
                raise StoreUnavailable(f"could not complete analysis {analysis_id}: {e}") from e

            if not completed:
                logger.warning(f"Analysis {analysis_id} was not in processing state, status left unchanged")
        finally:
            db.close()

    async def fetch_recent_history(self, user_id: int, limit: int = 5) -> List[HistoryEntry]:
        return await run_in_threadpool(self._fetch_recent_history, user_id, limit)

    def _fetch_recent_history(self, user_id: int, limit: int) -> List[HistoryEntry]:
        db = self.session_factory()
        try:
            analyses = analysis_repository.get_recent_for_user(db, user_id, limit=limit)
            return [
                HistoryEntry(
                    analysis_id=analysis.id,
                    created_at=analysis.created_at,
                    input_text=analysis.input_text,
                    file_url=analysis.file_url,
                    status=analysis.status,
                    recommendation_text=(
                        analysis.recommendations[0].recommendation_text if analysis.recommendations else None
                    ),
                )
                for analysis in analyses
            ]
        except SQLAlchemyError as e:
            logger.error(f"Error fetching history for user {user_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"could not fetch history: {e}") from e
        finally:
            db.close()
