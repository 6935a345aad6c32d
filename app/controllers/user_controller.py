from fastapi import APIRouter, HTTPException, Query, Request
from app.core.exceptions import StoreUnavailable
from app.utils.response import success_response

router = APIRouter(prefix="/users", tags=["users"])

@router.get("/{user_id}/history")
async def get_user_history(request: Request, user_id: int, limit: int = Query(5, ge=1, le=50)):
    records = request.app.state.record_service
    try:
        history = await records.fetch_recent_history(user_id, limit=limit)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return success_response(data=history, message=f"{len(history)} analyses")
