from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Request

from ...domain.chat_models import MessageOut
from ...errors import InvalidRequestError, StoreError
from ...services.history import HistoryService


router = APIRouter(tags=["history"])


def _history_service(request: Request) -> HistoryService:
    return request.app.state.history


async def _history_or_error(request: Request, user_id: str) -> List[MessageOut]:
    try:
        return await _history_service(request).get_history(user_id)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StoreError:
        raise HTTPException(status_code=500, detail="Internal Server Error fetching history")


@router.get("/history", response_model=List[MessageOut], include_in_schema=False)
@router.get("/history/", response_model=List[MessageOut], include_in_schema=False)
async def history_missing_user(request: Request) -> List[MessageOut]:
    return await _history_or_error(request, "")


@router.get("/history/{user_id}", response_model=List[MessageOut])
async def get_history(user_id: str, request: Request) -> List[MessageOut]:
    return await _history_or_error(request, user_id)


@router.get("/chat-history/{user_id}", response_model=List[MessageOut])
async def get_chat_history(user_id: str, request: Request) -> List[MessageOut]:
    return await _history_or_error(request, user_id)
