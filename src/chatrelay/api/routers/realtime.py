from __future__ import annotations

from fastapi import APIRouter, WebSocket

from ..gateway import EventGateway


router = APIRouter()


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket) -> None:
    gateway: EventGateway = websocket.app.state.gateway
    await gateway.serve(websocket)
