from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict
import json
import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect

from ..services.session_coordinator import SessionCoordinator


logger = logging.getLogger("chatrelay.gateway")

SEND_MESSAGE = "send_message"
RECEIVE_MESSAGE = "receive_message"

Sender = Callable[[Dict[str, Any]], Awaitable[None]]


class ConnectionRegistry:
    """Maps connection ids to the one capability the relay needs: sending."""

    def __init__(self) -> None:
        self._senders: Dict[str, Sender] = {}

    def register(self, sender: Sender) -> str:
        connection_id = uuid.uuid4().hex
        self._senders[connection_id] = sender
        return connection_id

    def release(self, connection_id: str) -> None:
        self._senders.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._senders

    def __len__(self) -> int:
        return len(self._senders)

    async def deliver(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        """Send one event to one connection; a departed connection is a no-op."""
        sender = self._senders.get(connection_id)
        if sender is None:
            logger.info("reply_dropped_disconnected", extra={"connection": connection_id, "event": event})
            return False
        try:
            await sender({"event": event, "data": data})
        except Exception as exc:
            logger.info("reply_delivery_failed", extra={"connection": connection_id, "err": str(exc)})
            self.release(connection_id)
            return False
        return True


class EventGateway:
    def __init__(self, coordinator: SessionCoordinator, registry: ConnectionRegistry | None = None) -> None:
        self.coordinator = coordinator
        self.registry = registry or ConnectionRegistry()

    def _decode(self, connection_id: str, raw: str) -> tuple[str, Any] | None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.info("frame_dropped_undecodable", extra={"connection": connection_id})
            return None
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            logger.info("frame_dropped_no_event", extra={"connection": connection_id})
            return None
        return frame["event"], frame.get("data")

    async def dispatch(self, connection_id: str, event: str, data: Any) -> None:
        if event != SEND_MESSAGE:
            logger.debug("event_ignored", extra={"connection": connection_id, "event": event})
            return
        outcome = await self.coordinator.handle_inbound_message(connection_id, data)
        if outcome is None:
            return
        await self.registry.deliver(connection_id, RECEIVE_MESSAGE, outcome.to_wire().model_dump(by_alias=True))

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        connection_id = self.registry.register(websocket.send_json)
        logger.info("socket_connected", extra={"connection": connection_id})
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None and message.get("bytes") is not None:
                    raw = message["bytes"].decode("utf-8", errors="replace")
                decoded = self._decode(connection_id, raw or "")
                if decoded is None:
                    continue
                # one event at a time per connection, in arrival order
                await self.dispatch(connection_id, *decoded)
        except WebSocketDisconnect:
            pass
        finally:
            self.registry.release(connection_id)
            logger.info("socket_disconnected", extra={"connection": connection_id})
