"""
Notification Hub

Relays session events to subscribed consumers (WebSocket clients).
A consumer is anything with an async send_json(message) method.
"""

import logging
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)


class NotificationHub:
    """Per-session topics with join/leave/disconnect and broadcast"""

    def __init__(self):
        self._topics: Dict[str, Set[Any]] = {}

    def join(self, session_id: str, consumer: Any):
        self._topics.setdefault(session_id, set()).add(consumer)
        logger.info(f"Consumer joined session: {session_id}")

    def leave(self, session_id: str, consumer: Any):
        consumers = self._topics.get(session_id)
        if not consumers:
            return
        consumers.discard(consumer)
        if not consumers:
            del self._topics[session_id]
        logger.info(f"Consumer left session: {session_id}")

    def disconnect(self, consumer: Any):
        """Remove a consumer from every topic it joined"""
        for session_id in list(self._topics):
            self.leave(session_id, consumer)

    def drop_topic(self, session_id: str):
        self._topics.pop(session_id, None)

    def subscriber_count(self, session_id: str) -> int:
        return len(self._topics.get(session_id, ()))

    @staticmethod
    def build_message(event: str, session_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return {"event": event, "session_id": session_id, "data": data}

    async def broadcast(self, session_id: str, event: str, data: Dict[str, Any]):
        """Send one event to every consumer of a session topic"""
        message = self.build_message(event, session_id, data)

        disconnected = []
        for consumer in list(self._topics.get(session_id, ())):
            try:
                await consumer.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send {event} to consumer: {e}")
                disconnected.append(consumer)

        # Clean up consumers that can no longer receive
        for consumer in disconnected:
            self.disconnect(consumer)

        logger.debug(f"Emitted {event} to session {session_id}")

    async def send_to(self, consumer: Any, event: str, session_id: str, data: Dict[str, Any]):
        """Send an event to a single consumer (e.g. an error for its own request)"""
        try:
            await consumer.send_json(self.build_message(event, session_id, data))
        except Exception as e:
            logger.warning(f"Failed to send {event} to consumer: {e}")
            self.disconnect(consumer)
