"""In-process stand-in for the realtime relay.

Each peer holds a :class:`Channel` on a topic (one topic per room). Messages
published on a channel reach every *other* channel on the topic; presence
updates reach every channel, including the one that caused them. Delivery is
deferred through the scheduler and goes through a JSON round-trip, so peers
only ever see what would survive the wire.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional
import json
import logging

from .protocol import PresenceMessage, encode
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

Callback = Callable[[Dict[str, Any]], None]


class Channel:
    def __init__(self, bus: "InMemoryBus", topic: str) -> None:
        self.bus = bus
        self.topic = topic
        self.user_id: Optional[str] = None
        self.connected = True
        self._callbacks: List[Callback] = []

    def subscribe(self, callback: Callback) -> None:
        self._callbacks.append(callback)

    def publish(self, message: Dict[str, Any]) -> None:
        if not self.connected:
            logger.debug("Dropping publish on closed channel", extra={"topic": self.topic})
            return
        self.bus._broadcast(self.topic, message, sender=self)

    def track(self, user_id: str) -> None:
        self.user_id = user_id
        self.bus._presence_changed(self.topic)

    def close(self) -> None:
        """Leave the topic; the other peers see the presence drop."""
        if not self.connected:
            return
        self.connected = False
        self.bus._detach(self)

    def reconnect(self) -> None:
        if self.connected:
            return
        self.connected = True
        self.bus._attach(self)

    def _deliver(self, message: Dict[str, Any]) -> None:
        if not self.connected:
            return
        for callback in list(self._callbacks):
            callback(message)


class InMemoryBus:
    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler = scheduler
        self._topics: Dict[str, List[Channel]] = {}

    def channel(self, topic: str) -> Channel:
        ch = Channel(self, topic)
        self._attach(ch)
        return ch

    def present(self, topic: str) -> List[str]:
        return sorted(
            ch.user_id for ch in self._topics.get(topic, []) if ch.user_id is not None
        )

    def _attach(self, channel: Channel) -> None:
        self._topics.setdefault(channel.topic, []).append(channel)
        if channel.user_id is not None:
            self._presence_changed(channel.topic)

    def _detach(self, channel: Channel) -> None:
        members = self._topics.get(channel.topic, [])
        if channel in members:
            members.remove(channel)
        if not members:
            self._topics.pop(channel.topic, None)
        self._presence_changed(channel.topic)

    def _broadcast(self, topic: str, message: Dict[str, Any], sender: Optional[Channel]) -> None:
        wire = json.dumps(message)
        for ch in list(self._topics.get(topic, [])):
            if ch is sender:
                continue
            self.scheduler.call_later(0.0, ch._deliver, json.loads(wire))

    def _presence_changed(self, topic: str) -> None:
        message = encode(PresenceMessage(users=self.present(topic)))
        self._broadcast(topic, message, sender=None)
