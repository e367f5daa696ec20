"""
Stream registry — live-stream sessions and the active stream set.

State machine:
    LIVE → ENDED   (terminal)

Stream ids come from a counter starting at 1. An id is allocated only when
start() succeeds, and is never reused, including across a restart from a
persisted event log.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Set

from loguru import logger

from streampay.core.emitter import EventLog
from streampay.core.exceptions import (
    AlreadyEnded,
    CreatorInactive,
    Forbidden,
    InvalidInput,
    NotFound,
    NotRegistered,
)
from streampay.core.models import EventType
from streampay.core.time import parse_event_timestamp
from streampay.ledger.records import Stream
from streampay.registry.creators import CreatorRegistry


class StreamRegistry:
    """Tracks stream sessions per creator.

    Usage:
        streams = StreamRegistry(creators, events)
        stream = streams.start("alice", "Morning set", "")
        streams.end(stream.stream_id, "alice")
    """

    def __init__(self, creators: CreatorRegistry, events: EventLog) -> None:
        self.creators = creators
        self.events = events
        self._streams: Dict[int, Stream] = {}
        self._active: Set[int] = set()
        self._next_id = 1
        self._lock = threading.Lock()

    def start(self, creator: str, title: str, description: str = "") -> Stream:
        """Open a live stream for a registered, active creator.

        Raises:
            NotRegistered: creator is unknown.
            CreatorInactive: creator has been paused.
            InvalidInput: title is empty.
        """
        if not self.creators.is_registered(creator):
            raise NotRegistered("Only registered creators can stream", {"caller": creator})

        with self.creators.store.locked(creator):
            if not self.creators.is_active(creator):
                raise CreatorInactive("Creator is paused", {"caller": creator})
            if not isinstance(title, str) or not title.strip():
                raise InvalidInput("Stream title must be non-empty", {"caller": creator})

            with self._lock:
                stream_id = self._next_id
                envelope = self.events.emit(
                    EventType.STREAM_STARTED,
                    {
                        "stream_id": stream_id,
                        "creator": creator,
                        "title": title,
                        "description": description or "",
                    },
                    actor=creator,
                )
                stream = Stream(
                    stream_id=stream_id,
                    creator=creator,
                    title=title,
                    description=description or "",
                    start_time=parse_event_timestamp(envelope.timestamp),
                )
                self._streams[stream_id] = stream
                self._active.add(stream_id)
                self._next_id += 1

        logger.info("Stream started: id={} creator={}", stream.stream_id, creator)
        return self._snapshot(stream)

    def end(self, stream_id: int, caller: str) -> Stream:
        """End a live stream. Only its creator may end it, and only once."""
        with self._lock:
            stream = self._streams.get(stream_id)
            if stream is None:
                raise NotFound("Stream not found", {"stream_id": stream_id})
            if stream.creator != caller:
                raise Forbidden(
                    "Only the stream's creator can end it",
                    {"stream_id": stream_id, "caller": caller},
                )
            if not stream.is_live:
                raise AlreadyEnded("Stream already ended", {"stream_id": stream_id})

            envelope = self.events.emit(
                EventType.STREAM_ENDED,
                {"stream_id": stream_id, "creator": caller},
                actor=caller,
            )
            stream.is_live = False
            stream.end_time = parse_event_timestamp(envelope.timestamp)
            self._active.discard(stream_id)

        logger.info("Stream ended: id={} creator={}", stream_id, caller)
        return self._snapshot(stream)

    def restore(self, streams: Iterable[Stream], next_id: int) -> None:
        """Load streams read back from the event log. Emits nothing."""
        with self._lock:
            for stream in streams:
                self._streams[stream.stream_id] = stream
                if stream.is_live:
                    self._active.add(stream.stream_id)
            self._next_id = max(self._next_id, next_id)

    def list_active(self) -> List[int]:
        """Ids of live streams in ascending order, whatever order they started or ended in."""
        with self._lock:
            return sorted(self._active)

    def get_stream(self, stream_id: int) -> Stream:
        with self._lock:
            stream = self._streams.get(stream_id)
            if stream is None:
                raise NotFound("Stream not found", {"stream_id": stream_id})
            return self._snapshot(stream)

    def streams_of(self, creator: str) -> List[Stream]:
        with self._lock:
            return [self._snapshot(s) for s in self._streams.values() if s.creator == creator]

    def stream_count(self) -> int:
        """Number of stream ids allocated so far."""
        with self._lock:
            return self._next_id - 1

    @staticmethod
    def _snapshot(stream: Stream) -> Stream:
        return Stream(**vars(stream))
