from __future__ import annotations

from collections import OrderedDict, deque
from typing import Deque, List

from core.types import ChatMessage


class RecentMessageWindow:
    """
    Per-sender sliding window of recent messages.

    Process-local and not durable: after a restart every window starts empty.
    Entries satisfy `now - timestamp_ms < window_ms`; each sender keeps at most
    `max_per_sender` entries. Senders are kept in order of their last message,
    so idle senders are evicted from the head whenever anyone posts.
    """

    def __init__(self, window_seconds: int = 60, max_per_sender: int = 50):
        self.window_ms = window_seconds * 1000
        self.max_per_sender = max_per_sender
        self._by_sender: "OrderedDict[int, Deque[ChatMessage]]" = OrderedDict()

    def _expired(self, message: ChatMessage, now_ms: int) -> bool:
        return now_ms - message.timestamp_ms >= self.window_ms

    def _prune(self, sender_id: int, now_ms: int) -> Deque[ChatMessage] | None:
        bucket = self._by_sender.get(sender_id)
        if bucket is None:
            return None
        while bucket and self._expired(bucket[0], now_ms):
            bucket.popleft()
        if not bucket:
            del self._by_sender[sender_id]
            return None
        return bucket

    def _evict_idle(self, now_ms: int) -> None:
        while self._by_sender:
            sender_id, bucket = next(iter(self._by_sender.items()))
            if bucket and not self._expired(bucket[-1], now_ms):
                break
            del self._by_sender[sender_id]

    def add(self, message: ChatMessage, now_ms: int | None = None) -> None:
        now = message.timestamp_ms if now_ms is None else now_ms
        self._evict_idle(now)
        bucket = self._prune(message.sender_id, now)
        if self._expired(message, now):
            return
        if bucket is None:
            bucket = deque(maxlen=self.max_per_sender)
            self._by_sender[message.sender_id] = bucket
        else:
            self._by_sender.move_to_end(message.sender_id)
        bucket.append(message)

    def recent(self, sender_id: int, now_ms: int) -> List[ChatMessage]:
        bucket = self._prune(sender_id, now_ms)
        return list(bucket) if bucket else []

    def __len__(self) -> int:
        return len(self._by_sender)
