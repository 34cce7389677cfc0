import logging
import queue
import threading
from collections import defaultdict

from flask import current_app

logger = logging.getLogger(__name__)

WALLET_UPDATE = "wallet-update"


def topic_for(user_id):
    return f"user-{user_id}"


class WalletNotifier:
    """Per-user fan-out of ``wallet-update`` invalidation events.

    The event carries only the user id; subscribers re-fetch on receipt.
    Emitting never blocks and never fails the caller: a subscriber whose
    queue is full simply misses the event.
    """

    def __init__(self, queue_size=32):
        self.queue_size = queue_size
        self._topics = defaultdict(list)
        self._lock = threading.Lock()

    def init_app(self, app):
        self.queue_size = app.config.get("EVENT_QUEUE_SIZE", self.queue_size)
        app.extensions["wallet_notifier"] = self

    def subscribe(self, user_id):
        subscriber = queue.Queue(maxsize=self.queue_size)
        with self._lock:
            self._topics[topic_for(user_id)].append(subscriber)
        return subscriber

    def unsubscribe(self, user_id, subscriber):
        topic = topic_for(user_id)
        with self._lock:
            subscribers = self._topics.get(topic, [])
            if subscriber in subscribers:
                subscribers.remove(subscriber)
            if not subscribers:
                self._topics.pop(topic, None)

    def subscriber_count(self, user_id):
        with self._lock:
            return len(self._topics.get(topic_for(user_id), []))

    def emit(self, user_id, event, payload):
        with self._lock:
            subscribers = list(self._topics.get(topic_for(user_id), []))
        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber.put_nowait({"event": event, "data": payload})
                delivered += 1
            except queue.Full:
                logger.warning("Dropping %s for %s: subscriber queue full", event, topic_for(user_id))
        return delivered

    def emit_wallet_update(self, user_id):
        return self.emit(user_id, WALLET_UPDATE, {"userId": user_id})


def get_notifier():
    return current_app.extensions["wallet_notifier"]
