import json
import queue

from flask import Blueprint, Response, current_app, stream_with_context

from custody.services.notification_service import get_notifier

bp = Blueprint("events", __name__, url_prefix="/api/v1/events")


def format_event(message):
    return f"event: {message['event']}\ndata: {json.dumps(message['data'])}\n\n"


@bp.route("/<user_id>", methods=["GET"])
def stream(user_id):
    """Server-Sent Events stream of ``wallet-update`` for one user."""
    notifier = get_notifier()
    keepalive = current_app.config.get("EVENT_KEEPALIVE_SECONDS", 25)
    subscriber = notifier.subscribe(user_id)
    current_app.logger.debug("Event stream opened for user %s", user_id)

    def generate():
        try:
            yield ": connected\n\n"
            while True:
                try:
                    message = subscriber.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield format_event(message)
        finally:
            notifier.unsubscribe(user_id, subscriber)

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
