import logging
from typing import Any

from flask import Blueprint, Response, current_app, jsonify, request
from pydantic import ValidationError

from dispatch_shared.messages import NotificationRequest

from dispatch_core.dispatcher import Dispatcher
from dispatch_core.outcomes import Accepted, RateLimited

logger = logging.getLogger(__name__)

bp = Blueprint("dispatch", __name__)


def _error(message: str, status: int, **extra: Any) -> tuple[Response, int]:
    body: dict[str, Any] = {"error": message}
    body.update(extra)
    return jsonify(body), status


def _dispatcher() -> Dispatcher:
    return current_app.extensions["dispatcher"]


@bp.post("/notifications")
def post_notification() -> tuple[Response, int]:
    body = request.get_json(silent=True)
    if body is None:
        return _error("Request body must be valid JSON", 400)
    if not isinstance(body, dict):
        return _error("Request body must be a JSON object", 400)

    # The service stamps acceptance time itself.
    body.pop("created_at", None)

    try:
        notification = NotificationRequest.model_validate(body)
    except ValidationError as exc:
        return _error(
            "Request validation failed",
            400,
            details=exc.errors(include_url=False, include_context=False),
        )

    outcome = _dispatcher().submit(notification)

    if isinstance(outcome, Accepted):
        return jsonify({
            "status": "accepted",
            "idempotency_key": notification.idempotency_key,
            "duplicate": outcome.duplicate,
            "state": str(outcome.state),
        }), 202

    if isinstance(outcome, RateLimited):
        response = jsonify({
            "status": "rate_limited",
            "idempotency_key": notification.idempotency_key,
            "retry_after_ms": outcome.retry_after_ms,
        })
        # Retry-After is whole seconds; round up.
        response.headers["Retry-After"] = str(-(-outcome.retry_after_ms // 1000))
        return response, 429

    return _error(outcome.reason, 400)


@bp.get("/notifications/<path:idempotency_key>")
def get_notification(idempotency_key: str) -> tuple[Response, int]:
    record = _dispatcher().lookup(idempotency_key)
    if record is None:
        return _error("Unknown idempotency key", 404)
    return jsonify(record.to_dict()), 200


@bp.get("/health")
def health() -> tuple[Response, int]:
    return jsonify({"status": "ok"}), 200
