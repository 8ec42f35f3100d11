"""
HTTP API over the shared schedule store.

GET  /api/schedules  -> every teacher's schedule plus the last-updated stamp
POST /api/schedules  -> replace every schedule at once ({"schedules": {...}})
"""
import json
import traceback
from functools import wraps
from typing import Optional

from flask import Flask, Response, jsonify, request
from pydantic import ValidationError

from timetable_sync.constants import (
    API_ENDPOINT,
    CORS_HEADERS,
    KV_BINDING_NAME,
    KV_LAST_UPDATED_KEY,
    KV_SCHEDULES_KEY,
)
from timetable_sync.json.schedule_parser import dump_schedules, parse_schedule_map
from timetable_sync.sql_orm.kv.kv_entry_orm import KvStore
from timetable_sync.utils.logging_config import get_api_logger, log_store_operation
from timetable_sync.utils.time_utils import utc_timestamp

logger = get_api_logger()

NOT_CONFIGURED_ERROR = (
    f"{KV_BINDING_NAME} not configured. "
    "Set KV_DATABASE_URL (or POSTGRES_*) to bind the schedule store."
)


def api_error_handler(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except Exception as e:
            logger.error(f"An error occurred in endpoint '{f.__name__}': {e}", exc_info=True)
            return jsonify({
                "success": False,
                "error": str(e) or "Internal server error",
                "details": traceback.format_exc(),
            }), 500
    return decorated_function


def _missing_schedules(schedules) -> bool:
    # An empty map is a valid (cleared) roster; only absent/null/falsy scalars are rejected
    return schedules is None or (not schedules and not isinstance(schedules, dict))


def create_app(kv_store: Optional[KvStore] = None) -> Flask:
    """
    Build the schedules API.

    Args:
        kv_store: Bound KV store; None answers every schedules request with 503

    Returns:
        Flask: The configured application
    """
    app = Flask(__name__)

    @app.before_request
    def handle_preflight():
        if request.method == "OPTIONS":
            return Response(status=200)
        return None

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        response.headers.update(CORS_HEADERS)
        return response

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return Response("Method not allowed", status=405)

    @app.route(API_ENDPOINT, methods=["GET"])
    @api_error_handler
    def get_schedules():
        if kv_store is None:
            return jsonify({"success": False, "error": NOT_CONFIGURED_ERROR}), 503

        schedules = kv_store.get_json(KV_SCHEDULES_KEY)
        last_updated = kv_store.get_text(KV_LAST_UPDATED_KEY)

        log_store_operation(
            logger, "FETCH", "kv", success=True,
            details=f"teachers={len(schedules) if schedules else 0}, lastUpdated={last_updated}"
        )
        return jsonify({
            "success": True,
            "schedules": schedules or {},
            "lastUpdated": last_updated or None,
        })

    @app.route(API_ENDPOINT, methods=["POST"])
    @api_error_handler
    def save_schedules():
        if kv_store is None:
            return jsonify({"success": False, "error": NOT_CONFIGURED_ERROR}), 503

        body = request.get_json(silent=True)
        schedules = body.get("schedules") if isinstance(body, dict) else None
        if _missing_schedules(schedules):
            return jsonify({"success": False, "error": "Schedules data required"}), 400

        try:
            schedules = parse_schedule_map(schedules)
        except ValidationError as e:
            return jsonify({
                "success": False,
                "error": "Invalid schedules data",
                "details": json.dumps(e.errors(include_url=False, include_context=False), default=str),
            }), 400

        timestamp = utc_timestamp()
        schedules_string = dump_schedules(schedules)

        kv_store.put_many({
            KV_SCHEDULES_KEY: schedules_string,
            KV_LAST_UPDATED_KEY: timestamp,
        })

        log_store_operation(
            logger, "SAVE", "kv", success=True,
            details=f"teachers={len(schedules)}, timestamp={timestamp}, size={len(schedules_string)}"
        )
        return jsonify({
            "success": True,
            "lastUpdated": timestamp,
            "message": "Schedules saved successfully",
        })

    return app
