from __future__ import annotations

import logging
import sys
from typing import Any, Callable, Dict, Optional, Tuple

from flask import Flask, Response, abort, current_app, jsonify, request
from flask_cors import CORS

from mta_proxy.config import AppConfig, load_config
from mta_proxy.errors import UpstreamUnavailable
from mta_proxy.fetchers.mta import fetch_arrivals
from mta_proxy.fetchers.weather import fetch_weather


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "OPTIONS"]
CORS_HEADERS = ["Content-Type"]

PIPELINES: Dict[str, Tuple[str, Callable[[AppConfig], Any]]] = {
    "mta": ("MTA", fetch_arrivals),
    "weather": ("Weather", fetch_weather),
}


def _json_error(payload: Dict[str, Any], status: int) -> Tuple[Response, int]:
    return jsonify(payload), status


def _run_pipeline(name: str) -> Any:
    label, pipeline = PIPELINES[name]
    config: AppConfig = current_app.config["PROXY_CONFIG"]
    try:
        payload = pipeline(config)
    except UpstreamUnavailable as exc:
        logger.error("%s upstream unavailable: HTTP %s from %s", label, exc.status_code, exc.url)
        return _json_error(
            {"error": f"{label} upstream request failed", "upstreamStatus": exc.status_code},
            502,
        )
    except Exception as exc:
        logger.error("%s proxy failed: %s", label, exc)
        return _json_error({"error": f"{label} proxy error", "detail": str(exc)}, 500)
    return jsonify(payload)


def _health() -> Any:
    return jsonify({"ok": True})


def create_app(config: Optional[AppConfig] = None) -> Flask:
    if config is None:
        config = load_config()

    app = Flask(__name__)
    app.config["PROXY_CONFIG"] = config

    @app.before_request
    def log_request() -> Optional[Response]:
        logger.info("HIT %s %s", request.method, request.path)
        if request.method == "OPTIONS":
            return Response(status=204)
        return None

    # Registered before CORS() so it runs after flask-cors and only fills gaps.
    @app.after_request
    def add_cors_defaults(response: Response) -> Response:
        response.headers.setdefault("Access-Control-Allow-Origin", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", ", ".join(CORS_METHODS))
        response.headers.setdefault("Access-Control-Allow-Headers", ", ".join(CORS_HEADERS))
        return response

    CORS(app, send_wildcard=True, methods=CORS_METHODS, allow_headers=CORS_HEADERS)

    @app.errorhandler(404)
    def not_found(_error: Exception) -> Any:
        return _json_error({"error": "Not Found"}, 404)

    @app.errorhandler(405)
    def method_not_allowed(_error: Exception) -> Any:
        return _json_error({"error": "Method Not Allowed"}, 405)

    @app.route("/health")
    def health() -> Any:
        return _health()

    @app.route("/mta")
    def mta() -> Any:
        return _run_pipeline("mta")

    @app.route("/weather")
    def weather() -> Any:
        return _run_pipeline("weather")

    @app.route("/api")
    def api_dispatch() -> Any:
        path = request.args.get("path", "").strip().lower()
        if path == "health":
            return _health()
        if path in PIPELINES:
            return _run_pipeline(path)
        abort(404)

    return app


def main() -> int:
    try:
        config = load_config()
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        return 1

    app = create_app(config)
    logger.info("Flask server starting on http://%s:%s", config.host, config.port)
    app.run(host=config.host, port=config.port, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
