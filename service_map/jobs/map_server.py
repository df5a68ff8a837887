"""HTTP entrypoint exposing the map session to a browser client."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from service_map.core.config import get_settings
from service_map.core.storage import init_store
from service_map.geo.clustering import (
    cluster_icon_type,
    cluster_source_options,
    expansion_zoom,
    representative_priority,
)
from service_map.geo.render import STRATEGIES, build_map
from service_map.geo.viewport import Viewport
from service_map.session import MapSession

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & session ----------
app = Flask(__name__)
_session: Optional[MapSession] = None


def get_session() -> MapSession:
    """Create the shared session on first use and start its refresh loop."""
    global _session
    if _session is None:
        settings = get_settings()
        _session = MapSession(settings, init_store(settings.storage_dir)).start()
    return _session


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    session = get_session()
    return (
        jsonify(
            {
                "status": "ok",
                "state": session.cache.state,
                "locations": len(session.records),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.get("/locations")
def list_locations() -> Any:
    session = get_session()
    snapshot = session.snapshot()
    if session.cache.error and not session.records:
        return jsonify({"error": session.cache.error}), 503
    return jsonify({"data": snapshot}), 200


@app.post("/filters")
def update_filters() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "JSON object body required"}), 400
    try:
        state = get_session().set_filter(payload)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"data": state.to_dict()}), 200


@app.post("/select")
def select_location() -> Any:
    """Select by ``{"id": ...}``, by clicked feature ``{"feature": {...}}``, or clear with ``{"id": null}``."""
    payload: Dict[str, Any] = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "JSON object body required"}), 400
    session = get_session()

    if "feature" in payload:
        properties = payload["feature"]
        if not isinstance(properties, dict):
            return jsonify({"error": "feature must be an object"}), 400
        record = session.select_feature(properties)
    elif "id" in payload:
        record_id = payload["id"]
        try:
            record = session.select_record(None if record_id is None else str(record_id))
        except KeyError:
            return jsonify({"error": f"unknown location id: {record_id}"}), 404
    else:
        return jsonify({"error": "id or feature is required"}), 400

    return (
        jsonify(
            {
                "data": {
                    "selectedRecord": record.to_dict() if record else None,
                    "view": session.view.to_dict(),
                    "commands": session.view.drain_commands(),
                }
            }
        ),
        200,
    )


@app.get("/markers")
def markers() -> Any:
    """Greedy marker set for the viewport given by ``lng``, ``lat``, ``zoom``, ``width``, ``height``."""
    session = get_session()
    try:
        viewport = Viewport(
            center=(float(request.args["lng"]), float(request.args["lat"])),
            zoom=float(request.args["zoom"]),
            width=int(request.args.get("width", 1024)),
            height=int(request.args.get("height", 768)),
        )
    except KeyError as exc:
        return jsonify({"error": f"missing query parameter: {exc.args[0]}"}), 400
    except ValueError:
        return jsonify({"error": "viewport parameters must be numeric"}), 400
    shown = session.markers(viewport)
    return jsonify({"data": {"ids": [r.id for r in shown], "count": len(shown)}}), 200


@app.get("/features")
def features() -> Any:
    return jsonify({"source": cluster_source_options(), "data": get_session().features()}), 200


@app.post("/clusters/expand")
def expand_cluster() -> Any:
    """Expansion zoom and representative icon for the cluster formed by ``{"ids": [...], "zoom": z}``."""
    payload: Dict[str, Any] = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "JSON object body required"}), 400
    ids = payload.get("ids")
    if not isinstance(ids, list) or not ids:
        return jsonify({"error": "ids must be a non-empty list"}), 400
    try:
        zoom = float(payload.get("zoom", 0))
    except (TypeError, ValueError):
        return jsonify({"error": "zoom must be numeric"}), 400

    session = get_session()
    members = [record for record in (session.find(str(i)) for i in ids) if record is not None]
    if not members:
        return jsonify({"error": "no known location ids"}), 404
    priority = representative_priority(members)
    return (
        jsonify(
            {
                "data": {
                    "zoom": expansion_zoom(members, zoom),
                    "priority": priority,
                    "iconType": cluster_icon_type(priority),
                }
            }
        ),
        200,
    )


@app.get("/map")
def render_map() -> Any:
    session = get_session()
    strategy = request.args.get("strategy", "cluster")
    if strategy not in STRATEGIES:
        return jsonify({"error": f"strategy must be one of {', '.join(STRATEGIES)}"}), 400
    fmap = build_map(session.visible_records, session.settings, session.colors.colors, strategy=strategy)
    return fmap.get_root().render(), 200, {"Content-Type": "text/html; charset=utf-8"}


def main() -> None:
    settings = get_settings()
    port = settings.server_port
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    get_session()
    try:
        app.run(host="0.0.0.0", port=port)
    finally:
        if _session is not None:
            _session.stop()


if __name__ == "__main__":
    main()
