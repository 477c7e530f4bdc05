"""HTTP surface: manual poll trigger and polling status."""

from __future__ import annotations

import logging

from flask import Flask, jsonify

from .runner import PollLoop

logger = logging.getLogger(__name__)


def create_app(
    poll_loop: PollLoop,
    polling_enabled: bool = True,
    interval_seconds: int = 120,
) -> Flask:
    app = Flask(__name__)

    @app.route("/force-poll", methods=["GET", "POST"])
    def force_poll():
        logger.info("Manual polling triggered")
        summary = poll_loop.run_cycle(trigger="manual")
        body = summary.to_dict()
        if summary.status == "busy":
            return jsonify(body), 409
        if summary.status == "stopped":
            return jsonify(body), 503
        if summary.status == "error":
            body["message"] = "Polling failed"
            return jsonify(body), 502
        body["stored_listings"] = [
            {
                "listing_id": snapshot.listing_id,
                "status": snapshot.status,
                "price": snapshot.price,
                "modified_at": snapshot.modified_at.isoformat(),
            }
            for snapshot in poll_loop.store.snapshots()
        ]
        return jsonify(body)

    @app.route("/polling-status")
    def polling_status():
        status = poll_loop.status()
        status["polling_enabled"] = polling_enabled
        status["interval_seconds"] = interval_seconds
        return jsonify(status)

    return app
