"""
Flask application exposing the plugin settings as a JSON API.

The API lets a settings front end (or ``curl``) inspect status, manage
channel mappings, approve or reject pairing requests and manage user grants.
It serves JSON only; rendering a settings page is left to the front end.
The bot token can be set through the API but is never returned.
"""
from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify, request

from ..config.models import AccessPolicy, PairingStatus
from ..config.store import ConfigStore
from ..errors import ConfigPersistenceError, PairingError
from ..plugin import build_status
from ..routing.access_gate import AccessGate
from ..routing.session_router import SessionRouter

# Suppress default HTTP request logging from Werkzeug to reduce noise.
logging.getLogger("werkzeug").setLevel(logging.WARNING)


def create_app(store: ConfigStore) -> Flask:
    """Build the settings API around ``store``."""
    app = Flask(__name__)
    router = SessionRouter(store)
    gate = AccessGate(store)

    @app.errorhandler(PairingError)
    def _pairing_error(e: PairingError) -> Any:
        return jsonify(error=str(e)), 404 if e.unknown else 409

    @app.errorhandler(ConfigPersistenceError)
    def _persistence_error(e: ConfigPersistenceError) -> Any:
        return jsonify(error=str(e)), 500

    @app.route("/api/status", methods=["GET"])
    def api_status() -> Any:
        return jsonify(build_status(store))

    @app.route("/api/token", methods=["PUT"])
    def api_set_token() -> Any:
        data = request.get_json(force=True)
        token = (data.get("token") or "").strip()
        if not token:
            return jsonify(error="Empty token"), 400
        with store.transaction() as config:
            config.token = token
        return jsonify(configured=True)

    @app.route("/api/access", methods=["PUT"])
    def api_set_access() -> Any:
        data = request.get_json(force=True)
        try:
            policy = gate.set_policy(data.get("policy", ""))
        except ValueError:
            return jsonify(error="policy must be one of all, paired, none"), 400
        return jsonify(access=policy.value)

    @app.route("/api/autocreate", methods=["PUT"])
    def api_set_autocreate() -> Any:
        data = request.get_json(force=True)
        enabled = bool(data.get("enabled"))
        router.set_auto_create(enabled)
        return jsonify(auto_create=enabled)

    # ------------------------------------------------------------------
    # Channel mappings
    # ------------------------------------------------------------------
    @app.route("/api/mappings", methods=["GET"])
    def api_mappings() -> Any:
        return jsonify(mappings={cid: m.to_dict() for cid, m in router.list_mappings().items()})

    @app.route("/api/mappings/<channel_id>", methods=["PUT"])
    def api_map(channel_id: str) -> Any:
        data = request.get_json(force=True)
        session = (data.get("session") or "").strip()
        if not session:
            return jsonify(error="session is required"), 400
        mapping = router.map_channel(
            channel_id,
            session,
            respond_to_all=bool(data.get("respondToAll")),
            allowed_users=data.get("allowedUsers") or None,
        )
        return jsonify(mapping=mapping.to_dict())

    @app.route("/api/mappings/<channel_id>", methods=["DELETE"])
    def api_unmap(channel_id: str) -> Any:
        if not router.unmap_channel(channel_id):
            return jsonify(error=f"Channel {channel_id} is not mapped"), 404
        return jsonify(success=True)

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------
    @app.route("/api/pairing", methods=["GET"])
    def api_pairing() -> Any:
        status = None if request.args.get("all") else PairingStatus.PENDING
        return jsonify(requests={code: r.to_dict() for code, r in gate.list_requests(status).items()})

    @app.route("/api/pairing/<code>/approve", methods=["POST"])
    def api_approve(code: str) -> Any:
        return jsonify(request=gate.approve(code).to_dict())

    @app.route("/api/pairing/<code>/reject", methods=["POST"])
    def api_reject(code: str) -> Any:
        return jsonify(request=gate.reject(code).to_dict())

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @app.route("/api/users", methods=["GET"])
    def api_users() -> Any:
        return jsonify(users={uid: g.to_dict() for uid, g in gate.list_users().items()})

    @app.route("/api/users/<user_id>/grant", methods=["POST"])
    def api_grant(user_id: str) -> Any:
        data = request.get_json(force=True)
        session = (data.get("session") or "").strip()
        if not session:
            return jsonify(error="session is required"), 400
        return jsonify(user=gate.grant(user_id, session).to_dict())

    @app.route("/api/users/<user_id>/revoke", methods=["POST"])
    def api_revoke(user_id: str) -> Any:
        data = request.get_json(silent=True) or {}
        return jsonify(revoked=gate.revoke(user_id, data.get("session")))

    @app.route("/api/users/<user_id>/block", methods=["POST"])
    def api_block(user_id: str) -> Any:
        data = request.get_json(silent=True) or {}
        return jsonify(user=gate.block(user_id, data.get("reason")).to_dict())

    @app.route("/api/users/<user_id>/unblock", methods=["POST"])
    def api_unblock(user_id: str) -> Any:
        return jsonify(unblocked=gate.unblock(user_id))

    return app


def run_app(store: ConfigStore, host: str = "127.0.0.1", port: int = 5000, debug: bool = False) -> None:
    """
    Run the Flask development server.

    Parameters
    ----------
    store: configuration store the API operates on.
    host, port: specify where the server should listen.
    debug: whether to enable Flask debugging (reloader disabled).
    """
    create_app(store).run(host=host, port=port, debug=debug, use_reloader=False)
