from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required

from services.identity import ResolvedIdentity
from services.sync_service import SyncService


sync_bp = Blueprint("sync", __name__)


def _service() -> SyncService:
    return current_app.extensions["shopsync"]


def _current_identity() -> ResolvedIdentity:
    claims = get_jwt()
    return _service().resolve(get_jwt_identity(), bool(claims.get("isSubUser")))


@sync_bp.route("/add", methods=["POST"])
@jwt_required()
def add_to_sync_queue():
    who = _current_identity()
    payload = request.get_json(silent=True) or {}
    item = _service().enqueue(who, payload)
    return jsonify({"message": "Item added to sync queue", "syncItem": item.to_dict()}), 201


@sync_bp.route("/bulk", methods=["POST"])
@jwt_required()
def bulk_sync():
    who = _current_identity()
    payload = request.get_json(silent=True) or {}
    count = _service().enqueue_batch(who, payload)
    return jsonify({"message": "Items added to sync queue", "count": count}), 201


@sync_bp.route("/pending", methods=["GET"])
@jwt_required()
def get_pending_syncs():
    who = _current_identity()
    pending = _service().list_pending(who)
    return jsonify(
        {
            "message": "Pending syncs retrieved",
            "count": len(pending),
            "syncs": [item.to_dict() for item in pending],
        }
    )


@sync_bp.route("/process", methods=["POST"])
@jwt_required()
def process_sync_queue():
    who = _current_identity()
    summary = _service().dispatch(who)
    message = "Sync queue processed" if summary.processed else "No pending syncs"
    return jsonify({"message": message, **summary.to_dict()})


@sync_bp.route("/clear", methods=["DELETE"])
@jwt_required()
def clear_sync_queue():
    who = _current_identity()
    deleted = _service().clear_queue(who)
    return jsonify({"message": "Sync queue cleared", "deletedCount": deleted})


__all__ = ["sync_bp"]
