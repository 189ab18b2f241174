"""
Stage Blueprint: stage instances, history, files and comments.

Blueprint: stage_bp
Prefix: /api/v1

Endpoints:
  Stages:
    PATCH  /stages/<sid>                    -- Partial update (history on status/deadline)
    PATCH  /stages/<sid>/deadline           -- Deadline change with reason
    POST   /stages/<sid>/conditional        -- Enable/disable a conditional stage
    DELETE /stages/<sid>                    -- Delete (admin, creator, responsible)
    GET    /stages/<sid>/history            -- Status + deadline history

  Files:
    GET/POST /stages/<sid>/files            -- List visible / record an upload
    DELETE   /stages/<sid>/files/<fid>      -- Delete (uploader or admin)
    PATCH    /stage-files/<fid>             -- Replace the access list
    GET      /objects/<path>                -- Download authorization check

  Comments:
    POST   /stages/<sid>/comments           -- Comment with @mentions
"""

import logging

from flask import Blueprint, g, jsonify, request

from sourcetrack.auth import current_company_id, require_auth, require_company
from sourcetrack.services import collaboration_service, file_service, history_service, stage_service

logger = logging.getLogger(__name__)

stage_bp = Blueprint("stages", __name__, url_prefix="/api/v1")


# ── Stages ───────────────────────────────────────────────────────────────────

@stage_bp.route("/stages/<int:stage_id>", methods=["PATCH"])
@require_auth
@require_company
def patch_stage(stage_id):
    data = request.get_json(silent=True) or {}
    stage = stage_service.patch_stage(stage_id, current_company_id(), data, g.current_user.id)
    return jsonify(stage.to_dict()), 200


@stage_bp.route("/stages/<int:stage_id>/deadline", methods=["PATCH"])
@require_auth
@require_company
def patch_deadline(stage_id):
    data = request.get_json(silent=True) or {}
    stage = stage_service.patch_deadline(stage_id, current_company_id(), data, g.current_user.id)
    return jsonify(stage.to_dict()), 200


@stage_bp.route("/stages/<int:stage_id>/conditional", methods=["POST"])
@require_auth
@require_company
def toggle_conditional(stage_id):
    data = request.get_json(silent=True) or {}
    stage = stage_service.toggle_conditional(
        stage_id, current_company_id(), data.get("enabled"), g.current_user.id
    )
    return jsonify(stage.to_dict()), 200


@stage_bp.route("/stages/<int:stage_id>", methods=["DELETE"])
@require_auth
@require_company
def delete_stage(stage_id):
    stage_service.delete_stage(stage_id, g.current_user)
    return jsonify({"success": True}), 200


@stage_bp.route("/stages/<int:stage_id>/history", methods=["GET"])
@require_auth
@require_company
def stage_history(stage_id):
    stage = stage_service.get_stage(stage_id, current_company_id())
    return jsonify(history_service.get_stage_history(stage.id)), 200


# ── Files ────────────────────────────────────────────────────────────────────

@stage_bp.route("/stages/<int:stage_id>/files", methods=["GET"])
@require_auth
@require_company
def list_files(stage_id):
    files = file_service.list_for_viewer(
        stage_id, g.current_user, request.args.get("checklistItemKey")
    )
    return jsonify([f.to_dict() for f in files]), 200


@stage_bp.route("/stages/<int:stage_id>/files", methods=["POST"])
@require_auth
@require_company
def upload_file(stage_id):
    data = request.get_json(silent=True) or {}
    stage_file = file_service.record_upload(stage_id, data, g.current_user)
    return jsonify(stage_file.to_dict()), 201


@stage_bp.route("/stages/<int:stage_id>/files/<int:file_id>", methods=["DELETE"])
@require_auth
@require_company
def delete_file(stage_id, file_id):
    file_service.delete_file(stage_id, file_id, g.current_user)
    return jsonify({"message": "File deleted successfully"}), 200


@stage_bp.route("/stage-files/<int:file_id>", methods=["PATCH"])
@require_auth
@require_company
def update_file_access(file_id):
    data = request.get_json(silent=True) or {}
    stage_file = file_service.update_access(file_id, data.get("allowedUserIds"), g.current_user)
    return jsonify(stage_file.to_dict()), 200


@stage_bp.route("/objects/<path:object_path>", methods=["GET"])
@require_auth
@require_company
def object_access(object_path):
    """Authorize a private object; the storage proxy serves the bytes."""
    stage_file = file_service.check_object_access(f"/objects/{object_path}", g.current_user)
    return jsonify({
        "allowed": True,
        "fileId": stage_file.id if stage_file else None,
    }), 200


# ── Comments ─────────────────────────────────────────────────────────────────

@stage_bp.route("/stages/<int:stage_id>/comments", methods=["POST"])
@require_auth
@require_company
def add_comment(stage_id):
    data = request.get_json(silent=True) or {}
    comment = collaboration_service.add_comment(stage_id, data.get("content"), g.current_user)
    return jsonify(comment.to_dict()), 201
