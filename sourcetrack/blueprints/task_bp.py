"""
Task Blueprint: stage tasks between company members.

Blueprint: task_bp
Prefix: /api/v1

Endpoints:
    POST   /stages/<sid>/tasks              -- Assign a task on a stage
    GET    /tasks                           -- Tasks assigned to the caller
    GET    /tasks/outgoing                  -- Tasks the caller assigned
    PATCH  /tasks/<tid>                     -- Update (assignee or assigner)
    PATCH  /tasks/<tid>/request-revision    -- Assignee asks for changes
    DELETE /tasks/<tid>                     -- Delete (assigner, not completed)
"""

from flask import Blueprint, g, jsonify, request

from sourcetrack.auth import require_auth, require_company
from sourcetrack.services import collaboration_service

task_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")


@task_bp.route("/stages/<int:stage_id>/tasks", methods=["POST"])
@require_auth
@require_company
def create_task(stage_id):
    data = request.get_json(silent=True) or {}
    task = collaboration_service.create_task(stage_id, data, g.current_user)
    return jsonify(task.to_dict()), 201


@task_bp.route("/tasks", methods=["GET"])
@require_auth
@require_company
def incoming_tasks():
    return jsonify(collaboration_service.list_incoming(g.current_user)), 200


@task_bp.route("/tasks/outgoing", methods=["GET"])
@require_auth
@require_company
def outgoing_tasks():
    return jsonify(collaboration_service.list_outgoing(g.current_user)), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PATCH"])
@require_auth
@require_company
def update_task(task_id):
    data = request.get_json(silent=True) or {}
    task = collaboration_service.update_task(task_id, data, g.current_user)
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/request-revision", methods=["PATCH"])
@require_auth
@require_company
def request_revision(task_id):
    data = request.get_json(silent=True) or {}
    task = collaboration_service.request_revision(task_id, data.get("revisionNote"), g.current_user)
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_auth
@require_company
def delete_task(task_id):
    collaboration_service.delete_task(task_id, g.current_user)
    return jsonify({"success": True}), 200
