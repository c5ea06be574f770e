"""Project blueprint.

Endpoints:
    POST /api/v1/projects           create (INFRASTRUCTURE starts in PROPOSAL)
    GET  /api/v1/projects?type=     list, optionally filtered by type
    GET  /api/v1/projects/<id>      detail
"""

import logging

from flask import Blueprint, jsonify, request

from itdesk.blueprints import register_error_handlers
from itdesk.middleware.roles import current_actor
from itdesk.services import project_service

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["POST"])
def create_project():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    project = project_service.create_project(data, actor=current_actor())
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = project_service.list_projects(request.args.get("type"))
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(project_service.get_project(project_id).to_dict())
