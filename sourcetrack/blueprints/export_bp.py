"""
Export Blueprint: project data downloads.

Endpoints:
    POST /api/v1/company/export-data  JSON attachment of selected projects
    POST /api/v1/company/export-xlsx  Excel workbook of selected projects

Body for both: { "projectIds": [1, 2, ...] }
Projects of other companies are skipped silently.
"""

import json
import logging

from flask import Blueprint, Response, g, request

from sourcetrack.auth import require_auth, require_company
from sourcetrack.services.export_service import (
    build_json_export,
    build_xlsx_export,
    export_filename,
)

logger = logging.getLogger(__name__)

export_bp = Blueprint("export", __name__, url_prefix="/api/v1")


@export_bp.route("/company/export-data", methods=["POST"])
@require_auth
@require_company
def export_data():
    data = request.get_json(silent=True) or {}
    payload = build_json_export(data.get("projectIds"), g.current_user)
    return Response(
        json.dumps(payload, ensure_ascii=False, indent=2),
        mimetype="application/json",
        headers={"Content-Disposition": f"attachment; filename={export_filename('json')}"},
    )


@export_bp.route("/company/export-xlsx", methods=["POST"])
@require_auth
@require_company
def export_xlsx():
    data = request.get_json(silent=True) or {}
    buf = build_xlsx_export(data.get("projectIds"), g.current_user)
    return Response(
        buf.getvalue(),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={export_filename('xlsx')}"},
    )
