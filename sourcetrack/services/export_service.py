"""
Project export: JSON archive and an Excel status workbook.

Only projects of the viewer's company are exported; other ids are
skipped silently. Files are filtered per viewer like every other read.
"""

import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from sourcetrack.core.exceptions import ValidationError
from sourcetrack.models.project import Project
from sourcetrack.services.file_service import filter_for_viewer

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
STATUS_FILLS = {
    "completed": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "in_progress": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "skip": PatternFill(start_color="BDC3C7", end_color="BDC3C7", fill_type="solid"),
}


def _iso(value):
    return value.isoformat() if value else None


def _person(user):
    if user is None:
        return None
    return {"firstName": user.first_name, "lastName": user.last_name, "email": user.email}


def _projects_for(project_ids, viewer):
    if not isinstance(project_ids, list) or not project_ids:
        raise ValidationError("Project IDs are required")
    ids = [pid for pid in project_ids if isinstance(pid, int) and not isinstance(pid, bool)]
    if not ids:
        return []
    projects = (
        Project.query_for_company(viewer.company_id)
        .filter(Project.id.in_(ids))
        .all()
    )
    by_id = {p.id: p for p in projects}
    return [by_id[pid] for pid in dict.fromkeys(ids) if pid in by_id]


def export_filename(ext: str) -> str:
    return f"project-export-{datetime.now(timezone.utc).date().isoformat()}.{ext}"


# ── JSON ──────────────────────────────────────────────────────────────
def _stage_export(stage, viewer_id):
    return {
        "id": stage.id,
        "name": stage.name,
        "position": stage.position,
        "status": stage.status,
        "startDate": _iso(stage.start_date),
        "deadline": _iso(stage.deadline),
        "checklistData": stage.checklist_data,
        "customFieldsData": stage.custom_fields_data,
        "files": [
            {
                "id": f.id,
                "fileName": f.file_name,
                "fileUrl": f.file_url,
                "fileType": f.file_type,
                "uploadedAt": _iso(f.created_at),
            }
            for f in filter_for_viewer(stage.files, viewer_id)
        ],
        "comments": [
            {"id": c.id, "content": c.content, "createdAt": _iso(c.created_at), "user": _person(c.user)}
            for c in stage.comments
        ],
        "tasks": [
            {
                "id": t.id,
                "description": t.description,
                "completed": t.completed,
                "status": t.status,
                "assignee": _person(t.assigned_to),
            }
            for t in stage.tasks
        ],
    }


def build_json_export(project_ids, viewer) -> list[dict]:
    result = []
    for project in _projects_for(project_ids, viewer):
        responsible = project.responsible_user
        result.append({
            "project": {
                "id": project.id,
                "name": project.name,
                "description": project.description,
                "deadline": _iso(project.deadline),
                "createdAt": _iso(project.created_at),
                "updatedAt": _iso(project.updated_at),
            },
            "responsibleUser": dict(_person(responsible), id=responsible.id) if responsible else None,
            "factory": {"id": project.factory.id, "name": project.factory.name} if project.factory else None,
            "productType": (
                {"id": project.product_type.id, "name": project.product_type.name}
                if project.product_type else None
            ),
            "products": [
                {"id": p.id, "article": p.article, "name": p.name, "barcode": p.barcode}
                for p in project.products
            ],
            "stages": [_stage_export(s, viewer.id) for s in project.stages],
        })
    logger.info("JSON export company=%s projects=%d", viewer.company_id, len(result))
    return result


# ── Excel ─────────────────────────────────────────────────────────────
def _write_header(ws, headers):
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center")
        ws.column_dimensions[get_column_letter(col)].width = max(14, len(header) + 4)


def build_xlsx_export(project_ids, viewer) -> io.BytesIO:
    """Workbook with a project summary sheet and a per-stage status sheet."""
    projects = _projects_for(project_ids, viewer)
    wb = Workbook()

    ws = wb.active
    ws.title = "Projects"
    _write_header(ws, ["Project", "Responsible", "Factory", "Deadline", "Stages", "Completed"])
    for row, project in enumerate(projects, 2):
        statuses = [s.status for s in project.stages]
        ws.cell(row=row, column=1, value=project.name)
        ws.cell(row=row, column=2, value=project.responsible_user.display_name if project.responsible_user else "")
        ws.cell(row=row, column=3, value=project.factory.name if project.factory else "")
        ws.cell(row=row, column=4, value=_iso(project.deadline) or "")
        ws.cell(row=row, column=5, value=len(statuses))
        ws.cell(row=row, column=6, value=statuses.count("completed"))
    ws.column_dimensions["A"].width = 40

    ws = wb.create_sheet("Stages")
    _write_header(ws, ["Project", "#", "Stage", "Status", "Start", "Deadline"])
    row = 2
    for project in projects:
        for stage in project.stages:
            ws.cell(row=row, column=1, value=project.name)
            ws.cell(row=row, column=2, value=stage.position)
            ws.cell(row=row, column=3, value=stage.name)
            status_cell = ws.cell(row=row, column=4, value=stage.status)
            if stage.status in STATUS_FILLS:
                status_cell.fill = STATUS_FILLS[stage.status]
            ws.cell(row=row, column=5, value=_iso(stage.start_date) or "")
            ws.cell(row=row, column=6, value=_iso(stage.deadline) or "")
            row += 1
    ws.column_dimensions["A"].width = 40
    ws.column_dimensions["C"].width = 30

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("XLSX export company=%s projects=%d", viewer.company_id, len(projects))
    return buf
