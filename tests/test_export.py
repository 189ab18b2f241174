"""
Export tests: JSON archive and Excel workbook downloads.
"""

import io
import json

import pytest
from openpyxl import load_workbook

API = "/api/v1"


def _stage(project_json, name):
    return next(s for s in project_json["stages"] if s["name"] == name)


@pytest.fixture()
def private_file(client, admin, project, auth_headers):
    """A Render file only ``admin`` may see."""
    stage_id = _stage(project, "Render")["id"]
    res = client.post(f"{API}/stages/{stage_id}/files", json={
        "fileName": "secret.png", "fileUrl": "/objects/uploads/secret.png", "allowedUserIds": [admin.id],
    }, headers=auth_headers(admin))
    return res.get_json()


class TestJsonExport:
    def test_attachment(self, client, member, project, auth_headers):
        res = client.post(f"{API}/company/export-data", json={"projectIds": [project["id"]]},
                          headers=auth_headers(member))
        assert res.status_code == 200
        assert res.mimetype == "application/json"
        assert res.headers["Content-Disposition"].startswith("attachment; filename=project-export-")
        payload = json.loads(res.data)
        assert len(payload) == 1
        entry = payload[0]
        assert entry["project"]["name"] == "Desk Lamp"
        assert entry["responsibleUser"]["email"] == "admin@acme.io"
        assert [p["article"] for p in entry["products"]] == ["L-100", "L-101"]
        assert [s["name"] for s in entry["stages"]] == [s["name"] for s in project["stages"]]

    def test_other_company_skipped(self, client, outsider, project, auth_headers):
        res = client.post(f"{API}/company/export-data", json={"projectIds": [project["id"]]},
                          headers=auth_headers(outsider))
        assert res.status_code == 200
        assert json.loads(res.data) == []

    def test_files_filtered_per_viewer(self, client, admin, member, project, private_file, auth_headers):
        def render_files(user):
            res = client.post(f"{API}/company/export-data", json={"projectIds": [project["id"]]},
                              headers=auth_headers(user))
            return _stage(json.loads(res.data)[0], "Render")["files"]

        assert [f["fileName"] for f in render_files(admin)] == ["secret.png"]
        assert render_files(member) == []

    @pytest.mark.parametrize("body", [{}, {"projectIds": []}, {"projectIds": "1"}])
    def test_ids_required(self, client, member, auth_headers, body):
        res = client.post(f"{API}/company/export-data", json=body, headers=auth_headers(member))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Project IDs are required"


class TestXlsxExport:
    def test_workbook(self, client, member, project, auth_headers):
        res = client.post(f"{API}/company/export-xlsx", json={"projectIds": [project["id"]]},
                          headers=auth_headers(member))
        assert res.status_code == 200
        assert res.headers["Content-Disposition"].endswith(".xlsx")

        wb = load_workbook(io.BytesIO(res.data))
        assert wb.sheetnames == ["Projects", "Stages"]
        projects = wb["Projects"]
        assert projects.cell(row=1, column=1).value == "Project"
        assert projects.cell(row=2, column=1).value == "Desk Lamp"
        assert projects.cell(row=2, column=5).value == len(project["stages"])

        stages = wb["Stages"]
        assert stages.max_row == len(project["stages"]) + 1
        assert stages.cell(row=2, column=3).value == project["stages"][0]["name"]

    def test_requires_company(self, client, user_factory, auth_headers):
        guest = user_factory("guest@example.com")
        res = client.post(f"{API}/company/export-xlsx", json={"projectIds": [1]}, headers=auth_headers(guest))
        assert res.status_code == 403
