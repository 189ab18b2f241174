"""
Access-Scoped File Index tests.

Covers:
  - Extension rules by stage kind (render images, 3D model STEP/STP/STL)
  - Access-controlled kinds require an allow-list on upload and update
  - Uploader always on their own list; quotation always lists the responsible user
  - Viewer filtering on list endpoints and project detail
  - Access edits (uploader/admin; quotation → responsible user only)
  - Delete permissions
  - Object download authorization
"""

import pytest

from sourcetrack.models import db
from sourcetrack.models.stage import StageFile
from sourcetrack.services.file_service import ACCESS_LIST_REQUIRED

API = "/api/v1"


def _stage(project_json, name):
    return next(s for s in project_json["stages"] if s["name"] == name)


def _upload(client, headers, stage_id, file_name="doc.pdf", **extra):
    payload = {"fileName": file_name, "fileUrl": f"/objects/uploads/{file_name}", **extra}
    return client.post(f"{API}/stages/{stage_id}/files", json=payload, headers=headers)


@pytest.fixture()
def viewer(company, user_factory):
    """A third member who is on no allow-list unless added."""
    return user_factory("viewer@acme.io", company, first_name="Vera")


@pytest.fixture()
def quotation_project(client, admin, member, auth_headers):
    """Project with a Quotation stage; ``admin`` is the responsible user."""
    client.post(f"{API}/stage-templates", json={"name": "Quotation"}, headers=auth_headers(admin))
    res = client.post(f"{API}/projects", json={"name": "Heater", "responsibleUserId": admin.id},
                      headers=auth_headers(member))
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Upload rules
# ═════════════════════════════════════════════════════════════════════════════


class TestUploadRules:
    @pytest.mark.parametrize("name", ["front.PNG", "side.jpeg", "top.webp"])
    def test_render_accepts_images(self, client, member, project, auth_headers, name):
        res = _upload(client, auth_headers(member), _stage(project, "Render")["id"], name)
        assert res.status_code == 201

    @pytest.mark.parametrize("name", ["spec.pdf", "noextension"])
    def test_render_rejects_non_images(self, client, member, project, auth_headers, name):
        res = _upload(client, auth_headers(member), _stage(project, "Render")["id"], name)
        assert res.status_code == 400
        assert res.get_json()["error"].startswith("Render stage requires image files")

    def test_model_3d_extensions(self, client, member, project, auth_headers):
        stage_id = _stage(project, "3D Model")["id"]
        assert _upload(client, auth_headers(member), stage_id, "body.step").status_code == 201
        assert _upload(client, auth_headers(member), stage_id, "body.STL").status_code == 201
        bad = _upload(client, auth_headers(member), stage_id, "body.obj")
        assert bad.status_code == 400
        assert bad.get_json()["error"] == "3D Model stage requires STEP/STP/STL files"

    def test_generic_stage_accepts_anything(self, client, member, project, auth_headers):
        res = _upload(client, auth_headers(member), _stage(project, "Tooling")["id"], "mold.zip")
        assert res.status_code == 201
        assert res.get_json()["allowedUserIds"] is None

    def test_required_fields(self, client, member, project, auth_headers):
        res = client.post(f"{API}/stages/{_stage(project, 'Tooling')['id']}/files",
                          json={"fileName": ""}, headers=auth_headers(member))
        assert res.status_code == 400
        assert set(res.get_json()["details"]) == {"fileName", "fileUrl"}

    def test_factory_proposal_requires_access_list(self, client, member, project, auth_headers):
        stage_id = _stage(project, "Factory Proposal")["id"]
        for extra in ({}, {"allowedUserIds": []}):
            res = _upload(client, auth_headers(member), stage_id, **extra)
            assert res.status_code == 400
            assert res.get_json()["error"] == ACCESS_LIST_REQUIRED

    def test_uploader_added_to_list(self, client, admin, member, project, auth_headers):
        stage_id = _stage(project, "Factory Proposal")["id"]
        res = _upload(client, auth_headers(member), stage_id, allowedUserIds=[admin.id])
        assert res.status_code == 201
        assert sorted(res.get_json()["allowedUserIds"]) == sorted([admin.id, member.id])

    def test_quotation_always_lists_responsible(self, client, admin, member, viewer,
                                                quotation_project, auth_headers):
        stage = _stage(quotation_project, "Quotation")
        assert stage["kind"] == "quotation"
        res = _upload(client, auth_headers(member), stage["id"], allowedUserIds=[viewer.id])
        assert res.status_code == 201
        assert set(res.get_json()["allowedUserIds"]) == {viewer.id, member.id, admin.id}

    def test_allow_list_must_be_company_members(self, client, member, outsider, project, auth_headers):
        res = _upload(client, auth_headers(member), _stage(project, "Tooling")["id"],
                      allowedUserIds=[outsider.id])
        assert res.status_code == 400
        assert "allowedUserIds" in res.get_json()["details"]

    def test_checklist_item_key_validated(self, client, member, project, auth_headers):
        stage_id = _stage(project, "Documentation Checklist")["id"]
        ok = _upload(client, auth_headers(member), stage_id, checklistItemKey="productDrawing")
        assert ok.status_code == 201
        bad = _upload(client, auth_headers(member), stage_id, checklistItemKey="invoice")
        assert bad.status_code == 400

    def test_storage_url_normalized(self, client, member, project, auth_headers):
        res = client.post(f"{API}/stages/{_stage(project, 'Tooling')['id']}/files", json={
            "fileName": "mold.zip",
            "fileUrl": "https://storage.googleapis.com/private/uploads/abc123?X-Goog-Signature=x",
        }, headers=auth_headers(member))
        assert res.get_json()["fileUrl"] == "/objects/uploads/abc123"

    def test_cross_company_stage(self, client, outsider, project, auth_headers):
        res = _upload(client, auth_headers(outsider), _stage(project, "Tooling")["id"])
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Viewer filtering
# ═════════════════════════════════════════════════════════════════════════════


class TestViewerFiltering:
    def test_list_filters_restricted_files(self, client, admin, member, viewer, project, auth_headers):
        stage_id = _stage(project, "Factory Proposal")["id"]
        _upload(client, auth_headers(member), stage_id, "quote-a.pdf", allowedUserIds=[admin.id])

        as_member = client.get(f"{API}/stages/{stage_id}/files", headers=auth_headers(member))
        assert [f["fileName"] for f in as_member.get_json()] == ["quote-a.pdf"]
        as_viewer = client.get(f"{API}/stages/{stage_id}/files", headers=auth_headers(viewer))
        assert as_viewer.get_json() == []

    def test_list_by_checklist_item(self, client, member, project, auth_headers):
        stage_id = _stage(project, "Documentation Checklist")["id"]
        _upload(client, auth_headers(member), stage_id, "a.pdf", checklistItemKey="productDrawing")
        _upload(client, auth_headers(member), stage_id, "b.pdf", checklistItemKey="boxDrawing")
        res = client.get(f"{API}/stages/{stage_id}/files?checklistItemKey=boxDrawing",
                         headers=auth_headers(member))
        assert [f["fileName"] for f in res.get_json()] == ["b.pdf"]

    def test_project_detail_filters_files(self, client, admin, member, viewer, project, auth_headers):
        stage_id = _stage(project, "Factory Proposal")["id"]
        _upload(client, auth_headers(member), stage_id, "private.pdf", allowedUserIds=[member.id])
        _upload(client, auth_headers(member), _stage(project, "Tooling")["id"], "public.pdf")

        detail = client.get(f"{API}/projects/{project['id']}", headers=auth_headers(viewer)).get_json()
        names = [f["fileName"] for s in detail["stages"] for f in s["files"]]
        assert names == ["public.pdf"]


# ═════════════════════════════════════════════════════════════════════════════
# Access edits
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateAccess:
    def _restricted(self, client, member, project, auth_headers, allowed):
        stage_id = _stage(project, "Factory Proposal")["id"]
        return _upload(client, auth_headers(member), stage_id, allowedUserIds=allowed).get_json()

    def test_uploader_edits(self, client, admin, member, viewer, project, auth_headers):
        f = self._restricted(client, member, project, auth_headers, [admin.id])
        res = client.patch(f"{API}/stage-files/{f['id']}",
                           json={"allowedUserIds": [member.id, viewer.id]}, headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json()["allowedUserIds"] == [member.id, viewer.id]

    def test_admin_edits(self, client, admin, member, project, auth_headers):
        f = self._restricted(client, member, project, auth_headers, [member.id])
        res = client.patch(f"{API}/stage-files/{f['id']}",
                           json={"allowedUserIds": [admin.id]}, headers=auth_headers(admin))
        assert res.status_code == 200

    def test_other_member_forbidden(self, client, admin, member, viewer, project, auth_headers):
        f = self._restricted(client, member, project, auth_headers, [viewer.id])
        res = client.patch(f"{API}/stage-files/{f['id']}",
                           json={"allowedUserIds": [viewer.id]}, headers=auth_headers(viewer))
        assert res.status_code == 403

    def test_cannot_clear_access_controlled(self, client, member, project, auth_headers):
        f = self._restricted(client, member, project, auth_headers, [member.id])
        res = client.patch(f"{API}/stage-files/{f['id']}",
                           json={"allowedUserIds": []}, headers=auth_headers(member))
        assert res.status_code == 400
        assert db.session.get(StageFile, f["id"]).allowed_user_ids == [member.id]

    def test_generic_file_can_be_made_public(self, client, member, viewer, project, auth_headers):
        f = _upload(client, auth_headers(member), _stage(project, "Tooling")["id"],
                    allowedUserIds=[member.id]).get_json()
        res = client.patch(f"{API}/stage-files/{f['id']}",
                           json={"allowedUserIds": None}, headers=auth_headers(member))
        assert res.status_code == 200
        listed = client.get(f"{API}/stages/{f['stageId']}/files", headers=auth_headers(viewer))
        assert len(listed.get_json()) == 1

    def test_quotation_only_responsible_edits(self, client, admin, member, viewer,
                                              quotation_project, auth_headers):
        stage_id = _stage(quotation_project, "Quotation")["id"]
        f = _upload(client, auth_headers(member), stage_id, allowedUserIds=[member.id]).get_json()

        by_uploader = client.patch(f"{API}/stage-files/{f['id']}",
                                   json={"allowedUserIds": [viewer.id]}, headers=auth_headers(member))
        assert by_uploader.status_code == 403
        assert by_uploader.get_json()["error"] == (
            "Only project responsible user can edit file access for Quotation stage"
        )

        by_responsible = client.patch(f"{API}/stage-files/{f['id']}",
                                      json={"allowedUserIds": [viewer.id]}, headers=auth_headers(admin))
        assert by_responsible.status_code == 200
        assert set(by_responsible.get_json()["allowedUserIds"]) == {viewer.id, admin.id}


# ═════════════════════════════════════════════════════════════════════════════
# Delete / object access
# ═════════════════════════════════════════════════════════════════════════════


class TestDeleteFile:
    def test_uploader_deletes(self, client, member, project, auth_headers):
        stage_id = _stage(project, "Tooling")["id"]
        f = _upload(client, auth_headers(member), stage_id).get_json()
        res = client.delete(f"{API}/stages/{stage_id}/files/{f['id']}", headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json() == {"message": "File deleted successfully"}
        assert db.session.get(StageFile, f["id"]) is None

    def test_other_member_forbidden(self, client, member, viewer, project, auth_headers):
        stage_id = _stage(project, "Tooling")["id"]
        f = _upload(client, auth_headers(member), stage_id).get_json()
        res = client.delete(f"{API}/stages/{stage_id}/files/{f['id']}", headers=auth_headers(viewer))
        assert res.status_code == 403

    def test_wrong_stage_is_404(self, client, admin, member, project, auth_headers):
        stage_id = _stage(project, "Tooling")["id"]
        f = _upload(client, auth_headers(member), stage_id).get_json()
        other_stage = _stage(project, "Sample")["id"]
        res = client.delete(f"{API}/stages/{other_stage}/files/{f['id']}", headers=auth_headers(admin))
        assert res.status_code == 404


class TestObjectAccess:
    def test_restricted_object(self, client, admin, member, viewer, project, auth_headers):
        stage_id = _stage(project, "Factory Proposal")["id"]
        f = _upload(client, auth_headers(member), stage_id, "offer.pdf",
                    allowedUserIds=[admin.id]).get_json()

        ok = client.get(f"{API}/objects/uploads/offer.pdf", headers=auth_headers(admin))
        assert ok.status_code == 200
        assert ok.get_json() == {"allowed": True, "fileId": f["id"]}

        denied = client.get(f"{API}/objects/uploads/offer.pdf", headers=auth_headers(viewer))
        assert denied.status_code == 403

    def test_untracked_object(self, client, member, auth_headers):
        res = client.get(f"{API}/objects/uploads/avatar.png", headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json()["fileId"] is None

    def test_other_company_object(self, client, member, outsider, project, auth_headers):
        _upload(client, auth_headers(member), _stage(project, "Tooling")["id"], "plan.pdf")
        res = client.get(f"{API}/objects/uploads/plan.pdf", headers=auth_headers(outsider))
        assert res.status_code == 404
