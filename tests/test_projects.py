"""
Project Aggregate tests.

Covers:
  - Create with products, stages from the active catalog, excludedTemplateIds
  - Detail assembly and company scoping (cross-company → 404)
  - List with stage statuses, cover image resolution and viewer filtering
  - PUT (full, product replacement) vs PATCH (per-field presence)
  - Delete permissions (admin, superadmin, member)
  - generate-stages / add-stages
  - Dashboard counters
"""

from datetime import date, timedelta

from sourcetrack.models import db
from sourcetrack.models.project import Product
from sourcetrack.models.stage import Stage
from sourcetrack.services import template_service

API = "/api/v1"


def _stage(project_json, name):
    return next(s for s in project_json["stages"] if s["name"] == name)


def _create(client, headers, **payload):
    payload.setdefault("name", "Kettle")
    return client.post(f"{API}/projects", json=payload, headers=headers)


def _upload(client, headers, stage_id, **payload):
    return client.post(f"{API}/stages/{stage_id}/files", json=payload, headers=headers)


# ═════════════════════════════════════════════════════════════════════════════
# Create / read
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateProject:
    def test_stages_follow_catalog_positions(self, project, company):
        templates = template_service.list_active(company.id)
        assert [s["templateId"] for s in project["stages"]] == [t.id for t in templates]
        assert [s["position"] for s in project["stages"]] == [t.position for t in templates]
        assert {s["status"] for s in project["stages"]} == {"waiting"}

    def test_stage_data_maps_start_unchecked(self, project):
        packaging = _stage(project, "Packaging Checklist")
        assert packaging["checklistData"] == {
            "box": False, "instruction": False, "externalSticker": False, "internalSticker": False,
        }
        assert _stage(project, "Tooling")["checklistData"] is None

    def test_stage_kind_copied_from_template(self, project):
        assert _stage(project, "Render")["kind"] == "render"
        assert _stage(project, "Factory Proposal")["kind"] == "factory_proposal"

    def test_products_created_blank_names_dropped(self, client, admin, auth_headers):
        res = _create(client, auth_headers(admin), products=[
            {"name": "Kettle 1L", "article": "K-1"},
            {"name": "   "},
            {"name": "Kettle 2L", "barcode": "4600000000001"},
        ])
        assert res.status_code == 201
        assert [p["name"] for p in res.get_json()["products"]] == ["Kettle 1L", "Kettle 2L"]

    def test_excluded_templates(self, client, admin, company, auth_headers):
        templates = template_service.list_active(company.id)
        excluded = [templates[0].id, templates[3].id]
        res = _create(client, auth_headers(admin), excludedTemplateIds=excluded)
        assert res.status_code == 201
        stage_template_ids = {s["templateId"] for s in res.get_json()["stages"]}
        assert stage_template_ids.isdisjoint(excluded)
        assert len(stage_template_ids) == len(templates) - 2

    def test_inactive_templates_not_materialized(self, client, admin, company, auth_headers):
        tooling = next(t for t in template_service.list_active(company.id) if t.name == "Tooling")
        client.delete(f"{API}/stage-templates/{tooling.id}", headers=auth_headers(admin))
        res = _create(client, auth_headers(admin))
        assert "Tooling" not in {s["name"] for s in res.get_json()["stages"]}

    def test_name_required(self, client, admin, auth_headers):
        res = client.post(f"{API}/projects", json={"name": ""}, headers=auth_headers(admin))
        assert res.status_code == 400
        assert "name" in res.get_json()["details"]

    def test_responsible_user_must_be_member(self, client, admin, outsider, auth_headers):
        res = _create(client, auth_headers(admin), responsibleUserId=outsider.id)
        assert res.status_code == 400
        assert "responsibleUserId" in res.get_json()["details"]

    def test_bad_deadline(self, client, admin, auth_headers):
        res = _create(client, auth_headers(admin), deadline="next week")
        assert res.status_code == 400
        assert "deadline" in res.get_json()["details"]

    def test_detail(self, client, member, project, auth_headers):
        res = client.get(f"{API}/projects/{project['id']}", headers=auth_headers(member))
        assert res.status_code == 200
        data = res.get_json()
        assert data["responsibleUser"]["email"] == "admin@acme.io"
        assert len(data["products"]) == 2
        first = data["stages"][0]
        assert first["template"]["name"] == first["name"]
        assert first["files"] == [] and first["comments"] == [] and first["tasks"] == []

    def test_cross_company_detail_is_404(self, client, outsider, project, auth_headers):
        res = client.get(f"{API}/projects/{project['id']}", headers=auth_headers(outsider))
        assert res.status_code == 404
        assert res.get_json()["error"] == "Project not found"

    def test_products_endpoint(self, client, member, project, auth_headers):
        res = client.get(f"{API}/projects/{project['id']}/products", headers=auth_headers(member))
        assert res.status_code == 200
        assert [p["article"] for p in res.get_json()] == ["L-100", "L-101"]


# ═════════════════════════════════════════════════════════════════════════════
# List / cover image
# ═════════════════════════════════════════════════════════════════════════════


class TestProjectList:
    def test_list_has_stage_statuses(self, client, member, project, auth_headers):
        res = client.get(f"{API}/projects", headers=auth_headers(member))
        assert res.status_code == 200
        items = res.get_json()
        assert len(items) == 1
        item = items[0]
        assert item["responsibleUserName"] == "Ada Admin"
        assert item["coverImageUrl"] is None
        assert item["stages"][0] == {
            "status": "waiting", "templateId": project["stages"][0]["templateId"],
        }

    def test_list_excludes_other_companies(self, client, outsider, project, auth_headers):
        res = client.get(f"{API}/projects", headers=auth_headers(outsider))
        assert res.get_json() == []

    def test_cover_falls_back_to_render_file(self, client, admin, member, project, auth_headers):
        render = _stage(project, "Render")
        _upload(client, auth_headers(admin), render["id"],
                fileName="front.png", fileUrl="/objects/uploads/front.png")
        item = client.get(f"{API}/projects", headers=auth_headers(member)).get_json()[0]
        assert item["coverImageUrl"] == "/objects/uploads/front.png"

    def test_restricted_render_file_not_leaked(self, client, admin, member, project, auth_headers):
        render = _stage(project, "Render")
        res = _upload(client, auth_headers(admin), render["id"],
                      fileName="secret.png", fileUrl="/objects/uploads/secret.png",
                      allowedUserIds=[admin.id])
        assert res.status_code == 201
        as_member = client.get(f"{API}/projects", headers=auth_headers(member)).get_json()[0]
        assert as_member["coverImageUrl"] is None
        as_admin = client.get(f"{API}/projects", headers=auth_headers(admin)).get_json()[0]
        assert as_admin["coverImageUrl"] == "/objects/uploads/secret.png"

    def test_explicit_cover_wins(self, client, admin, member, project, auth_headers):
        render = _stage(project, "Render")
        sample = _stage(project, "Sample")
        _upload(client, auth_headers(admin), render["id"],
                fileName="front.png", fileUrl="/objects/uploads/front.png")
        chosen = _upload(client, auth_headers(admin), sample["id"],
                         fileName="sample.jpg", fileUrl="/objects/uploads/sample.jpg").get_json()
        res = client.patch(f"{API}/projects/{project['id']}",
                           json={"coverImageId": chosen["id"]}, headers=auth_headers(admin))
        assert res.status_code == 200
        item = client.get(f"{API}/projects", headers=auth_headers(member)).get_json()[0]
        assert item["coverImageUrl"] == "/objects/uploads/sample.jpg"

    def test_cover_must_belong_to_project(self, client, admin, project, auth_headers):
        other = _create(client, auth_headers(admin), name="Other").get_json()
        foreign = _upload(client, auth_headers(admin), _stage(other, "Sample")["id"],
                          fileName="x.jpg", fileUrl="/objects/uploads/x.jpg").get_json()
        res = client.patch(f"{API}/projects/{project['id']}",
                           json={"coverImageId": foreign["id"]}, headers=auth_headers(admin))
        assert res.status_code == 400
        assert "coverImageId" in res.get_json()["details"]


# ═════════════════════════════════════════════════════════════════════════════
# Update / delete
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateProject:
    def test_patch_only_touches_present_keys(self, client, member, project, auth_headers):
        res = client.patch(f"{API}/projects/{project['id']}",
                           json={"description": "Matte finish"}, headers=auth_headers(member))
        assert res.status_code == 200
        data = res.get_json()
        assert data["description"] == "Matte finish"
        assert data["name"] == "Desk Lamp"
        assert data["responsibleUserId"] == project["responsibleUserId"]

    def test_patch_can_clear_responsible(self, client, admin, project, auth_headers):
        res = client.patch(f"{API}/projects/{project['id']}",
                           json={"responsibleUserId": None}, headers=auth_headers(admin))
        assert res.get_json()["responsibleUserId"] is None

    def test_put_clears_absent_fields(self, client, admin, project, auth_headers):
        res = client.put(f"{API}/projects/{project['id']}",
                         json={"name": "Desk Lamp v2"}, headers=auth_headers(admin))
        assert res.status_code == 200
        data = res.get_json()
        assert data["name"] == "Desk Lamp v2"
        assert data["responsibleUserId"] is None
        # Products untouched when the key is absent
        assert Product.query.filter_by(project_id=project["id"]).count() == 2

    def test_put_replaces_products(self, client, admin, project, auth_headers):
        res = client.put(f"{API}/projects/{project['id']}", json={
            "name": "Desk Lamp",
            "products": [{"name": "Lamp green", "article": "L-102"}],
        }, headers=auth_headers(admin))
        assert res.status_code == 200
        products = client.get(f"{API}/projects/{project['id']}/products",
                              headers=auth_headers(admin)).get_json()
        assert [p["name"] for p in products] == ["Lamp green"]

    def test_put_products_prunes_stage_product_keys(self, client, admin, member, project, auth_headers):
        # a product elsewhere so the replacement ids cannot reuse the old ones
        _create(client, auth_headers(admin), name="Spacer", products=[{"name": "Spacer"}])
        order = _stage(project, "Order Placement")
        dist = _stage(project, "Distribution Preparation")
        old_white, old_black = (str(p["id"]) for p in project["products"])
        client.patch(f"{API}/stages/{order['id']}",
                     json={"productQuantitiesData": {old_white: 5}}, headers=auth_headers(member))
        client.patch(f"{API}/stages/{dist['id']}",
                     json={"distributionData": {"productPrices": {old_black: 9.5}, "mailingText": "Hi"}},
                     headers=auth_headers(member))

        res = client.put(f"{API}/projects/{project['id']}", json={
            "name": "Desk Lamp",
            "products": [{"name": "Lamp green"}],
        }, headers=auth_headers(admin))
        assert res.status_code == 200
        new_id = str(Product.query.filter_by(project_id=project["id"]).one().id)
        assert new_id not in (old_white, old_black)
        assert db.session.get(Stage, order["id"]).product_quantities_data == {}
        assert db.session.get(Stage, dist["id"]).distribution_data == {
            "productPrices": {}, "mailingText": "Hi",
        }

        detail = client.get(f"{API}/projects/{project['id']}", headers=auth_headers(member)).get_json()
        stored = _stage(detail, "Order Placement")["productQuantitiesData"]
        res = client.patch(f"{API}/stages/{order['id']}",
                           json={"productQuantitiesData": {**stored, new_id: 7}},
                           headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json()["productQuantitiesData"] == {new_id: 7}

    def test_factory_must_belong_to_company(self, client, admin, outsider, project, auth_headers):
        foreign = client.post(f"{API}/factories", json={"name": "Foreign"},
                              headers=auth_headers(outsider)).get_json()
        res = client.patch(f"{API}/projects/{project['id']}",
                           json={"factoryId": foreign["id"]}, headers=auth_headers(admin))
        assert res.status_code == 400


class TestDeleteProject:
    def test_member_cannot_delete(self, client, member, project, auth_headers):
        res = client.delete(f"{API}/projects/{project['id']}", headers=auth_headers(member))
        assert res.status_code == 403
        assert res.get_json()["error"] == "Admin access required"

    def test_admin_deletes_with_stages(self, client, admin, project, auth_headers):
        res = client.delete(f"{API}/projects/{project['id']}", headers=auth_headers(admin))
        assert res.status_code == 204
        assert Stage.query.filter_by(project_id=project["id"]).count() == 0

    def test_other_company_admin_gets_404(self, client, outsider, project, auth_headers):
        res = client.delete(f"{API}/projects/{project['id']}", headers=auth_headers(outsider))
        assert res.status_code == 404

    def test_superadmin_deletes_any(self, client, outsider, project, user_factory, auth_headers):
        root = user_factory("root@other.io", outsider.company, role="superadmin")
        res = client.delete(f"{API}/projects/{project['id']}", headers=auth_headers(root))
        assert res.status_code == 204


# ═════════════════════════════════════════════════════════════════════════════
# generate-stages / add-stages
# ═════════════════════════════════════════════════════════════════════════════


class TestStageMaterialization:
    def _bare_project(self, client, admin, company, auth_headers):
        all_ids = [t.id for t in template_service.list_active(company.id)]
        res = _create(client, auth_headers(admin), excludedTemplateIds=all_ids)
        assert res.get_json()["stages"] == []
        return res.get_json()

    def test_generate_stages_backfills(self, client, admin, company, auth_headers):
        bare = self._bare_project(client, admin, company, auth_headers)
        res = client.post(f"{API}/projects/{bare['id']}/generate-stages", headers=auth_headers(admin))
        assert res.status_code == 200
        assert len(res.get_json()["stages"]) == len(template_service.DEFAULT_STAGE_TEMPLATES)

    def test_generate_stages_refuses_when_present(self, client, admin, project, auth_headers):
        res = client.post(f"{API}/projects/{project['id']}/generate-stages", headers=auth_headers(admin))
        assert res.status_code == 400

    def test_add_stages_appends_after_max_position(self, client, admin, company, auth_headers):
        templates = template_service.list_active(company.id)
        keep_first_two = [t.id for t in templates[2:]]
        proj = _create(client, auth_headers(admin), excludedTemplateIds=keep_first_two).get_json()
        assert [s["position"] for s in proj["stages"]] == [1, 2]

        wanted = [templates[5].id, templates[4].id]
        res = client.post(f"{API}/projects/{proj['id']}/add-stages",
                          json={"templateIds": wanted}, headers=auth_headers(admin))
        assert res.status_code == 201
        data = res.get_json()
        assert data["message"] == "Added 2 new stage(s)"
        assert [(s["templateId"], s["position"]) for s in data["stages"]] == [
            (templates[5].id, 3), (templates[4].id, 4),
        ]

    def test_add_stages_skips_present_and_unknown(self, client, admin, company, project, auth_headers):
        custom = client.post(f"{API}/stage-templates", json={"name": "Photo Shoot"},
                             headers=auth_headers(admin)).get_json()
        present = project["stages"][0]["templateId"]
        res = client.post(f"{API}/projects/{project['id']}/add-stages",
                          json={"templateIds": [present, custom["id"], 999999]},
                          headers=auth_headers(admin))
        assert res.status_code == 201
        assert [s["templateId"] for s in res.get_json()["stages"]] == [custom["id"]]

    def test_add_stages_all_present(self, client, admin, project, auth_headers):
        ids = [s["templateId"] for s in project["stages"][:3]]
        res = client.post(f"{API}/projects/{project['id']}/add-stages",
                          json={"templateIds": ids}, headers=auth_headers(admin))
        assert res.status_code == 400
        assert res.get_json()["error"] == "All specified stages already exist in the project"

    def test_add_stages_empty(self, client, admin, project, auth_headers):
        res = client.post(f"{API}/projects/{project['id']}/add-stages",
                          json={"templateIds": []}, headers=auth_headers(admin))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard
# ═════════════════════════════════════════════════════════════════════════════


class TestDashboard:
    def test_counters(self, client, admin, member, company, project, auth_headers):
        all_ids = [t.id for t in template_service.list_active(company.id)]
        _create(client, auth_headers(admin), name="Empty", excludedTemplateIds=all_ids)

        stages = Stage.query.filter_by(project_id=project["id"]).all()
        stages[0].deadline = date.today() - timedelta(days=3)
        stages[1].deadline = date.today() - timedelta(days=3)
        stages[1].status = "completed"
        db.session.commit()

        client.post(f"{API}/stages/{stages[0].id}/tasks",
                    json={"description": "Check render", "assignedToId": member.id},
                    headers=auth_headers(admin))

        res = client.get(f"{API}/dashboard/stats", headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json() == {
            "totalProjects": 2,
            "activeProjects": 1,
            "completedProjects": 0,
            "overdueStages": 1,
            "myOpenTasks": 1,
        }

    def test_completed_project(self, client, admin, project, auth_headers):
        for stage in Stage.query.filter_by(project_id=project["id"]).all():
            stage.status = "skip" if stage.position % 2 else "completed"
        db.session.commit()
        stats = client.get(f"{API}/dashboard/stats", headers=auth_headers(admin)).get_json()
        assert stats["completedProjects"] == 1
        assert stats["activeProjects"] == 0
