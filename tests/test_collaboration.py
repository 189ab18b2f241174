"""
Stage collaboration tests: comments, mentions and tasks.

Email delivery is patched out; only the calls are asserted.
"""

from unittest.mock import patch

import pytest

from sourcetrack.models import db
from sourcetrack.models.stage import Task
from sourcetrack.services.collaboration_service import parse_mentions

API = "/api/v1"


def _first_stage_id(project_json):
    return project_json["stages"][0]["id"]


def _comment(client, headers, stage_id, content):
    return client.post(f"{API}/stages/{stage_id}/comments", json={"content": content}, headers=headers)


def _task(client, headers, stage_id, assignee_id, description="Check the render"):
    return client.post(
        f"{API}/stages/{stage_id}/tasks",
        json={"description": description, "assignedToId": assignee_id},
        headers=headers,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


class TestParseMentions:
    def test_ids_in_order_without_repeats(self):
        text = "@[Ada Admin](3) please sync with @[Max](7) and @[Ada Admin](3)"
        assert parse_mentions(text) == [3, 7]

    def test_non_numeric_ids_ignored(self):
        assert parse_mentions("@[Someone](abc) hi") == []
        assert parse_mentions("plain @mention") == []


class TestComments:
    def test_add_comment(self, client, member, project, auth_headers):
        res = _comment(client, auth_headers(member), _first_stage_id(project), "Looks good")
        assert res.status_code == 201
        data = res.get_json()
        assert data["content"] == "Looks good"
        assert data["user"]["email"] == "member@acme.io"
        assert data["mentions"] == []

    @pytest.mark.parametrize("content", ["", "   ", "x" * 501])
    def test_content_length(self, client, member, project, auth_headers, content):
        res = _comment(client, auth_headers(member), _first_stage_id(project), content)
        assert res.status_code == 400
        assert "content" in res.get_json()["details"]

    def test_exactly_500_chars_allowed(self, client, member, project, auth_headers):
        res = _comment(client, auth_headers(member), _first_stage_id(project), "y" * 500)
        assert res.status_code == 201

    def test_mentions_notify_company_members(self, client, admin, member, outsider,
                                              project, auth_headers):
        content = (
            f"@[Ada Admin]({admin.id}) and @[Boss]({outsider.id}) "
            f"and myself @[Max]({member.id})"
        )
        with patch("sourcetrack.services.email_service.send_mention_email") as send:
            res = _comment(client, auth_headers(member), _first_stage_id(project), content)
        assert res.status_code == 201
        assert res.get_json()["mentions"] == [admin.id, outsider.id, member.id]
        assert send.call_count == 1
        assert send.call_args.args[1].id == admin.id

    def test_comments_in_project_detail(self, client, member, project, auth_headers):
        stage_id = _first_stage_id(project)
        _comment(client, auth_headers(member), stage_id, "first")
        _comment(client, auth_headers(member), stage_id, "second")
        detail = client.get(f"{API}/projects/{project['id']}", headers=auth_headers(member)).get_json()
        assert [c["content"] for c in detail["stages"][0]["comments"]] == ["first", "second"]

    def test_cross_company_stage(self, client, outsider, project, auth_headers):
        res = _comment(client, auth_headers(outsider), _first_stage_id(project), "hello")
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateTask:
    def test_create_emails_assignee(self, client, admin, member, project, auth_headers):
        with patch("sourcetrack.services.email_service.send_task_assigned_email") as send:
            res = _task(client, auth_headers(admin), _first_stage_id(project), member.id)
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "pending"
        assert data["completed"] is False
        assert data["assignedTo"]["email"] == "member@acme.io"
        send.assert_called_once()

    def test_self_assignment_sends_no_email(self, client, admin, project, auth_headers):
        with patch("sourcetrack.services.email_service.send_task_assigned_email") as send:
            res = _task(client, auth_headers(admin), _first_stage_id(project), admin.id)
        assert res.status_code == 201
        send.assert_not_called()

    def test_assignee_must_be_member(self, client, admin, outsider, project, auth_headers):
        res = _task(client, auth_headers(admin), _first_stage_id(project), outsider.id)
        assert res.status_code == 400
        assert "assignedToId" in res.get_json()["details"]

    def test_description_required(self, client, admin, member, project, auth_headers):
        res = _task(client, auth_headers(admin), _first_stage_id(project), member.id, description=" ")
        assert res.status_code == 400

    def test_email_failure_does_not_fail_request(self, client, admin, member, project, auth_headers):
        with patch("sourcetrack.services.email_service.EmailService.send", return_value=False):
            res = _task(client, auth_headers(admin), _first_stage_id(project), member.id)
        assert res.status_code == 201


class TestTaskLists:
    def test_incoming_and_outgoing(self, client, admin, member, project, auth_headers):
        _task(client, auth_headers(admin), _first_stage_id(project), member.id)

        incoming = client.get(f"{API}/tasks", headers=auth_headers(member)).get_json()
        assert len(incoming) == 1
        assert incoming[0]["project"] == {"id": project["id"], "name": "Desk Lamp"}
        assert incoming[0]["stage"]["name"] == project["stages"][0]["name"]

        outgoing = client.get(f"{API}/tasks/outgoing", headers=auth_headers(admin)).get_json()
        assert [t["id"] for t in outgoing] == [incoming[0]["id"]]
        assert client.get(f"{API}/tasks", headers=auth_headers(admin)).get_json() == []


class TestUpdateTask:
    @pytest.fixture()
    def task(self, client, admin, member, project, auth_headers):
        return _task(client, auth_headers(admin), _first_stage_id(project), member.id).get_json()

    def _patch(self, client, headers, task_id, payload):
        return client.patch(f"{API}/tasks/{task_id}", json=payload, headers=headers)

    def test_complete_sets_status_and_timestamp(self, client, member, task, auth_headers):
        res = self._patch(client, auth_headers(member), task["id"], {"completed": True})
        data = res.get_json()
        assert data["status"] == "completed"
        assert data["completedAt"] is not None

    def test_status_completed_sets_flag(self, client, member, task, auth_headers):
        data = self._patch(client, auth_headers(member), task["id"], {"status": "completed"}).get_json()
        assert data["completed"] is True

    def test_reopen(self, client, member, task, auth_headers):
        self._patch(client, auth_headers(member), task["id"], {"completed": True})
        data = self._patch(client, auth_headers(member), task["id"], {"status": "pending"}).get_json()
        assert data["completed"] is False
        assert data["completedAt"] is None

    def test_only_assigner_edits_description(self, client, admin, member, task, auth_headers):
        denied = self._patch(client, auth_headers(member), task["id"], {"description": "Changed"})
        assert denied.status_code == 403
        ok = self._patch(client, auth_headers(admin), task["id"], {"description": "Changed"})
        assert ok.get_json()["description"] == "Changed"

    def test_stranger_cannot_update(self, client, task, company, user_factory, auth_headers):
        stranger = user_factory("stranger@acme.io", company)
        res = self._patch(client, auth_headers(stranger), task["id"], {"completed": True})
        assert res.status_code == 403
        assert res.get_json()["error"] == "You can only update tasks assigned to you or by you"

    def test_invalid_status(self, client, member, task, auth_headers):
        res = self._patch(client, auth_headers(member), task["id"], {"status": "archived"})
        assert res.status_code == 400

    def test_request_revision(self, client, admin, member, task, auth_headers):
        self._patch(client, auth_headers(member), task["id"], {"completed": True})
        res = client.patch(f"{API}/tasks/{task['id']}/request-revision",
                           json={"revisionNote": "Need the side view"}, headers=auth_headers(member))
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "needs_revision"
        assert data["revisionNote"] == "Need the side view"
        assert data["completed"] is False

    def test_request_revision_assignee_only(self, client, admin, task, auth_headers):
        res = client.patch(f"{API}/tasks/{task['id']}/request-revision",
                           json={"revisionNote": "x"}, headers=auth_headers(admin))
        assert res.status_code == 403


class TestDeleteTask:
    def test_assigner_deletes(self, client, admin, member, project, auth_headers):
        task = _task(client, auth_headers(admin), _first_stage_id(project), member.id).get_json()
        res = client.delete(f"{API}/tasks/{task['id']}", headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.get_json() == {"success": True}
        assert db.session.get(Task, task["id"]) is None

    def test_assignee_cannot_delete(self, client, admin, member, project, auth_headers):
        task = _task(client, auth_headers(admin), _first_stage_id(project), member.id).get_json()
        res = client.delete(f"{API}/tasks/{task['id']}", headers=auth_headers(member))
        assert res.status_code == 403

    def test_completed_task_cannot_be_deleted(self, client, admin, member, project, auth_headers):
        task = _task(client, auth_headers(admin), _first_stage_id(project), member.id).get_json()
        client.patch(f"{API}/tasks/{task['id']}", json={"completed": True}, headers=auth_headers(member))
        res = client.delete(f"{API}/tasks/{task['id']}", headers=auth_headers(admin))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Cannot delete a completed task"

    def test_cross_company_task_is_404(self, client, admin, member, outsider, project, auth_headers):
        task = _task(client, auth_headers(admin), _first_stage_id(project), member.id).get_json()
        res = client.delete(f"{API}/tasks/{task['id']}", headers=auth_headers(outsider))
        assert res.status_code == 404
