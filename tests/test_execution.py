"""
Execution stage tests — append-only progress logs and derived current progress.
"""

from datetime import datetime, timedelta, timezone

import pytest

from itdesk.core.exceptions import AlreadyCompleted, ValidationError, WrongPhase
from itdesk.models import db
from itdesk.models.infra import InfraExecution
from itdesk.models.project import Project
from itdesk.services.execution_service import (
    add_execution_log,
    complete_project,
    current_progress,
    list_execution_logs,
)


@pytest.fixture()
def exec_project(project_factory):
    return project_factory("Fiber Backbone", phase="EXECUTION")


def _log(project_id, progress, **extra):
    data = {"activity_description": "Pulled fiber", "progress_percentage": progress}
    data.update(extra)
    return add_execution_log(project_id, data)


class TestAddLog:
    def test_appends_without_touching_project(self, exec_project):
        before = db.session.get(Project, exec_project.id).updated_at

        log = _log(exec_project.id, 40, findings="Conduit blocked on floor 2")

        project = db.session.get(Project, exec_project.id)
        assert log.progress_percentage == 40
        assert log.findings == "Conduit blocked on floor 2"
        assert project.current_phase == "EXECUTION"
        assert project.updated_at == before

    def test_completed_by_defaults_to_actor(self, exec_project):
        log = add_execution_log(
            exec_project.id,
            {"activity_description": "Rack install", "progress_percentage": 10},
            actor="Technician",
        )

        assert log.completed_by == "Technician"

    @pytest.mark.parametrize("data,field", [
        ({"activity_description": "ok", "progress_percentage": 10}, "activity_description"),
        ({"activity_description": "Install", "progress_percentage": 101}, "progress_percentage"),
        ({"activity_description": "Install", "progress_percentage": -1}, "progress_percentage"),
        ({"activity_description": "Install", "progress_percentage": "half"}, "progress_percentage"),
        ({"activity_description": "Install", "execution_date": "31/31/2024"}, "execution_date"),
    ])
    def test_validation(self, exec_project, data, field):
        with pytest.raises(ValidationError) as exc:
            add_execution_log(exec_project.id, data)

        assert field in exc.value.details
        assert InfraExecution.query.count() == 0

    @pytest.mark.parametrize("progress", [0, 100])
    def test_boundaries_accepted(self, exec_project, progress):
        assert _log(exec_project.id, progress).progress_percentage == progress

    @pytest.mark.parametrize("progress", [99.9, "12.5", True])
    def test_fractional_or_boolean_progress_refused(self, exec_project, progress):
        with pytest.raises(ValidationError) as exc:
            _log(exec_project.id, progress)

        assert "progress_percentage" in exc.value.details
        assert InfraExecution.query.count() == 0

    def test_integral_string_progress_accepted(self, exec_project):
        assert _log(exec_project.id, "40").progress_percentage == 40

    def test_photo_url_stored(self, exec_project):
        log = _log(exec_project.id, 15, photo_url="https://files.example.com/rack.jpg")

        assert log.to_dict()["photo_url"] == "https://files.example.com/rack.jpg"

    def test_wrong_phase(self, project_factory):
        project = project_factory(phase="DISBURSEMENT")

        with pytest.raises(WrongPhase):
            _log(project.id, 10)

    def test_completed_project(self, project_factory):
        project = project_factory(phase="COMPLETED")

        with pytest.raises(AlreadyCompleted):
            _log(project.id, 10)


class TestCurrentProgress:
    def test_zero_without_logs(self, exec_project):
        assert current_progress(exec_project.id) == 0

    def test_latest_by_execution_date(self, exec_project):
        now = datetime.now(timezone.utc)
        _log(exec_project.id, 70, execution_date=now.isoformat())
        _log(exec_project.id, 30, execution_date=(now - timedelta(days=3)).isoformat())

        assert current_progress(exec_project.id) == 70
        assert [log.progress_percentage for log in list_execution_logs(exec_project.id)] == [70, 30]

    def test_latest_compares_instants_across_offsets(self, exec_project):
        _log(exec_project.id, 80, execution_date="2024-01-01T20:00:00+00:00")
        # 17:00 UTC, three hours before the first entry
        _log(exec_project.id, 10, execution_date="2024-01-02T00:00:00+07:00")

        assert current_progress(exec_project.id) == 80
        assert [log.progress_percentage for log in list_execution_logs(exec_project.id)] == [80, 10]

    def test_insertion_order_breaks_ties(self, exec_project):
        stamp = "2024-05-01T09:00:00+00:00"
        _log(exec_project.id, 20, execution_date=stamp)
        _log(exec_project.id, 25, execution_date=stamp)

        assert current_progress(exec_project.id) == 25

    def test_free_form_allows_lower_value(self, exec_project):
        _log(exec_project.id, 60)
        _log(exec_project.id, 55, activity_description="Correction after audit")

        assert current_progress(exec_project.id) == 55

    def test_strict_monotonic_rejects_regression(self, app, exec_project, monkeypatch):
        monkeypatch.setitem(app.config, "EXECUTION_PROGRESS_POLICY", "strict_monotonic")
        _log(exec_project.id, 60)

        with pytest.raises(ValidationError) as exc:
            _log(exec_project.id, 55)

        assert exc.value.details["current_progress"] == 60
        assert _log(exec_project.id, 60).progress_percentage == 60
        assert InfraExecution.query.count() == 2


def test_complete_project_delegates(exec_project):
    _log(exec_project.id, 100)

    project = complete_project(exec_project.id, actor="Admin")

    assert project.current_phase == "COMPLETED"
    assert project.status == "COMPLETED"
    with pytest.raises(AlreadyCompleted):
        _log(exec_project.id, 100)
