"""Application factory, configuration and role-guard tests."""

from datetime import datetime, timedelta, timezone

import pytest
from flask import Flask

from itdesk import create_app
from itdesk.config import Config, TestingConfig
from itdesk.middleware.roles import current_actor, current_role, require_role
from itdesk.utils.errors import E, api_error
from itdesk.utils.helpers import parse_date_input, parse_decimal


class TestConfig:
    def test_testing_config(self, app):
        assert app.config["TESTING"] is True
        assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite:///:memory:"
        assert app.config["RATELIMIT_ENABLED"] is False
        assert app.config["EXECUTION_PROGRESS_POLICY"] == "free_form"

    def test_default_approver_roles(self):
        assert {"ADMIN", "STAFF"} <= set(Config.APPROVER_ROLES)

    def test_invalid_progress_policy_rejected(self, monkeypatch):
        monkeypatch.setattr(TestingConfig, "EXECUTION_PROGRESS_POLICY", "sometimes")

        with pytest.raises(RuntimeError):
            create_app("testing")

    def test_blueprints_registered(self, app):
        assert {"health_bp", "projects", "infra_workflow"} <= set(app.blueprints)


class TestRoles:
    def test_actor_and_role_from_headers(self):
        app = Flask(__name__)
        with app.test_request_context(headers={"X-User": " Dana ", "X-User-Role": "staff"}):
            assert current_actor() == "Dana"
            assert current_role() == "STAFF"

    def test_actor_defaults_to_system(self):
        app = Flask(__name__)
        with app.test_request_context():
            assert current_actor() == "system"
            assert current_role() == ""

    def test_blank_actor_header_falls_back(self):
        app = Flask(__name__)
        with app.test_request_context(headers={"X-User": "   ", "X-Forwarded-User": "proxy-user"}):
            assert current_actor() == "proxy-user"
        with app.test_request_context(headers={"X-User": "   "}):
            assert current_actor() == "system"

    def test_require_role(self):
        app = Flask(__name__)

        @require_role("admin")
        def view():
            return "ok"

        with app.test_request_context(headers={"X-User-Role": "ADMIN"}):
            assert view() == "ok"
        with app.test_request_context(headers={"X-User-Role": "STAFF"}):
            response, status = view()
            assert status == 403
            assert response.get_json()["code"] == E.FORBIDDEN


class TestHelpers:
    def test_api_error_default_status(self):
        app = Flask(__name__)
        with app.app_context():
            _, status = api_error(E.VALIDATION_INVALID, "bad")
            assert status == 422
            _, status = api_error("ERR_SOMETHING_ELSE", "bad")
            assert status == 400
            response, status = api_error(E.WRONG_PHASE, "bad", details={"a": 1})
            assert status == 409
            assert response.get_json() == {"error": "bad", "code": "ERR_WRONG_PHASE", "details": {"a": 1}}

    @pytest.mark.parametrize("value,expected", [
        ("2024-03-01", (2024, 3, 1)),
        ("01.03.2024", (2024, 3, 1)),
        ("2024-03-01T10:30:00", (2024, 3, 1)),
    ])
    def test_parse_date_input(self, value, expected):
        parsed = parse_date_input(value)

        assert (parsed.year, parsed.month, parsed.day) == expected
        assert parsed.tzinfo is not None

    @pytest.mark.parametrize("value", [
        "2024-01-02T00:00:00+07:00",
        datetime(2024, 1, 2, 0, 0, tzinfo=timezone(timedelta(hours=7))),
    ])
    def test_parse_date_input_converts_offsets_to_utc(self, value):
        parsed = parse_date_input(value)

        assert parsed == datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [True, "NaN", "inf", "12,5"])
    def test_parse_decimal_rejects(self, value):
        with pytest.raises(ValueError):
            parse_decimal(value)

    def test_parse_decimal_float_is_exact(self):
        assert str(parse_decimal(0.1)) == "0.1"
        assert parse_decimal("") is None
