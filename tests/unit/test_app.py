"""
End-to-end tests through Application.dispatch, no sockets involved.
"""

import json
import logging

import pytest

from httppipeline import Application, create_app
from httppipeline.accesslog import AccessLog
from httppipeline.agentlog import MemoryStore, UserAgentLog
from httppipeline.errors import NotFoundError, PipelineError
from httppipeline.handlers.users import (
    BAD_ADDRESS,
    BAD_AGE,
    BAD_NAME,
    MISSING_FIELDS,
    check_user_fields,
)
from httppipeline.http.response import ok
from httppipeline.http.router import Router
from httppipeline.http.status_codes import HTTPStatus
from httppipeline.pipeline import DEADLINE_MESSAGE


BROWSER = {"User-Agent": "Mozilla/5.0 (X11; Linux x86_64)"}
JSON = {"Content-Type": "application/json"}


def post_json(make_request, path, payload, query=None, headers=None):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return make_request(
        "POST", path, query=query, headers={**JSON, **(headers or {})}, body=body
    )


class TestPages:

    def test_home(self, app, make_request):
        response = app.dispatch(make_request("GET", "/"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"<h1>Hello World!</h1>"
        assert response.headers["Content-Type"].startswith("text/html")
        assert response.finalized is True

    def test_about(self, app, make_request):
        assert app.dispatch(make_request("GET", "/about")).body == b"<h1>About Us</h1>"

    def test_pages_skip_api_stages(self, app, make_request, memory_log):
        app.dispatch(make_request("GET", "/"))

        assert memory_log.entries() == []

    def test_unknown_path(self, app, make_request):
        response = app.dispatch(make_request("GET", "/missing"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json == {"message": "No route matches /missing"}

    def test_wrong_method(self, app, make_request):
        response = app.dispatch(make_request("DELETE", "/about"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET"


class TestUserDemos:

    def test_user_with_filter(self, app, make_request):
        response = app.dispatch(make_request("GET", "/user/7", query={"filter": "active"}))

        assert response.body == b"User ID : 7 and filter : active"

    def test_user_without_filter(self, app, make_request):
        response = app.dispatch(make_request("GET", "/user/7"))

        assert response.body == b"User ID : 7 and filter : "

    def test_payment(self, app, make_request):
        response = app.dispatch(
            make_request("GET", "/user/3/payment", query={"filter": "premium"})
        )

        assert response.body == b"User ID : 3 is premium and confirmed the payment."


class TestManualCreate:
    """POST /users checks the body by hand, first failure wins."""

    def test_valid(self, app, make_request):
        payload = {"name": "Dana Scully", "age": 34, "address": "2630 Hegal Place"}

        response = app.dispatch(post_json(make_request, "/users", payload))

        assert response.status == HTTPStatus.CREATED
        assert response.json == {"message": "User created successfully", "data": payload}

    @pytest.mark.parametrize("payload,message", [
        ({"age": 34, "address": "2630 Hegal Place"}, MISSING_FIELDS),
        ({"name": "Dana", "age": 0, "address": "2630 Hegal Place"}, MISSING_FIELDS),
        ({"name": "Al", "age": 34, "address": "2630 Hegal Place"}, BAD_NAME),
        ({"name": "Dana", "age": -1, "address": "2630 Hegal Place"}, BAD_AGE),
        ({"name": "Dana", "age": "34", "address": "2630 Hegal Place"}, BAD_AGE),
        ({"name": "Dana", "age": 34, "address": "Elm"}, BAD_ADDRESS),
    ])
    def test_first_failure_reported(self, app, make_request, payload, message):
        response = app.dispatch(post_json(make_request, "/users", payload))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json == {"message": message}

    def test_not_stored(self, app, make_request):
        payload = {"name": "Dana Scully", "age": 34, "address": "2630 Hegal Place"}

        app.dispatch(post_json(make_request, "/users", payload))

        assert len(app.repository) == 3

    def test_malformed_json(self, app, make_request):
        response = app.dispatch(post_json(make_request, "/users", b"{oops"))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json == {"message": "Invalid JSON body"}

    def test_check_user_fields_accepts_valid(self):
        assert check_user_fields({"name": "Dana", "age": 1, "address": "12345"}) is None


class TestValidatedCreate:

    def test_valid(self, app, make_request):
        payload = {"name": "Dana Scully", "age": 34, "address": "2630 Hegal Place"}

        response = app.dispatch(post_json(make_request, "/users/v2", payload))

        assert response.status == HTTPStatus.CREATED
        assert response.json["data"] == payload

    def test_all_errors_listed(self, app, make_request):
        response = app.dispatch(post_json(make_request, "/users/v2", {"name": "Al", "age": -1}))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json["message"] == "Validation failed"
        assert [e["field"] for e in response.json["errors"]] == ["name", "age", "address"]


class TestUsersAPI:

    def test_list_users(self, app, make_request, memory_log):
        request = make_request("GET", "/api/users", query={"token": "123"}, headers=BROWSER)

        response = app.dispatch(request)

        assert response.status == HTTPStatus.OK
        assert response.json["message"] == "Users fetched successfully"
        assert [u["name"] for u in response.json["users"]] == [
            "Alice Johnson", "Bob Smith", "Carol White",
        ]
        assert memory_log.entries() == [BROWSER["User-Agent"]]

    def test_missing_token(self, app, make_request, memory_log):
        response = app.dispatch(make_request("GET", "/api/users", headers=BROWSER))

        assert response.status == HTTPStatus.UNAUTHORIZED
        assert response.json == {"message": "Unauthorized: Invalid Token"}
        assert memory_log.entries() == []

    def test_missing_user_agent(self, app, make_request, memory_log):
        response = app.dispatch(make_request("GET", "/api/users", query={"token": "123"}))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert memory_log.entries() == [None]

    def test_blocked_agent(self, config, make_request):
        config.blocked_user_agents = ("curl",)
        log = UserAgentLog(MemoryStore())
        app = create_app(config, agent_log=log)

        response = app.dispatch(make_request(
            "GET", "/api/users", query={"token": "123"}, headers={"User-Agent": "curl/8.4.0"}
        ))

        assert response.status == HTTPStatus.FORBIDDEN
        assert response.json == {"message": "Forbidden: client not allowed"}
        assert log.entries() == ["curl/8.4.0"]

    def test_get_user(self, app, make_request):
        response = app.dispatch(
            make_request("GET", "/api/users/2", query={"token": "123"}, headers=BROWSER)
        )

        assert response.json["user"] == {
            "id": 2, "name": "Bob Smith", "age": 35, "address": "48 Elm Avenue",
        }

    def test_get_user_bad_id(self, app, make_request):
        response = app.dispatch(
            make_request("GET", "/api/users/abc", query={"token": "123"}, headers=BROWSER)
        )

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json == {"message": "Invalid user id: abc"}

    def test_get_user_unknown(self, app, make_request):
        response = app.dispatch(
            make_request("GET", "/api/users/99", query={"token": "123"}, headers=BROWSER)
        )

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json == {"message": "User not found"}

    def test_create_user(self, app, make_request):
        payload = {"name": "Dana Scully", "age": 34, "address": "2630 Hegal Place"}

        response = app.dispatch(post_json(
            make_request, "/api/users", payload, query={"token": "123"}, headers=BROWSER
        ))

        assert response.status == HTTPStatus.CREATED
        assert response.json == {
            "message": "User created successfully",
            "user": {"id": 4, **payload},
        }
        assert response.headers["Location"] == "/api/users/4"
        assert len(app.repository) == 4

    def test_create_user_invalid(self, app, make_request):
        response = app.dispatch(post_json(
            make_request, "/api/users", {"name": "Dana"}, query={"token": "123"}, headers=BROWSER
        ))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert len(app.repository) == 3

    def test_create_needs_token_first(self, app, make_request, memory_log):
        response = app.dispatch(post_json(make_request, "/api/users", {}, headers=BROWSER))

        assert response.status == HTTPStatus.UNAUTHORIZED
        assert memory_log.entries() == []


class TestErrorBoundary:

    def make_app(self, **kwargs):
        return Application(**kwargs)

    def test_handler_exception_is_500(self, make_request, caplog):
        app = self.make_app()

        @app.router.get("/boom")
        def boom(request):
            raise RuntimeError("database password is hunter2")

        response = app.dispatch(make_request("GET", "/boom"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.json == {"message": "Internal Server Error"}
        assert response.finalized is True
        assert "hunter2" in caplog.text

    def test_contract_violation_is_500(self, make_request):
        app = self.make_app()
        app.use(lambda request, proceed: None)
        app.router.add_route("/", lambda r: ok())

        response = app.dispatch(make_request("GET", "/"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.json == {"message": "Internal Server Error"}

    def test_pipeline_error_message_hidden(self, make_request):
        app = self.make_app()

        @app.router.get("/")
        def handler(request):
            raise PipelineError("stage internals")

        assert app.dispatch(make_request("GET", "/")).json == {"message": "Internal Server Error"}

    def test_http_error_mapped(self, make_request):
        app = self.make_app()

        @app.router.get("/thing")
        def thing(request):
            raise NotFoundError("Thing not found")

        response = app.dispatch(make_request("GET", "/thing"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json == {"message": "Thing not found"}

    def test_request_id_attached(self, app, make_request):
        request = make_request("GET", "/")

        app.dispatch(request)

        assert len(request.attachments["request_id"]) == 8


class TestAppDeadline:

    def test_slow_handler_times_out(self, make_request):
        now = [0.0]
        app = Application(pipeline_timeout=2.0, clock=lambda: now[0])

        @app.router.get("/slow")
        def slow(request):
            now[0] += 5.0
            return ok("late")

        response = app.dispatch(make_request("GET", "/slow"))

        assert response.status == HTTPStatus.GATEWAY_TIMEOUT
        assert response.json == {"message": DEADLINE_MESSAGE}

    def test_route_stages_use_app_clock(self, make_request):
        app = Application(pipeline_timeout=2.0, clock=lambda: 0.0)
        app.router.add_route("/", lambda r: ok("fine"), stages=[lambda r, proceed: proceed()])

        response = app.dispatch(make_request("GET", "/"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"fine"

    def test_app_adopts_router_clock(self):
        def clock():
            return 0.0

        app = Application(router=Router(clock=clock))

        assert app.router.clock is clock

    def test_mismatched_clocks_rejected(self):
        with pytest.raises(ValueError):
            Application(router=Router(), clock=lambda: 0.0)

    def test_no_timeout_configured(self, make_request):
        app = Application(pipeline_timeout=None)
        app.router.add_route("/", lambda r: ok())
        request = make_request("GET", "/")

        app.dispatch(request)

        assert request.deadline is None


class TestAccessLog:

    def test_success_logged_at_info(self, make_request, caplog):
        app = Application()
        app.router.add_route("/", lambda r: ok())

        with caplog.at_level(logging.INFO, logger="httppipeline.access"):
            app.dispatch(make_request("GET", "/"))

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert '"GET /" 200' in record.getMessage()

    def test_errors_logged_at_warning(self, make_request, caplog):
        app = Application()

        with caplog.at_level(logging.INFO, logger="httppipeline.access"):
            app.dispatch(make_request("GET", "/nope"))

        assert caplog.records[-1].levelno == logging.WARNING

    def test_json_format_omits_query(self, make_request, caplog):
        app = Application(access_log=AccessLog("json"))
        app.router.add_route("/", lambda r: ok())

        with caplog.at_level(logging.INFO, logger="httppipeline.access"):
            app.dispatch(make_request("GET", "/", query={"token": "123"}))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["path"] == "/"
        assert entry["status_code"] == 200
        assert "token" not in caplog.records[-1].getMessage()

    def test_bad_format_rejected(self):
        with pytest.raises(ValueError):
            AccessLog("xml")
