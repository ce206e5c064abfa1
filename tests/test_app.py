import logging

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from routekit import (
    Controller,
    ConvenienceConfig,
    Dispatcher,
    Gate,
    RequestInput,
    Settings,
    create_app,
    request_input,
    resolve_controller,
)


class Subscribe:
    def __init__(self, email):
        self.email = email


class NewsletterController(Controller):
    def subscribe(self, request: RequestInput):
        self.validate(request, {"email": ["required", "email"]})
        return self.dispatch(Subscribe(request.input("email")))


def build_newsletter_app(**kwargs):
    app = create_app(Settings(app_name="newsletter"), **kwargs)

    @app.post("/api/subscriptions")
    def subscribe(
        data: RequestInput = Depends(request_input),
        controller: NewsletterController = Depends(resolve_controller(NewsletterController)),
    ):
        return controller.subscribe(data)

    return app


def test_health_check():
    with TestClient(create_app(Settings(app_name="newsletter"))) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"app_name": "newsletter", "status": "healthy"}


def test_app_state_holds_collaborators():
    dispatcher = Dispatcher()
    app = create_app(Settings(validation_status_code=400), dispatcher=dispatcher)

    assert app.state.dispatcher is dispatcher
    assert app.state.convenience_config.status_code == 400


def test_valid_input_is_dispatched():
    dispatcher = Dispatcher({Subscribe: lambda command: {"subscribed": command.email}})

    with TestClient(build_newsletter_app(dispatcher=dispatcher)) as client:
        response = client.post("/api/subscriptions", json={"email": "a@b.com"})

    assert response.status_code == 200
    assert response.json() == {"subscribed": "a@b.com"}


def test_invalid_input_renders_default_response():
    with TestClient(build_newsletter_app()) as client:
        response = client.post("/api/subscriptions", json={"email": "bad"})

    assert response.status_code == 422
    assert response.json() == {"email": ["The email must be a valid email address."]}


def test_configured_response_builder_is_rendered():
    config = (
        ConvenienceConfig()
        .format_errors_using(lambda validator: validator.errors().all())
        .build_response_using(lambda request, errors: JSONResponse({"message": "Invalid", "errors": errors}, 400))
    )

    with TestClient(build_newsletter_app(config=config)) as client:
        response = client.post("/api/subscriptions", json={})

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid", "errors": ["The email field is required."]}


def test_unhandled_dispatch_error_returns_500():
    """Test that a missing handler surfaces as a generic server error"""
    app = build_newsletter_app()

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post("/api/subscriptions", json={"email": "a@b.com"})

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


class DashboardController(Controller):
    def show(self):
        self.authorize("view-dashboard")
        return {"dashboard": "ok"}


def build_dashboard_app(gate, user_middleware=False):
    app = create_app(Settings(app_name="dashboard"), gate=gate)

    if user_middleware:

        @app.middleware("http")
        async def authenticate(request: Request, call_next):
            request.state.user = request.headers.get("X-User")
            return await call_next(request)

    @app.get("/api/dashboard")
    def dashboard(controller: DashboardController = Depends(resolve_controller(DashboardController))):
        return controller.show()

    return app


def test_resolved_controller_keeps_gate_user_resolver():
    """Test that without request.state.user the application gate resolves its own user"""
    gate = Gate(user_resolver=lambda: "alice").define("view-dashboard", lambda user: user == "alice")

    with TestClient(build_dashboard_app(gate)) as client:
        response = client.get("/api/dashboard")

    assert response.status_code == 200
    assert response.json() == {"dashboard": "ok"}


def test_resolved_controller_scopes_gate_to_request_user():
    gate = Gate(user_resolver=lambda: "alice").define("view-dashboard", lambda user: user == "alice")

    with TestClient(build_dashboard_app(gate, user_middleware=True)) as client:
        allowed = client.get("/api/dashboard", headers={"X-User": "alice"})
        denied = client.get("/api/dashboard", headers={"X-User": "bob"})

    assert allowed.status_code == 200
    assert denied.status_code == 403


def test_settings_status_code_applies_to_supplied_config():
    """Test that VALIDATION_STATUS_CODE still applies when only a formatter is configured"""
    config = ConvenienceConfig().format_errors_using(lambda validator: {"errors": validator.errors().all()})
    app = create_app(Settings(validation_status_code=400), config=config)

    @app.post("/api/subscriptions")
    def subscribe(
        data: RequestInput = Depends(request_input),
        controller: NewsletterController = Depends(resolve_controller(NewsletterController)),
    ):
        return controller.subscribe(data)

    with TestClient(app) as client:
        response = client.post("/api/subscriptions", json={})

    assert app.state.convenience_config.error_formatter is config.error_formatter
    assert response.status_code == 400
    assert response.json() == {"errors": ["The email field is required."]}


def test_explicit_config_status_code_wins_over_settings():
    app = create_app(Settings(validation_status_code=400), config=ConvenienceConfig(status_code=409))

    assert app.state.convenience_config.status_code == 409


def test_rejected_and_failed_requests_are_logged(caplog):
    caplog.set_level(logging.INFO, logger="routekit.middleware")

    with TestClient(build_newsletter_app(), raise_server_exceptions=False) as client:
        client.post("/api/subscriptions", json={"email": "bad"})
        client.post("/api/subscriptions", json={"email": "a@b.com"})

    messages = [record.getMessage() for record in caplog.records if record.name == "routekit.middleware"]
    assert "POST /api/subscriptions rejected with 422" in messages[0]
    assert any("HandlerNotFound" in message for message in messages)
