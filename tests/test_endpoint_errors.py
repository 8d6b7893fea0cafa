from fastapi import FastAPI
from fastapi.testclient import TestClient

from harmony.endpoints.errors import error_detail, install_error_handlers, not_found
from harmony.errors import BackendError, CorrelationError, DispatchError, ValidationError


def test_not_found_error_payload() -> None:
    error = not_found("Job", "missing-id")

    assert error.status_code == 404
    assert error.detail == {
        "code": "NotFound",
        "description": "Job 'missing-id' not found",
    }


def test_validation_error_detail_lists_errors() -> None:
    error = ValidationError("Invalid bounding rectangle", ["south > north", "west out of range"])

    assert error_detail(error) == {
        "code": "InvalidParameterValue",
        "description": "Invalid bounding rectangle",
        "errors": ["south > north", "west out of range"],
    }


def test_validation_error_defaults_errors_to_message() -> None:
    assert ValidationError("bbox must contain 4 comma-separated numbers").errors == [
        "bbox must contain 4 comma-separated numbers"
    ]


def test_dispatch_error_status_depends_on_reason() -> None:
    assert DispatchError("none", DispatchError.NO_SUPPORTING_BACKEND).status_code == 404
    assert DispatchError("sync", DispatchError.SYNCHRONOUS_REQUIRED).status_code == 400


def _app() -> FastAPI:
    app = FastAPI()

    @app.get("/backend")
    def backend() -> None:
        raise BackendError("Service gdal could not be reached")

    @app.get("/callback")
    def callback() -> None:
        raise CorrelationError("abc", consumed=True)

    @app.get("/boom")
    def boom() -> None:
        raise RuntimeError("boom")

    install_error_handlers(app)
    return app


def test_harmony_errors_render_detail() -> None:
    client = TestClient(_app())

    backend = client.get("/backend")
    callback = client.get("/callback")

    assert backend.status_code == 502
    assert backend.json() == {"detail": {"code": "BackendError", "description": "Service gdal could not be reached"}}
    assert callback.status_code == 500
    assert callback.json()["detail"] == {
        "code": "CallbackNotFound",
        "description": "Could not find response callback for token abc: already consumed",
    }


def test_unexpected_errors_are_hidden() -> None:
    client = TestClient(_app(), raise_server_exceptions=False)

    response = client.get("/boom")

    assert response.status_code == 500
    assert response.json() == {
        "detail": {"code": "InternalServerError", "description": "An unexpected error occurred"}
    }
