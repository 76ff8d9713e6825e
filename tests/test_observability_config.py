import json
import logging

from starlette.testclient import TestClient

from restdef.api.error_handlers import create_app
from restdef.config import Settings, get_settings
from restdef.infrastructure.observability import JSONFormatter, RouteFormatter, route_extra, setup_logging
from restdef.domain.models import EndpointDefinition, define_api
from restdef.routing.assembler import create_router


def make_record(msg: str = "Registered route", **extra) -> logging.LogRecord:
    record = logging.LogRecord("restdef.routing.router", logging.DEBUG, __file__, 1, msg, (), None)
    record.__dict__.update(extra)
    return record


def test_json_formatter_nests_route_fields():
    record = make_record(**route_extra("GET", "/items/{id}", "get_item"))

    out = json.loads(JSONFormatter().format(record))

    assert out["message"] == "Registered route"
    assert out["level"] == "DEBUG"
    assert out["route"] == {"method": "GET", "path": "/items/{id}", "endpoint": "get_item"}
    assert "error" not in out


def test_json_formatter_reports_decode_errors():
    record = make_record(
        "Decode error",
        **route_extra("POST", "/items", "add_item", error_code="DECODE_ERROR", location="body", status_code=400),
    )

    out = json.loads(JSONFormatter().format(record))

    assert out["route"]["endpoint"] == "add_item"
    assert out["error"] == {"code": "DECODE_ERROR", "location": "body", "status": 400}


def test_plain_records_have_no_route():
    out = json.loads(JSONFormatter().format(make_record("Assembled 3 routes")))
    assert "route" not in out

    line = RouteFormatter().format(make_record("Assembled 3 routes"))
    assert line.endswith("Assembled 3 routes")


def test_route_formatter_appends_route_and_error():
    line = RouteFormatter().format(
        make_record("Decode error", **route_extra("POST", "/items", "add_item", error_code="DECODE_ERROR", location="body"))
    )
    assert line.endswith("Decode error [POST /items -> add_item] (DECODE_ERROR at body)")


def test_decode_error_log_names_the_endpoint(caplog):
    api = define_api(add=EndpointDefinition(method="POST", path="/n", body=int))
    client = TestClient(create_app(create_router("", api, {"add": lambda ctx: {"n": ctx.body}}, strict=False)))

    with caplog.at_level(logging.WARNING, logger="restdef.api.error_handlers"):
        assert client.post("/n", json="many").status_code == 400

    (record,) = [r for r in caplog.records if r.name == "restdef.api.error_handlers"]
    assert (record.method, record.path, record.endpoint) == ("POST", "/n", "add")
    assert (record.error_code, record.location, record.status_code) == ("DECODE_ERROR", "body", 400)


def test_setup_logging_attaches_handler():
    previous = logging.root.level
    handler = setup_logging("warning", "json")
    try:
        assert isinstance(handler.formatter, JSONFormatter)
        assert logging.root.level == logging.WARNING
    finally:
        logging.root.removeHandler(handler)
        logging.root.setLevel(previous)

    handler = setup_logging("info")
    try:
        assert isinstance(handler.formatter, RouteFormatter)
    finally:
        logging.root.removeHandler(handler)
        logging.root.setLevel(previous)


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("RESTDEF_STRICT_BODY_DECODING", "true")
    monkeypatch.setenv("RESTDEF_LOG_FORMAT", "json")
    s = Settings()
    assert s.strict_body_decoding is True
    assert s.log_format == "json"


def test_router_uses_strict_setting(monkeypatch):
    monkeypatch.setenv("RESTDEF_STRICT_BODY_DECODING", "true")
    get_settings.cache_clear()
    try:
        api = define_api(add=EndpointDefinition(method="POST", path="/n", body=int))
        client = TestClient(create_app(create_router("", api, {"add": lambda ctx: {"n": ctx.body}})))

        assert client.post("/n", json="42").status_code == 400
        assert client.post("/n", json=42).json() == {"n": 42}
    finally:
        get_settings.cache_clear()
