import json
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from starlette.datastructures import UploadFile
from starlette.responses import PlainTextResponse
from starlette.testclient import TestClient

from restdef.api.error_handlers import create_app
from restdef.domain.models import EndpointDefinition, define_api
from restdef.routing.assembler import build_router, create_router


class Item(BaseModel):
    name: str


class Filter(BaseModel):
    limit: int = 10
    tag: Optional[str] = None


API = define_api(
    get_item=EndpointDefinition(method="GET", path="/items/{id}", response=Item),
    list_items=EndpointDefinition(method="GET", path="/items", query=Filter),
    add_number=EndpointDefinition(method="POST", path="/numbers", body=int),
    add_item=EndpointDefinition(method="POST", path="/items", body=Item, response=Item),
    maybe=EndpointDefinition(method="GET", path="/maybe"),
    greet=EndpointDefinition(method="GET", path="/greet"),
    raw=EndpointDefinition(method="DELETE", path="/raw"),
    broken=EndpointDefinition(method="GET", path="/broken"),
)


class Recorder:
    def __init__(self):
        self.calls = []

    def record(self, name, ctx):
        self.calls.append((name, ctx))


def make_handlers(rec: Recorder) -> dict:
    def get_item(ctx):
        rec.record("get_item", ctx)
        return {"name": "x", "id": ctx.params["id"]}

    def list_items(ctx):
        rec.record("list_items", ctx)
        return {"limit": ctx.query.limit, "tag": ctx.query.tag}

    async def add_number(ctx):
        rec.record("add_number", ctx)
        return {"value": ctx.body}

    def add_item(ctx):
        rec.record("add_item", ctx)
        ctx.status_code = 201
        return Item(name=ctx.body.name.upper())

    def maybe(ctx):
        rec.record("maybe", ctx)
        return None

    def greet(ctx):
        return "hello"

    def raw(ctx):
        ctx.respond(PlainTextResponse("gone", status_code=410))

    def broken(ctx):
        raise RuntimeError("handler failed")

    return {
        "get_item": get_item,
        "list_items": list_items,
        "add_number": add_number,
        "add_item": add_item,
        "maybe": maybe,
        "greet": greet,
        "raw": raw,
        "broken": broken,
    }


def make_client(rec: Recorder, prefix: str = "", app=None) -> TestClient:
    router = create_router(prefix, API, make_handlers(rec), app=app)
    return TestClient(create_app(router), raise_server_exceptions=False)


def test_get_item_passes_raw_params_and_empty_body_query():
    rec = Recorder()
    client = make_client(rec)

    resp = client.get("/items/42")

    assert resp.status_code == 200
    assert resp.json() == {"name": "x", "id": "42"}
    (name, ctx), = rec.calls
    assert ctx.params == {"id": "42"}
    assert ctx.body is None
    assert ctx.query is None


def test_query_is_decoded():
    rec = Recorder()
    client = make_client(rec)

    resp = client.get("/items", params={"limit": "5", "tag": "new"})
    assert resp.status_code == 200
    assert resp.json() == {"limit": 5, "tag": "new"}

    resp = client.get("/items")
    assert resp.json() == {"limit": 10, "tag": None}


def test_bad_query_is_400():
    rec = Recorder()
    client = make_client(rec)

    resp = client.get("/items", params={"limit": "lots"})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "DECODE_ERROR"
    assert rec.calls == []


def test_number_body_decoded_or_rejected():
    rec = Recorder()
    client = make_client(rec)

    bad = client.post("/numbers", json="not a number")
    assert bad.status_code == 400
    assert bad.json()["error"]["details"][0]["field"] == "body"
    assert rec.calls == []

    good = client.post("/numbers", json=42)
    assert good.status_code == 200
    assert good.json() == {"value": 42}
    (name, ctx), = rec.calls
    assert ctx.body == 42


def test_model_body_is_decoded_value_not_raw():
    rec = Recorder()
    client = make_client(rec)

    resp = client.post("/items", json={"name": "lamp"})

    assert resp.status_code == 201
    assert resp.json() == {"name": "LAMP"}
    (name, ctx), = rec.calls
    assert isinstance(ctx.body, Item)


def test_malformed_json_is_400():
    rec = Recorder()
    client = make_client(rec)

    resp = client.post("/items", content=b"{not json", headers={"content-type": "application/json"})

    assert resp.status_code == 400
    assert rec.calls == []


def test_none_defers_to_next_app_once():
    rec = Recorder()
    downstream_calls = []

    async def downstream(scope, receive, send):
        downstream_calls.append(scope["path"])
        await PlainTextResponse("from downstream")(scope, receive, send)

    client = make_client(rec, app=downstream)
    resp = client.get("/maybe")

    assert resp.status_code == 200
    assert resp.text == "from downstream"
    assert downstream_calls == ["/maybe"]
    assert len(rec.calls) == 1


def test_value_does_not_reach_next_app():
    downstream_calls = []

    async def downstream(scope, receive, send):
        downstream_calls.append(scope["path"])
        await PlainTextResponse("from downstream")(scope, receive, send)

    client = make_client(Recorder(), app=downstream)
    assert client.get("/items/1").status_code == 200
    assert downstream_calls == []


def test_deferred_request_body_is_replayed_downstream():
    bodies = []
    api = define_api(maybe=EndpointDefinition(method="POST", path="/maybe", body=Item))

    async def downstream(scope, receive, send):
        message = await receive()
        bodies.append(message["body"])
        await PlainTextResponse("ok")(scope, receive, send)

    router = create_router("", api, {"maybe": lambda ctx: None}, app=downstream)
    client = TestClient(create_app(router))
    client.post("/maybe", json={"name": "a"})

    assert len(bodies) == 1
    assert json.loads(bodies[0]) == {"name": "a"}


def test_none_without_next_app_is_404():
    client = make_client(Recorder())
    assert client.get("/maybe").status_code == 404


def test_unmatched_request_is_404():
    client = make_client(Recorder())
    assert client.get("/nowhere").status_code == 404
    # path exists, method does not
    assert client.put("/items/1").status_code == 404


def test_string_result_is_text():
    client = make_client(Recorder())
    resp = client.get("/greet")
    assert resp.text == "hello"
    assert resp.headers["content-type"].startswith("text/plain")


def test_direct_response():
    client = make_client(Recorder())
    resp = client.delete("/raw")
    assert resp.status_code == 410
    assert resp.text == "gone"


def test_handler_error_is_500():
    client = make_client(Recorder())
    assert client.get("/broken").status_code == 500


def test_prefix():
    client = make_client(Recorder(), prefix="/api")
    assert client.get("/api/items/7").json() == {"name": "x", "id": "7"}
    assert client.get("/items/7").status_code == 404


def test_builder_router_behaves_like_hash_router():
    handlers = make_handlers(Recorder())

    def define_all(builder):
        for name in reversed(list(API)):
            builder = builder[name](handlers[name])
        return builder

    built = TestClient(create_app(build_router("", API, define_all)), raise_server_exceptions=False)
    hashed = TestClient(create_app(create_router("", API, handlers)), raise_server_exceptions=False)

    for method, url, kwargs in [
        ("GET", "/items/42", {}),
        ("GET", "/items?limit=3", {}),
        ("POST", "/numbers", {"json": "nope"}),
        ("POST", "/numbers", {"json": 5}),
        ("GET", "/maybe", {}),
        ("GET", "/broken", {}),
    ]:
        a = built.request(method, url, **kwargs)
        b = hashed.request(method, url, **kwargs)
        assert (a.status_code, a.content) == (b.status_code, b.content)


def test_missing_required_body_is_400():
    rec = Recorder()
    client = make_client(rec)

    resp = client.post("/items")

    assert resp.status_code == 400
    assert resp.json()["error"]["details"][0]["field"] == "body"
    assert rec.calls == []


def test_optional_body_may_be_omitted():
    api = define_api(touch=EndpointDefinition(method="POST", path="/touch", body=Optional[Item]))
    router = create_router("", api, {"touch": lambda ctx: {"name": ctx.body.name if ctx.body else None}})
    client = TestClient(create_app(router))

    assert client.post("/touch").json() == {"name": None}
    assert client.post("/touch", json={"name": "a"}).json() == {"name": "a"}


class Color(Enum):
    RED = "red"
    BLUE = "blue"


class Event(BaseModel):
    color: Color
    at: datetime


def test_strict_json_body_with_enum_and_datetime():
    seen = []
    api = define_api(log_event=EndpointDefinition(method="POST", path="/events", body=Event))

    def log_event(ctx):
        seen.append(ctx.body)
        return ctx.body

    client = TestClient(create_app(create_router("", api, {"log_event": log_event}, strict=True)))

    resp = client.post("/events", json={"color": "red", "at": "2024-01-01T00:00:00Z"})

    assert resp.status_code == 200
    assert resp.json()["color"] == "red"
    assert seen[0].color is Color.RED
    assert seen[0].at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert client.post("/events", json={"color": "green", "at": "2024-01-01T00:00:00Z"}).status_code == 400


def test_urlencoded_form_body_is_decoded():
    rec = Recorder()
    client = make_client(rec)

    resp = client.post("/items", data={"name": "lamp"})

    assert resp.status_code == 201
    assert resp.json() == {"name": "LAMP"}
    (name, ctx), = rec.calls
    assert ctx.body == Item(name="lamp")
    assert ctx.body_format == "form"


class Upload(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    title: str
    tags: list[str] = []
    file: UploadFile


def test_multipart_form_body_is_decoded():
    api = define_api(upload=EndpointDefinition(method="POST", path="/uploads", body=Upload))

    async def upload(ctx):
        content = await ctx.body.file.read()
        return {"title": ctx.body.title, "tags": ctx.body.tags, "size": len(content)}

    client = TestClient(create_app(create_router("", api, {"upload": upload})))

    resp = client.post(
        "/uploads",
        data={"title": "notes", "tags": ["a", "b"]},
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )

    assert resp.status_code == 200
    assert resp.json() == {"title": "notes", "tags": ["a", "b"], "size": 5}
