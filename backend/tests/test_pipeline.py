"""
Archetype Backend - Pipeline Unit Tests
=========================================

What:  Tests for Pipeline.run() and stage-order validation, without HTTP.
How:   Recording stages append to a shared call log; a bare Starlette
       Request stands in for real traffic.

What we test:
    ✅ Pre-hooks run in order, then the handler, then post-hooks in order
    ✅ A short-circuit skips later pre-hooks and the handler, keeps post-hooks
    ✅ A raising stage skips everything else and renders an error response
    ✅ Error responses still get decorate() headers but never after()
    ✅ A failing post-hook is logged and the chain continues
    ✅ Misordered or duplicated stages are rejected at construction
"""

import json
import logging

import pytest
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from archetype.context import RequestContext
from archetype.error_handlers import ErrorFormatter
from archetype.exceptions import forbidden
from archetype.middleware.pipeline import Pipeline, Stage, validate_order


class Recorder(Stage):
    def __init__(self, name, calls, short_circuit=False, fail_before=None, fail_after=None):
        self.name = name
        self.calls = calls
        self.short_circuit = short_circuit
        self.fail_before = fail_before
        self.fail_after = fail_after

    async def before(self, ctx, request):
        self.calls.append(f"before:{self.name}")
        if self.fail_before is not None:
            raise self.fail_before
        if self.short_circuit:
            return PlainTextResponse("short", status_code=204)
        return None

    async def after(self, ctx, request, response):
        self.calls.append(f"after:{self.name}")
        if self.fail_after is not None:
            raise self.fail_after
        response.headers[f"X-{self.name}"] = "1"


class Decorator(Recorder):
    async def decorate(self, ctx, request, response):
        self.calls.append(f"decorate:{self.name}")
        response.headers[f"X-decorated-{self.name}"] = "1"


def make_request(method="GET", path="/things"):
    return Request({
        "type": "http",
        "method": method,
        "path": path,
        "headers": [],
        "query_string": b"",
    })


def make_ctx():
    return RequestContext(method="GET", path="/things", client_ip="127.0.0.1", user_agent="", request_id="rid")


@pytest.fixture
def calls():
    return []


@pytest.fixture
def handler(calls):
    async def _handler(ctx, request):
        calls.append("handler")
        return PlainTextResponse("ok")

    return _handler


class TestRun:
    @pytest.mark.asyncio
    async def test_order_of_hooks(self, calls, handler):
        pipeline = Pipeline(
            [Recorder("request_id", calls), Recorder("a", calls), Recorder("b", calls)],
            ErrorFormatter(production=False),
        )
        response = await pipeline.run(make_ctx(), make_request(), handler)

        assert response.status_code == 200
        assert calls == [
            "before:request_id", "before:a", "before:b",
            "handler",
            "after:request_id", "after:a", "after:b",
        ]

    @pytest.mark.asyncio
    async def test_short_circuit_skips_handler_but_runs_post_hooks(self, calls, handler):
        ctx = make_ctx()
        pipeline = Pipeline(
            [Recorder("request_id", calls), Recorder("a", calls, short_circuit=True), Recorder("b", calls)],
            ErrorFormatter(production=False),
        )
        response = await pipeline.run(ctx, make_request(), handler)

        assert response.status_code == 204
        assert "handler" not in calls
        assert "before:b" not in calls
        assert calls[-3:] == ["after:request_id", "after:a", "after:b"]
        assert response.headers["X-b"] == "1"
        assert ctx.short_circuited_by == "a"

    @pytest.mark.asyncio
    async def test_stage_error_bypasses_after_hooks(self, calls, handler):
        pipeline = Pipeline(
            [Recorder("request_id", calls), Recorder("a", calls, fail_before=forbidden()), Recorder("b", calls)],
            ErrorFormatter(production=False),
        )
        response = await pipeline.run(make_ctx(), make_request(), handler)

        assert response.status_code == 403
        assert json.loads(response.body)["error"]["errorId"] == "rid"
        assert calls == ["before:request_id", "before:a"]
        assert "X-request_id" not in response.headers

    @pytest.mark.asyncio
    async def test_handler_error_rendered_as_internal(self, calls):
        async def broken(ctx, request):
            raise RuntimeError("handler blew up")

        pipeline = Pipeline([Recorder("request_id", calls)], ErrorFormatter(production=True))
        response = await pipeline.run(make_ctx(), make_request(), broken)

        assert response.status_code == 500
        assert json.loads(response.body)["error"]["message"] == "Internal Server Error"
        assert calls == ["before:request_id"]

    @pytest.mark.asyncio
    async def test_error_response_gets_decorate_but_not_after(self, calls, handler):
        pipeline = Pipeline(
            [
                Decorator("request_id", calls),
                Decorator("a", calls, fail_before=forbidden()),
                Decorator("b", calls),
            ],
            ErrorFormatter(production=False),
        )
        response = await pipeline.run(make_ctx(), make_request(), handler)

        assert response.status_code == 403
        assert calls == [
            "before:request_id", "before:a",
            "decorate:request_id", "decorate:a", "decorate:b",
        ]
        assert response.headers["X-decorated-b"] == "1"
        assert "X-b" not in response.headers

    @pytest.mark.asyncio
    async def test_success_runs_decorate_before_after_per_stage(self, calls, handler):
        pipeline = Pipeline([Decorator("request_id", calls), Decorator("a", calls)], ErrorFormatter(production=False))
        await pipeline.run(make_ctx(), make_request(), handler)

        assert calls[-4:] == ["decorate:request_id", "after:request_id", "decorate:a", "after:a"]

    @pytest.mark.asyncio
    async def test_failing_post_hook_is_tolerated(self, calls, handler, caplog):
        pipeline = Pipeline(
            [
                Recorder("request_id", calls),
                Recorder("a", calls, fail_after=RuntimeError("bad hook")),
                Recorder("b", calls),
            ],
            ErrorFormatter(production=False),
        )
        with caplog.at_level(logging.WARNING):
            response = await pipeline.run(make_ctx(), make_request(), handler)

        assert response.status_code == 200
        assert response.headers["X-b"] == "1"
        assert any("Post-hook a.after failed" in r.getMessage() for r in caplog.records)


class TestValidateOrder:
    def test_request_id_must_be_first(self):
        with pytest.raises(ValueError):
            validate_order(["cors", "request_id"])

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            validate_order(["request_id", "cors", "cors"])

    @pytest.mark.parametrize(
        "names",
        [
            ["request_id", "schema", "content_type"],
            ["request_id", "rate_limit", "authenticate", "authorize"],
            ["request_id", "authorize", "authenticate"],
            ["request_id", "authenticate", "schema", "authorize"],
        ],
    )
    def test_constraint_violations(self, names):
        with pytest.raises(ValueError):
            validate_order(names)

    def test_full_default_order_accepted(self):
        validate_order([
            "request_id", "cors", "security_headers", "content_type",
            "authenticate", "rate_limit", "authorize", "schema", "access_log",
        ])

    def test_missing_optional_stage_accepted(self):
        validate_order(["request_id", "authenticate", "authorize", "schema"])

    def test_pipeline_constructor_validates(self):
        with pytest.raises(ValueError):
            Pipeline([Stage()], ErrorFormatter(production=False))

    def test_names_property(self, calls):
        pipeline = Pipeline([Recorder("request_id", calls), Recorder("x", calls)], ErrorFormatter(production=False))
        assert pipeline.names == ["request_id", "x"]
