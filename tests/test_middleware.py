"""Tests for the middleware chain and built-in middleware."""

import logging

from analytics_dispatch.events.catalog import EventName
from analytics_dispatch.events.types import AnalyticsEvent, RouteDecision
from analytics_dispatch.middleware import (
    MiddlewareChain,
    context_router,
    default_middlewares,
    logging_middleware,
    pii_scrubber_middleware,
    rename_middleware,
    routing_middleware,
    sampling_middleware,
    validation_middleware,
)


def add_flag(event, context):
    return event.with_payload(flag=True)


def drop_all(event, context):
    return None


def explode(event, context):
    raise RuntimeError("middleware failure")


class TestMiddlewareChain:
    def test_empty_chain_passes_through(self):
        evt = AnalyticsEvent(name="a")
        assert MiddlewareChain().process(evt) is evt

    def test_runs_in_order(self):
        order = []

        def first(event, context):
            order.append("first")
            return event

        def second(event, context):
            order.append("second")
            return event

        MiddlewareChain([first, second]).process(AnalyticsEvent(name="a"))
        assert order == ["first", "second"]

    def test_transform(self):
        result = MiddlewareChain([add_flag]).process(AnalyticsEvent(name="a"))
        assert result.payload == {"flag": True}

    def test_none_drops_and_short_circuits(self):
        reached = []

        def later(event, context):
            reached.append(event)
            return event

        result = MiddlewareChain([drop_all, later]).process(AnalyticsEvent(name="a"))
        assert result is None
        assert reached == []

    def test_throwing_step_is_pass_through(self):
        evt = AnalyticsEvent(name="a", payload={"x": 1})
        result = MiddlewareChain([explode, add_flag]).process(evt)
        assert result.payload == {"x": 1, "flag": True}

    def test_non_event_result_is_pass_through(self):
        def wrong(event, context):
            return {"name": "nope"}

        evt = AnalyticsEvent(name="a")
        assert MiddlewareChain([wrong]).process(evt) is evt

    def test_downstream_sees_updated_context(self):
        seen = []

        def enrich(event, context):
            return event.with_context(session_id="s1")

        def inspect(event, context):
            seen.append(context)
            return event

        MiddlewareChain([enrich, inspect]).process(
            AnalyticsEvent(name="a", context={"source": "web"}),
            {"source": "web"},
        )
        assert seen == [{"source": "web", "session_id": "s1"}]

    def test_use_ignores_none_and_chains(self):
        chain = MiddlewareChain()
        assert chain.use(None) is chain
        chain.use(add_flag).use(drop_all)
        assert chain.size() == 2
        assert len(chain) == 2

    def test_clear(self):
        chain = MiddlewareChain([add_flag])
        assert not chain.is_empty()
        chain.clear()
        assert chain.is_empty()


class TestLoggingMiddleware:
    def test_logs_without_changing_event(self, caplog):
        evt = AnalyticsEvent(name="page_view", payload={"page_path": "/"})
        with caplog.at_level(logging.INFO):
            result = logging_middleware(prefix="[T]")(evt, None)
        assert result is evt
        assert "[T] page_view" in caplog.text

    def test_event_filter(self, caplog):
        mw = logging_middleware(event_filter=[EventName.CLICKED_CTA])
        with caplog.at_level(logging.INFO):
            mw(AnalyticsEvent(name="page_view"), None)
        assert "page_view" not in caplog.text

    def test_disabled(self, caplog):
        with caplog.at_level(logging.INFO):
            logging_middleware(enabled=False)(AnalyticsEvent(name="page_view"), None)
        assert caplog.text == ""


class TestPiiScrubber:
    def test_redacts_fields_and_emails(self):
        mw = pii_scrubber_middleware()
        evt = AnalyticsEvent(
            name="a",
            payload={
                "Email": "me@example.com",
                "note": "contact me@example.com please",
                "nested": {"phone": "555", "ok": 1},
                "items": ["x@y.io", 3],
            },
        )
        result = mw(evt, None)
        assert result.payload == {
            "Email": "[REDACTED]",
            "note": "contact [REDACTED] please",
            "nested": {"phone": "[REDACTED]", "ok": 1},
            "items": ["[REDACTED]", 3],
        }
        # Input untouched
        assert evt.payload["Email"] == "me@example.com"

    def test_custom_fields(self):
        mw = pii_scrubber_middleware(pii_fields=["wallet_address"], replace_with="***")
        result = mw(AnalyticsEvent(name="a", payload={"wallet_address": "0x1"}), None)
        assert result.payload == {"wallet_address": "***"}


class TestSampling:
    def test_drops_above_rate(self):
        mw = sampling_middleware(default_rate=0.5, rng=lambda: 0.7)
        assert mw(AnalyticsEvent(name="a"), None) is None

    def test_keeps_below_rate_and_marks_context(self):
        mw = sampling_middleware(default_rate=0.5, rng=lambda: 0.2)
        result = mw(AnalyticsEvent(name="a"), None)
        assert result.context == {"sampled": True, "sample_rate": 0.5}

    def test_per_event_rate(self):
        mw = sampling_middleware(event_rates={EventName.PAGE_VIEW: 0.0}, rng=lambda: 0.0)
        assert mw(AnalyticsEvent(name="page_view"), None) is None
        assert mw(AnalyticsEvent(name="clicked_cta"), None) is not None


class TestRename:
    def test_rename(self):
        mw = rename_middleware({EventName.PAGE_VIEW: "Page Viewed"})
        assert mw(AnalyticsEvent(name="page_view"), None).name == "Page Viewed"
        evt = AnalyticsEvent(name="other")
        assert mw(evt, None) is evt


class TestValidationMiddleware:
    def test_non_strict_keeps_invalid(self):
        errors = []
        mw = validation_middleware(on_validation_error=lambda name, e: errors.append(name))
        evt = AnalyticsEvent(name="page_view", payload={})
        assert mw(evt, None) is evt
        assert errors == ["page_view"]

    def test_strict_drops_invalid(self):
        mw = validation_middleware(strict=True)
        assert mw(AnalyticsEvent(name="page_view", payload={}), None) is None

    def test_valid_passes(self):
        mw = validation_middleware(strict=True)
        evt = AnalyticsEvent(name="page_view", payload={"page_path": "/"})
        assert mw(evt, None) is evt


class TestRouting:
    def test_routing_middleware_with_context_router(self):
        mw = routing_middleware({EventName.PAGE_VIEW: {"exclude_providers": ["ga"]}})
        routed = mw(AnalyticsEvent(name="page_view"), None)
        assert context_router(routed) == RouteDecision.of(exclude=["ga"])

    def test_context_router_without_rules(self):
        assert context_router(AnalyticsEvent(name="a")) is None


class TestDefaults:
    def test_default_middlewares(self):
        chain = MiddlewareChain(default_middlewares())
        assert chain.size() == 4
