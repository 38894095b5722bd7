"""Tests for AnalyticsBuilder and the application singleton."""

import logging

from analytics_dispatch.builder import AnalyticsBuilder
from analytics_dispatch.consent import ConsentManager, ConsentState
from analytics_dispatch.events.types import AnalyticsEvent, RouteDecision
from analytics_dispatch.instance import get_analytics, reset_analytics, set_analytics
from analytics_dispatch.orchestrator import Analytics
from analytics_dispatch.providers import RecordingProvider
from analytics_dispatch.queue import MemoryStore, PersistentQueue


def passthrough(event, context):
    return event


class TestBuilderCreation:
    def test_create(self):
        assert isinstance(AnalyticsBuilder.create(), AnalyticsBuilder)

    def test_create_returns_new_builders(self):
        assert AnalyticsBuilder.create() is not AnalyticsBuilder.create()

    def test_minimal_build(self):
        analytics = AnalyticsBuilder.create().build()
        assert isinstance(analytics, Analytics)
        assert analytics.providers == []


class TestBuilderConfiguration:
    def test_providers(self, p1, p2):
        analytics = AnalyticsBuilder.create().add_provider(p1).add_providers([p2]).build()
        assert analytics.providers == [p1, p2]

    def test_empty_and_none_inputs(self):
        analytics = (
            AnalyticsBuilder.create()
            .add_provider(None)
            .add_providers(None)
            .add_providers([])
            .add_middleware(None)
            .add_middlewares(None)
            .with_default_context(None)
            .with_consent(None)
            .with_router(None)
            .with_error_handler(None)
            .with_online_check(None)
            .with_queue(None)
            .build()
        )
        assert analytics.providers == []
        assert analytics.middleware.is_empty()

    def test_middlewares(self, p1):
        def tag(event, context):
            return event.with_payload(tagged=True)

        analytics = (
            AnalyticsBuilder.create()
            .add_provider(p1)
            .add_middleware(tag)
            .add_middlewares([passthrough])
            .with_consent({"analytics": True})
            .build()
        )
        analytics.track(AnalyticsEvent(name="a"))

        assert analytics.middleware.size() == 2
        assert p1.get("a").payload == {"tagged": True}

    def test_default_context(self, p1):
        analytics = (
            AnalyticsBuilder.create()
            .add_provider(p1)
            .with_default_context({"user_id": "test-user", "source": "web"})
            .with_consent({"analytics": True})
            .build()
        )
        analytics.track(AnalyticsEvent(name="a"))
        assert p1.get("a").context == {"user_id": "test-user", "source": "web"}

    def test_consent_denied(self, p1):
        analytics = AnalyticsBuilder.create().add_provider(p1).with_consent({"analytics": False}).build()
        analytics.track(AnalyticsEvent(name="a"))
        assert p1.events == []

    def test_consent_state_and_manager(self):
        from_state = AnalyticsBuilder.create().with_consent(ConsentState(analytics=True)).build()
        assert from_state.consent.allows_analytics()

        manager = ConsentManager({"analytics": True})
        shared = AnalyticsBuilder.create().with_consent(manager).build()
        assert shared.consent is manager

    def test_router_and_error_handler(self, p1, p2):
        errors = []
        bad = RecordingProvider("bad", fail_on=["track"])
        analytics = (
            AnalyticsBuilder.create()
            .add_providers([p1, p2, bad])
            .with_router(lambda event: RouteDecision.of(exclude=["p2"]))
            .with_error_handler(lambda error, event=None: errors.append(error))
            .with_consent({"analytics": True})
            .build()
        )
        analytics.track(AnalyticsEvent(name="a"))

        assert len(p1.events) == 1
        assert p2.events == []
        assert errors == [bad.error]

    def test_online_check_and_queue(self, p1):
        queue = PersistentQueue(store=MemoryStore())
        analytics = (
            AnalyticsBuilder.create()
            .add_provider(p1)
            .with_consent({"analytics": True})
            .with_online_check(lambda: False)
            .with_queue(queue)
            .build()
        )
        analytics.track(AnalyticsEvent(name="a"))

        assert p1.events == []
        assert queue.size() == 1

    def test_debug_mode_adds_logging(self, p1, caplog):
        analytics = (
            AnalyticsBuilder.create()
            .add_provider(p1)
            .with_debug_mode(True)
            .with_consent({"analytics": True})
            .build()
        )
        assert analytics.debug
        assert analytics.middleware.size() == 1

        with caplog.at_level(logging.INFO):
            analytics.track(AnalyticsEvent(name="debug_me"))
        assert "debug_me" in caplog.text

    def test_debug_mode_off(self):
        analytics = AnalyticsBuilder.create().with_debug_mode(False).build()
        assert not analytics.debug
        assert analytics.middleware.is_empty()


class TestBuilderIndependence:
    def test_independent_instances(self):
        provider1 = RecordingProvider("mock1")
        provider2 = RecordingProvider("mock2")

        analytics1 = AnalyticsBuilder.create().add_provider(provider1).build()
        analytics2 = AnalyticsBuilder.create().add_provider(provider2).build()

        assert analytics1 is not analytics2
        assert analytics1.providers == [provider1]
        assert analytics2.providers == [provider2]

    def test_repeated_build(self, p1, p2):
        builder = AnalyticsBuilder.create().add_provider(p1).with_default_context({"source": "web"})
        first = builder.build()
        second = builder.build()

        first.set_default_context({"source": "mobile"}).add_provider(p2)
        first.set_consent({"analytics": True})

        assert second.default_context == {"source": "web"}
        assert second.provider_ids() == ["p1"]
        assert not second.consent.allows_analytics()


class TestSingleton:
    def test_lazy_default(self):
        first = get_analytics()
        assert isinstance(first, Analytics)
        assert get_analytics() is first

    def test_set_and_reset(self):
        custom = Analytics()
        set_analytics(custom)
        assert get_analytics() is custom

        reset_analytics()
        assert get_analytics() is not custom
