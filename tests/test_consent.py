"""Tests for consent state and manager."""

import pytest

from analytics_dispatch.consent import ConsentCategory, ConsentManager, ConsentState


class TestConsentState:
    def test_defaults_deny(self):
        state = ConsentState()
        assert not state.allows("analytics")
        assert not state.allows(ConsentCategory.MARKETING)
        assert state.allows(ConsentCategory.NECESSARY)

    def test_unknown_category_denied(self):
        assert not ConsentState().allows("telepathy")


class TestConsentManager:
    def test_default_deny(self):
        manager = ConsentManager()
        assert not manager.allows_analytics()
        assert not manager.allows("functional")

    def test_initial_state(self):
        manager = ConsentManager({"analytics": True})
        assert manager.allows_analytics()
        assert not manager.allows("marketing")

    def test_get_returns_copy(self):
        manager = ConsentManager()
        state = manager.get()
        state.analytics = True
        assert not manager.allows_analytics()

    def test_update_merges(self):
        manager = ConsentManager({"marketing": True})
        manager.update({"analytics": True})
        assert manager.allows("marketing")
        assert manager.allows_analytics()

    def test_update_drops_unknown_keys(self):
        manager = ConsentManager()
        state = manager.update({"analytics": True, "telepathy": True})
        assert "telepathy" not in state.to_dict()

    def test_non_boolean_treated_as_denied(self):
        manager = ConsentManager({"analytics": True})
        manager.update({"analytics": "yes"})
        assert not manager.allows_analytics()

    def test_necessary_forced_on(self):
        manager = ConsentManager()
        manager.update({"necessary": False})
        assert manager.allows(ConsentCategory.NECESSARY)

    def test_update_stamps_increasing_timestamp(self):
        manager = ConsentManager()
        first = manager.get().updated_at
        second = manager.update({"analytics": True}).updated_at
        third = manager.update({"analytics": True}).updated_at
        assert first < second < third

    def test_set_category(self):
        manager = ConsentManager()
        manager.set_category(ConsentCategory.PERSONALIZATION, True)
        assert manager.allows("personalization")

    def test_has_all_and_any(self):
        manager = ConsentManager({"analytics": True})
        assert manager.has(["analytics", "necessary"])
        assert not manager.has(["analytics", "marketing"])
        assert manager.has(["analytics", "marketing"], mode="any")
        assert not manager.has(["marketing", "functional"], mode="any")

    def test_has_empty(self):
        manager = ConsentManager()
        assert manager.has([])
        assert not manager.has([], mode="any")

    def test_has_bad_mode(self):
        with pytest.raises(ValueError):
            ConsentManager().has(["analytics"], mode="most")

    def test_get_for(self):
        manager = ConsentManager({"analytics": True})
        assert manager.get_for(["analytics", ConsentCategory.MARKETING]) == {
            "analytics": True,
            "marketing": False,
        }


class TestConsentListeners:
    def test_listener_called_with_snapshot(self):
        manager = ConsentManager()
        seen = []
        manager.add_listener(seen.append)

        manager.update({"analytics": True})

        assert len(seen) == 1
        assert seen[0].analytics is True

    def test_failing_listener_does_not_block_others(self):
        manager = ConsentManager()
        seen = []

        def broken(state):
            raise RuntimeError("listener failure")

        manager.add_listener(broken)
        manager.add_listener(seen.append)

        manager.update({"analytics": True})
        assert len(seen) == 1

    def test_remove_listener(self):
        manager = ConsentManager()
        seen = []
        manager.add_listener(seen.append)
        manager.remove_listener(seen.append)

        manager.update({"analytics": True})
        assert seen == []

    def test_listener_registered_once(self):
        manager = ConsentManager()
        seen = []
        manager.add_listener(seen.append)
        manager.add_listener(seen.append)

        manager.update({"analytics": True})
        assert len(seen) == 1
