"""Tests for the hook/filter system."""

import logging
from unittest.mock import patch

import pytest

from postback.lib import observability
from postback.lib.hooks import CSRF_FAILED, HookRegistry, form_submitted_hook


@pytest.fixture
def registry():
    """Create a fresh HookRegistry for each test."""
    return HookRegistry()


class TestHookRegistry:
    """Test the HookRegistry class."""

    def test_add_action_registers_handler(self, registry):
        """Test that add_action registers a handler."""
        def my_handler():
            pass

        registry.add_action("test_action", my_handler)
        assert registry.has_action("test_action")

    def test_add_filter_registers_handler(self, registry):
        """Test that add_filter registers a handler."""
        def my_filter(value):
            return value

        registry.add_filter("test_filter", my_filter)
        assert registry.has_filter("test_filter")

    def test_action_priority_ordering(self, registry):
        """Test that actions are called in priority order."""
        call_order = []

        def handler_low():
            call_order.append("low")

        def handler_high():
            call_order.append("high")

        registry.add_action("test", handler_high, priority=20)
        registry.add_action("test", handler_low, priority=5)

        registry.do_action("test")

        assert call_order == ["low", "high"]

    def test_equal_priority_keeps_registration_order(self, registry):
        call_order = []
        for name in ("a", "b", "c"):
            registry.add_action("test", lambda n=name: call_order.append(n))

        registry.do_action("test")

        assert call_order == ["a", "b", "c"]

    def test_filter_priority_ordering(self, registry):
        """Test that filters are applied in priority order."""
        def append_a(value):
            return value + "a"

        def append_b(value):
            return value + "b"

        registry.add_filter("test", append_b, priority=20)
        registry.add_filter("test", append_a, priority=10)

        assert registry.apply_filters("test", "") == "ab"

    def test_apply_filters_chains_values(self, registry):
        """Test that apply_filters chains filter return values."""
        registry.add_filter("test", lambda value: value * 2, priority=10)
        registry.add_filter("test", lambda value: value + 10, priority=20)

        assert registry.apply_filters("test", 5) == 20  # (5 * 2) + 10

    def test_filters_receive_extra_arguments(self, registry):
        registry.add_filter("test", lambda value, form_id: f"{value}:{form_id}")
        assert registry.apply_filters("test", "v", "contact") == "v:contact"

    def test_do_action_propagates_errors(self, registry):
        def broken():
            raise RuntimeError("boom")

        registry.add_action("test", broken)
        with pytest.raises(RuntimeError):
            registry.do_action("test")

    def test_remove_action(self, registry):
        """Test removing an action handler."""
        def my_handler():
            pass

        registry.add_action("test", my_handler)
        assert registry.remove_action("test", my_handler) is True
        assert not registry.has_action("test")

    def test_remove_filter(self, registry):
        """Test removing a filter handler."""
        def my_filter(value):
            return value

        registry.add_filter("test", my_filter)
        assert registry.remove_filter("test", my_filter) is True
        assert not registry.has_filter("test")

    def test_remove_nonexistent_returns_false(self, registry):
        """Test that removing a nonexistent handler returns False."""
        assert registry.remove_action("nonexistent", lambda: None) is False

    def test_empty_hook_returns_original_value(self, registry):
        """Test that filtering with no handlers returns original value."""
        assert registry.apply_filters("nonexistent", "original") == "original"

    def test_clear_removes_all_hooks(self, registry):
        """Test that clear removes all registered hooks."""
        registry.add_action("action1", lambda: None)
        registry.add_filter("filter1", lambda x: x)

        registry.clear()

        assert not registry.has_action("action1")
        assert not registry.has_filter("filter1")


class TestIsolatedActions:
    def test_failing_handler_does_not_stop_others(self, registry):
        calls = []

        def broken(form, message):
            calls.append("broken")
            raise ValueError("nope")

        registry.add_action(CSRF_FAILED, broken)
        registry.add_action(CSRF_FAILED, lambda form, message: calls.append("ok"))

        failures = registry.do_action_isolated(CSRF_FAILED, None, "msg")

        assert calls == ["broken", "ok"]
        assert failures == 1

    def test_failures_are_logged(self, registry, caplog):
        registry.add_action("test", lambda: 1 / 0)
        with caplog.at_level(logging.WARNING, logger="postback.lib.hooks"):
            registry.do_action_isolated("test")
        assert "Hook handler for test failed" in caplog.text
        assert "ZeroDivisionError" in caplog.text

    def test_failures_reported_to_observability(self, registry):
        registry.add_action("test", lambda: 1 / 0)
        with patch.object(observability, "exception", return_value=False) as mock_exc:
            registry.do_action_isolated("test")
        mock_exc.assert_called_once_with("Hook handler for test failed")


class TestHookNames:
    def test_per_form_submitted_hook(self):
        assert form_submitted_hook("contact") == "form_contact_submitted"

    def test_registries_are_independent(self):
        first, second = HookRegistry(), HookRegistry()
        first.add_action(CSRF_FAILED, lambda form, message: None)
        assert not second.has_action(CSRF_FAILED)
