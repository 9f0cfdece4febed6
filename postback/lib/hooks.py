"""Hook/filter registry used for form extension points.

Actions: execute callbacks without modifying a value (side effects)
Filters: execute callbacks that can modify a value (transformations)

A registry is owned by a single FormContext, so handlers registered while
serving one request never leak into another.

Usage:
    context.hooks.add_action(CSRF_FAILED, lambda form, msg: audit(form.id, msg))
    context.hooks.add_filter(FORM_SUBMITTED, stamp_result)

    context.hooks.do_action_isolated(CSRF_FAILED, form, message)
    result = context.hooks.apply_filters(FORM_SUBMITTED, result, form)
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from postback.lib import observability

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(order=True)
class HookHandler:
    """A registered hook handler with priority."""

    priority: int
    callback: Callable = field(compare=False)

    def call(self, *args: Any, **kwargs: Any) -> Any:
        return self.callback(*args, **kwargs)


class HookRegistry:
    """Registry for actions and filters.

    Handlers with equal priority run in registration order.
    """

    def __init__(self) -> None:
        self._actions: dict[str, list[HookHandler]] = defaultdict(list)
        self._filters: dict[str, list[HookHandler]] = defaultdict(list)

    def add_action(
        self,
        hook_name: str,
        callback: Callable[..., Any],
        priority: int = 10,
    ) -> None:
        """Register an action callback.

        Args:
            hook_name: Name of the action hook
            callback: Function to call when action is triggered
            priority: Lower numbers execute first (default: 10)
        """
        handler = HookHandler(priority=priority, callback=callback)
        self._actions[hook_name].append(handler)
        self._actions[hook_name].sort()

    def add_filter(
        self,
        hook_name: str,
        callback: Callable[..., T],
        priority: int = 10,
    ) -> None:
        """Register a filter callback.

        Args:
            hook_name: Name of the filter hook
            callback: Function to call to modify value
            priority: Lower numbers execute first (default: 10)
        """
        handler = HookHandler(priority=priority, callback=callback)
        self._filters[hook_name].append(handler)
        self._filters[hook_name].sort()

    def remove_action(self, hook_name: str, callback: Callable[..., Any]) -> bool:
        """Remove an action callback. Returns True if it was registered."""
        handlers = self._actions.get(hook_name, [])
        for i, handler in enumerate(handlers):
            if handler.callback is callback:
                handlers.pop(i)
                return True
        return False

    def remove_filter(self, hook_name: str, callback: Callable[..., Any]) -> bool:
        """Remove a filter callback. Returns True if it was registered."""
        handlers = self._filters.get(hook_name, [])
        for i, handler in enumerate(handlers):
            if handler.callback is callback:
                handlers.pop(i)
                return True
        return False

    def has_action(self, hook_name: str) -> bool:
        """Check if any actions are registered for a hook."""
        return bool(self._actions.get(hook_name))

    def has_filter(self, hook_name: str) -> bool:
        """Check if any filters are registered for a hook."""
        return bool(self._filters.get(hook_name))

    def do_action(self, hook_name: str, *args: Any, **kwargs: Any) -> None:
        """Execute all registered action callbacks, propagating failures."""
        with observability.span(f"hook.action:{hook_name}", hook_name=hook_name):
            for handler in list(self._actions.get(hook_name, [])):
                handler.call(*args, **kwargs)

    def do_action_isolated(self, hook_name: str, *args: Any, **kwargs: Any) -> int:
        """Execute all registered action callbacks, logging failures.

        A raising handler never prevents the remaining handlers from running.

        Returns:
            The number of handlers that raised.
        """
        failures = 0
        with observability.span(f"hook.action:{hook_name}", hook_name=hook_name):
            for handler in list(self._actions.get(hook_name, [])):
                try:
                    handler.call(*args, **kwargs)
                except Exception:
                    failures += 1
                    logger.warning("Hook handler for %s failed", hook_name, exc_info=True)
                    observability.exception(f"Hook handler for {hook_name} failed")
        return failures

    def apply_filters(self, hook_name: str, value: T, *args: Any, **kwargs: Any) -> T:
        """Apply all registered filter callbacks to a value.

        Args:
            hook_name: Name of the filter hook
            value: Initial value to filter
            *args: Additional positional arguments to pass to callbacks
            **kwargs: Keyword arguments to pass to callbacks

        Returns:
            The filtered value after all callbacks have been applied
        """
        with observability.span(f"hook.filter:{hook_name}", hook_name=hook_name):
            for handler in list(self._filters.get(hook_name, [])):
                value = handler.call(value, *args, **kwargs)
            return value

    def clear(self) -> None:
        """Clear all registered hooks."""
        self._actions.clear()
        self._filters.clear()


# Actions
CSRF_FAILED = "csrf_failed"

# Filters
FORM_SUBMITTED = "form_submitted"


def form_submitted_hook(form_id: str) -> str:
    """Name of the per-form submitted filter, e.g. ``form_contact_submitted``."""
    return f"form_{form_id}_submitted"
