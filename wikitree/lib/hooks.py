"""Action/filter hook system that lets collaborators follow page changes.

Actions run callbacks for their side effects, filters pass a value through
every callback and return the result. Callbacks may be sync or async.

Two ways to fire an action:

``do_action``
    Errors propagate to the caller. Page services use it for ``before_*``
    hooks, which run inside the write transaction and can veto a change.

``notify``
    Every handler runs even if an earlier one fails; failures are logged.
    Page services use it for ``after_*`` hooks once the transaction has
    committed, so a broken search index or backup mirror never undoes a
    page write.

Usage:
    from wikitree.lib.hooks import hooks, action

    @action(AFTER_PAGE_SAVE, priority=5)
    async def mirror_page(page, is_new, previous_slug):
        ...

    await hooks.notify(AFTER_PAGE_SAVE, page, is_new=True, previous_slug=None)
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(order=True)
class HookHandler:
    """A registered hook handler with priority."""

    priority: int
    callback: Callable = field(compare=False)

    async def call(self, *args: Any, **kwargs: Any) -> Any:
        """Call the handler, handling both sync and async callbacks."""
        result = self.callback(*args, **kwargs)
        if asyncio.iscoroutine(result):
            return await result
        return result


class HookRegistry:
    """Central registry for all hooks (actions and filters)."""

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

    def remove_action(
        self,
        hook_name: str,
        callback: Callable[..., Any],
    ) -> bool:
        """Remove an action callback.

        Args:
            hook_name: Name of the action hook
            callback: Function to remove

        Returns:
            True if callback was found and removed
        """
        handlers = self._actions.get(hook_name, [])
        for i, handler in enumerate(handlers):
            if handler.callback is callback:
                handlers.pop(i)
                return True
        return False

    def remove_filter(
        self,
        hook_name: str,
        callback: Callable[..., Any],
    ) -> bool:
        """Remove a filter callback.

        Args:
            hook_name: Name of the filter hook
            callback: Function to remove

        Returns:
            True if callback was found and removed
        """
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

    async def do_action(
        self,
        hook_name: str,
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Execute all registered action callbacks, propagating errors.

        Args:
            hook_name: Name of the action hook
            *args: Positional arguments to pass to callbacks
            **kwargs: Keyword arguments to pass to callbacks
        """
        from wikitree.lib.observability import span

        with span(f"hook.action:{hook_name}", hook_name=hook_name):
            for handler in list(self._actions.get(hook_name, [])):
                await handler.call(*args, **kwargs)

    async def notify(
        self,
        hook_name: str,
        *args: Any,
        **kwargs: Any,
    ) -> int:
        """Execute all registered action callbacks on a best-effort basis.

        A failing handler is logged and skipped; the remaining handlers
        still run.

        Args:
            hook_name: Name of the action hook
            *args: Positional arguments to pass to callbacks
            **kwargs: Keyword arguments to pass to callbacks

        Returns:
            Number of handlers that failed
        """
        from wikitree.lib import observability

        failures = 0
        with observability.span(f"hook.notify:{hook_name}", hook_name=hook_name):
            for handler in list(self._actions.get(hook_name, [])):
                try:
                    await handler.call(*args, **kwargs)
                except Exception:
                    failures += 1
                    name = getattr(handler.callback, "__qualname__", repr(handler.callback))
                    logger.warning("Hook handler %r for %s failed", name, hook_name, exc_info=True)
                    observability.warning(
                        "Hook handler {handler} for {hook_name} failed",
                        handler=name,
                        hook_name=hook_name,
                    )
        return failures

    async def apply_filters(
        self,
        hook_name: str,
        value: T,
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Apply all registered filter callbacks to a value.

        Args:
            hook_name: Name of the filter hook
            value: Initial value to filter
            *args: Additional positional arguments to pass to callbacks
            **kwargs: Keyword arguments to pass to callbacks

        Returns:
            The filtered value after all callbacks have been applied
        """
        from wikitree.lib.observability import span

        with span(f"hook.filter:{hook_name}", hook_name=hook_name):
            for handler in list(self._filters.get(hook_name, [])):
                value = await handler.call(value, *args, **kwargs)
            return value

    def clear(self) -> None:
        """Clear all registered hooks. Useful for testing."""
        self._actions.clear()
        self._filters.clear()


# Global singleton registry
hooks = HookRegistry()


def add_action(
    hook_name: str,
    callback: Callable[..., Any],
    priority: int = 10,
) -> None:
    """Register an action callback to the global registry."""
    hooks.add_action(hook_name, callback, priority)


def add_filter(
    hook_name: str,
    callback: Callable[..., T],
    priority: int = 10,
) -> None:
    """Register a filter callback to the global registry."""
    hooks.add_filter(hook_name, callback, priority)


def remove_action(hook_name: str, callback: Callable[..., Any]) -> bool:
    """Remove an action callback from the global registry."""
    return hooks.remove_action(hook_name, callback)


def remove_filter(hook_name: str, callback: Callable[..., Any]) -> bool:
    """Remove a filter callback from the global registry."""
    return hooks.remove_filter(hook_name, callback)


async def do_action(hook_name: str, *args: Any, **kwargs: Any) -> None:
    """Execute all registered action callbacks via the global registry."""
    await hooks.do_action(hook_name, *args, **kwargs)


async def notify(hook_name: str, *args: Any, **kwargs: Any) -> int:
    """Best-effort action dispatch via the global registry."""
    return await hooks.notify(hook_name, *args, **kwargs)


async def apply_filters(hook_name: str, value: T, *args: Any, **kwargs: Any) -> T:
    """Apply all registered filter callbacks via the global registry."""
    return await hooks.apply_filters(hook_name, value, *args, **kwargs)


def action(hook_name: str, priority: int = 10) -> Callable[[Callable], Callable]:
    """Decorator to register a function as an action handler.

    Usage:
        @action("after_page_save", priority=5)
        async def my_handler(page, is_new, previous_slug):
            ...
    """

    def decorator(func: Callable) -> Callable:
        hooks.add_action(hook_name, func, priority)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return func(*args, **kwargs)

        return wrapper

    return decorator


def filter(hook_name: str, priority: int = 10) -> Callable[[Callable], Callable]:
    """Decorator to register a function as a filter handler.

    Usage:
        @filter("page_content", priority=5)
        async def expand_macros(content, page):
            return content.replace("{{site}}", "My Wiki")
    """

    def decorator(func: Callable) -> Callable:
        hooks.add_filter(hook_name, func, priority)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return func(*args, **kwargs)

        return wrapper

    return decorator


# Actions
BEFORE_PAGE_SAVE = "before_page_save"
AFTER_PAGE_SAVE = "after_page_save"
PAGE_SLUG_CHANGED = "page_slug_changed"
BEFORE_PAGE_DELETE = "before_page_delete"
AFTER_PAGE_DELETE = "after_page_delete"
SHARE_LINK_ACCESSED = "share_link_accessed"

# Filters
PAGE_CONTENT = "page_content"
