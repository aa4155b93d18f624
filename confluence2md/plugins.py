"""confluence2md.plugins - extension points for custom element handlers and
cleanup passes.

Usage::

    from confluence2md import register_element_handler

    class StatusLozenge:
        name = "status_lozenge"

        def matches(self, tag) -> bool:
            return "status-macro" in (tag.get("class") or [])

        def convert(self, tag, converter, scope) -> str:
            return f"`{tag.get_text(strip=True)}`"

    register_element_handler(StatusLozenge())

Both plugin types follow ``runtime_checkable`` ``Protocol`` contracts, so
``isinstance()`` checks work without inheriting from a base class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bs4 import Tag

# ---------------------------------------------------------------------------
# Protocol definitions
# ---------------------------------------------------------------------------

@runtime_checkable
class ElementHandlerPlugin(Protocol):
    """Renders tags the built-in dispatcher does not know about.

    Handlers are consulted, in registration order, before the built-in
    dispatch table.  The node has already been marked processed and passed
    the drop filter when ``convert`` is called.
    """

    name: str

    def matches(self, tag: Tag) -> bool:
        """Return True if this plugin renders *tag*."""
        ...

    def convert(self, tag: Tag, converter: Any, scope: Any) -> str:
        """Return the Markdown fragment for *tag*.

        *converter* is the :class:`~confluence2md.extractors.elements.ElementConverter`
        for the document; use ``converter.convert_children(tag, scope)`` to
        render the children.
        """
        ...


@runtime_checkable
class CleanupPassPlugin(Protocol):
    """Extra whole-document pass, run after the built-in cleanup pipeline."""

    name: str

    def __call__(self, text: str) -> str:
        """Return the transformed Markdown.  Should be idempotent."""
        ...


# ---------------------------------------------------------------------------
# Module-level registry
# ---------------------------------------------------------------------------

_registry: dict[str, list[Any]] = {
    "element_handlers": [],
    "cleanup_passes": [],
}


def register_element_handler(plugin: ElementHandlerPlugin) -> None:
    """Register a custom :class:`ElementHandlerPlugin`."""
    _registry["element_handlers"].append(plugin)


def register_cleanup_pass(plugin: CleanupPassPlugin) -> None:
    """Register a custom :class:`CleanupPassPlugin`."""
    _registry["cleanup_passes"].append(plugin)


def get_element_handlers() -> list[ElementHandlerPlugin]:
    """Return all registered element-handler plugins."""
    return list(_registry["element_handlers"])


def get_cleanup_passes() -> list[CleanupPassPlugin]:
    """Return all registered cleanup-pass plugins."""
    return list(_registry["cleanup_passes"])


def clear_plugins() -> None:
    """Remove all registered plugins. Primarily for use in tests."""
    for value in _registry.values():
        value.clear()
