from wikitree.lib.hooks import hooks, action, filter, add_action, add_filter, do_action, apply_filters, notify
from wikitree.lib.markdown import render_markdown
from wikitree.lib.slugs import normalize_slug

__all__ = [
    "render_markdown",
    "normalize_slug",
    "hooks",
    "action",
    "filter",
    "add_action",
    "add_filter",
    "do_action",
    "apply_filters",
    "notify",
]
