"""Public event mapping for broadcasts."""

from .mapper import map_event, map_events  # noqa: F401
