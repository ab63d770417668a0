"""Unwrapping of persisted session payloads.

Session data saved by the host can come back re-wrapped on every update,
e.g. ``{"data": {"data": {"data": {"order_id": ...}}}}``. The helpers here
locate the level that carries the gateway fields.
"""

import logging
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_UNWRAP_DEPTH = 10
ORDER_ID_KEY = "order_id"
WRAPPER_KEY = "data"


def flatten_session_data(
    data: Optional[Mapping[str, Any]],
    key: str = ORDER_ID_KEY,
    max_depth: int = MAX_UNWRAP_DEPTH,
) -> Dict[str, Any]:
    """Return the innermost level of ``data`` that exposes ``key``.

    Descends through ``data`` wrappers until ``key`` is present or no
    dict-valued wrapper remains, never more than ``max_depth`` levels.
    The returned map is a copy with any leftover nested wrapper removed,
    so it never contains a copy of itself.

    Args:
        data: Persisted session payload, possibly nested.
        key: Field that marks the canonical level.
        max_depth: Maximum number of wrappers to descend through.

    Returns:
        The innermost map, or an empty dict when ``data`` is absent.
    """
    if not isinstance(data, Mapping) or not data:
        return {}

    current: Mapping[str, Any] = data
    depth = 0
    while key not in current and isinstance(current.get(WRAPPER_KEY), Mapping):
        if depth >= max_depth:
            logger.warning(f"Session payload nested deeper than {max_depth} levels, stopping unwrap")
            break
        current = current[WRAPPER_KEY]
        depth += 1

    flat = dict(current)
    if isinstance(flat.get(WRAPPER_KEY), Mapping):
        flat.pop(WRAPPER_KEY)
    return flat
