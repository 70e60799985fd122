"""Best-effort side effects that run after a primary mutation has committed.

Achievement checks and streak updates must never fail or roll back the action
that triggered them, so they are collected as an ordered list of callables and
run one at a time. Each failure is logged and the remaining effects still run.
"""

import logging
from typing import Any, Callable, List, Tuple

logger = logging.getLogger(__name__)

Effect = Tuple[str, Callable[[], Any]]


def run_effects(effects: List[Effect]) -> List[Any]:
    """Run ``(label, fn)`` effects in order.

    Returns the result of each effect, or None where it raised.
    """
    results: List[Any] = []
    for label, fn in effects:
        try:
            results.append(fn())
        except Exception:
            logger.warning("Effect %s failed", label, exc_info=True)
            results.append(None)
    return results
