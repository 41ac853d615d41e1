"""
Oracle detectors.
"""

import re
from typing import Iterator

from ..analysis.models import ProgramModel
from .base import DetectorConfig, Hit, confidence, site_location

ORACLE_CALLS = {
    "get_price",
    "get_price_unchecked",
    "get_current_price",
    "get_latest_price",
    "get_ema_price_unchecked",
    "load_price_feed_from_account_info",
    "get_price_feed_from_account_info",
    "get_result",
    "latest_round_data",
}

_STALENESS_RE = re.compile(r"timestamp|stale|slot|publish_time|max_age|updated_at|conf", re.IGNORECASE)
_POSITIVE_PRICE_RE = re.compile(r"price\w*(?:\.\w+)*\s*>\s*0|0\s*<\s*\w*price", re.IGNORECASE)


def oracle_dependency(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Oracle prices used without a freshness or validity check."""
    for program, ix in model.iter_instructions():
        reads = [c for c in ix.calls if c.name in ORACLE_CALLS]
        if not reads:
            continue
        validated = any(
            _STALENESS_RE.search(g.expression) or _POSITIVE_PRICE_RE.search(g.expression)
            for g in ix.guards
        )
        if validated:
            continue
        for call in reads:
            if "no_older_than" in call.callee:
                continue
            yield Hit(
                location=site_location(program, ix, "call", call.location),
                signature=call.signature,
                title=f"Oracle price in `{ix.name}` is not validated",
                message=(
                    f"`{call.callee}` reads a price with no staleness, confidence or positivity "
                    f"check. A stale or manipulated feed flows straight into `{ix.name}`."
                ),
                confidence=confidence(ix.degraded, config),
            )
