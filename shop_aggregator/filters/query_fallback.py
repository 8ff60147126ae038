# shop_aggregator/filters/query_fallback.py

"""Declarative query fallback chain.

A chain is an ordered list of named transforms.  Each transform turns
the caller's query into a broader variant; the gated adapter tries the
distinct, non-empty variants in order until one yields products.
"""

import logging
import re
from collections.abc import Callable

from shop_aggregator.config.settings import Settings

logger = logging.getLogger("shop_aggregator.filters")

_HAS_DIGIT_RE = re.compile(r"\d")

QueryTransform = Callable[[str], str]


def identity(query: str) -> str:
    return " ".join(query.split())


def strip_model_numbers(query: str) -> str:
    """Drop tokens that carry digits ("WH-1000XM4", "2023")."""
    return " ".join(
        word for word in query.split() if not _HAS_DIGIT_RE.search(word)
    )


def leading_terms(query: str, count: int = 2) -> str:
    """Keep only the first ``count`` words."""
    return " ".join(query.split()[:count])


TRANSFORMS: dict[str, QueryTransform] = {
    "identity": identity,
    "strip_model_numbers": strip_model_numbers,
    "leading_terms": leading_terms,
}


class QueryFallbackChain:
    """Ordered query variants built from named transforms."""

    def __init__(self, steps: list[str] | None = None) -> None:
        names = list(
            steps if steps is not None else Settings.QUERY_FALLBACK_CHAIN
        )
        unknown = [n for n in names if n not in TRANSFORMS]
        if unknown:
            msg = f"Unknown query transforms: {', '.join(unknown)}"
            raise ValueError(msg)
        self.steps = names

    def variants(self, query: str) -> list[str]:
        """Distinct non-empty variants of ``query`` in chain order."""
        seen: set[str] = set()
        result: list[str] = []
        for name in self.steps:
            variant = TRANSFORMS[name](query).strip()
            key = variant.lower()
            if not variant or key in seen:
                continue
            seen.add(key)
            result.append(variant)
        logger.debug("Query variants for '%s': %s", query, result)
        return result
