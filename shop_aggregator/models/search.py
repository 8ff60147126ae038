# shop_aggregator/models/search.py

"""Search request options and the aggregated response container."""

from dataclasses import dataclass, field
from enum import Enum

from shop_aggregator.config.settings import Settings
from shop_aggregator.models.outcome import AdapterOutcome
from shop_aggregator.models.product import Product


class SortOrder(str, Enum):
    """Final ordering of merged results."""

    RELEVANCE = "relevance"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"


def normalize_query(query: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return " ".join(query.lower().split())


@dataclass(frozen=True)
class SearchOptions:
    """Options recognised by ``AggregationCoordinator.search``."""

    max_results: int = Settings.DEFAULT_MAX_RESULTS
    sort_order: SortOrder = SortOrder.RELEVANCE
    # None queries every registered service; an empty set queries none
    services: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if self.max_results <= 0:
            msg = f"max_results must be > 0, got {self.max_results}"
            raise ValueError(msg)
        # Accept plain strings / iterables from CLI callers
        if not isinstance(self.sort_order, SortOrder):
            object.__setattr__(
                self, "sort_order", SortOrder(self.sort_order)
            )
        if self.services is not None and not isinstance(
            self.services, frozenset
        ):
            object.__setattr__(
                self, "services", frozenset(self.services)
            )


@dataclass
class SearchResponse:
    """Container for a completed search across multiple services."""

    query: str
    products: list[Product] = field(
        default_factory=lambda: list[Product]()
    )
    outcomes: list[AdapterOutcome] = field(
        default_factory=lambda: list[AdapterOutcome]()
    )
    from_cache: bool = False
    from_fallback: bool = False
    total_before_dedup: int = 0
    deduplicated_count: int = 0
    invalid_count: int = 0

    @property
    def succeeded(self) -> list[str]:
        """Service ids that produced a usable outcome."""
        return [o.service_id for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[str]:
        """Service ids whose outcome was a failure."""
        return [o.service_id for o in self.outcomes if not o.ok]

    @property
    def summary(self) -> str:
        """Human readable "N of M sources responded" line."""
        if self.from_cache and not self.outcomes:
            return "served from cache"
        return (
            f"{len(self.succeeded)} of {len(self.outcomes)} "
            "sources responded"
        )
