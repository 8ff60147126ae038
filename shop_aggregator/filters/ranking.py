# shop_aggregator/filters/ranking.py

"""Final ordering of merged products."""

import logging

from shop_aggregator.models.product import Product
from shop_aggregator.models.search import SortOrder

logger = logging.getLogger("shop_aggregator.filters")


def _rating(product: Product) -> float:
    return product.rating if product.rating is not None else 0.0


class ProductRanker:
    """Order deduplicated products for presentation."""

    @staticmethod
    def interleave_by_rating(
        groups: list[list[Product]],
    ) -> list[Product]:
        """Merge per-service lists, keeping each list's own order.

        At every step the head with the highest rating is taken.
        Missing ratings count as 0 and ties go to the earlier group,
        so ``groups`` must be in service-registration order.
        """
        positions = [0] * len(groups)
        merged: list[Product] = []
        total = sum(len(g) for g in groups)

        while len(merged) < total:
            best: int | None = None
            for idx, group in enumerate(groups):
                if positions[idx] >= len(group):
                    continue
                if best is None or _rating(group[positions[idx]]) > _rating(
                    groups[best][positions[best]]
                ):
                    best = idx
            assert best is not None
            merged.append(groups[best][positions[best]])
            positions[best] += 1

        return merged

    @staticmethod
    def sort_by_price(
        products: list[Product], descending: bool = False,
    ) -> list[Product]:
        """Stable price sort; products without a price go last."""
        priced = [p for p in products if p.price is not None]
        unpriced = [p for p in products if p.price is None]
        priced.sort(key=lambda p: p.price or 0.0, reverse=descending)
        return priced + unpriced

    @classmethod
    def rank(
        cls,
        groups: list[list[Product]],
        sort_order: SortOrder,
    ) -> list[Product]:
        """Apply ``sort_order`` to per-service product groups."""
        if sort_order is SortOrder.RELEVANCE:
            ranked = cls.interleave_by_rating(groups)
        else:
            flat = [p for group in groups for p in group]
            ranked = cls.sort_by_price(
                flat, descending=sort_order is SortOrder.PRICE_DESC,
            )
        logger.debug(
            "Ranked %d products by %s", len(ranked), sort_order.value,
        )
        return ranked
