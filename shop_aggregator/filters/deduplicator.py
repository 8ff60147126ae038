# shop_aggregator/filters/deduplicator.py

"""Product deduplication across multiple upstream services."""

import logging

from shop_aggregator.models.product import Product

logger = logging.getLogger("shop_aggregator.filters")


class ProductDeduplicator:
    """Remove duplicate products by source identifier."""

    @staticmethod
    def deduplicate_groups(
        groups: list[list[Product]],
    ) -> tuple[list[list[Product]], int]:
        """Keep the first occurrence of every ``source_id`` across groups.

        ``groups`` holds one list per service in registration order,
        so the copy from the earliest-registered service wins.  Group
        boundaries and in-group order are preserved.

        Returns the deduplicated groups and the count of removed dupes.
        """
        seen: set[str] = set()
        kept_groups: list[list[Product]] = []
        removed = 0

        for group in groups:
            kept: list[Product] = []
            for product in group:
                if product.source_id in seen:
                    logger.debug(
                        "Duplicate '%s' from %s dropped",
                        product.source_id,
                        product.service_id,
                    )
                    removed += 1
                    continue
                seen.add(product.source_id)
                kept.append(product)
            kept_groups.append(kept)

        if removed:
            logger.info(
                "Deduplication removed %d duplicate products",
                removed,
            )

        return kept_groups, removed

    @staticmethod
    def deduplicate(
        products: list[Product],
    ) -> tuple[list[Product], int]:
        """Flat-list form of :meth:`deduplicate_groups`."""
        if not products:
            return [], 0
        groups, removed = ProductDeduplicator.deduplicate_groups(
            [products]
        )
        return groups[0], removed
