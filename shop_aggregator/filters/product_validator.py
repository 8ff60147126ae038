# shop_aggregator/filters/product_validator.py

"""Product validation: drop unusable products before merging."""

import logging

from shop_aggregator.models.product import Product

logger = logging.getLogger("shop_aggregator.filters")


class ProductValidator:
    """Validate products and drop those with missing essential fields."""

    @staticmethod
    def validate(
        products: list[Product],
    ) -> tuple[list[Product], int]:
        """Drop products with an empty name or source identifier.

        Price-less products are kept; ranking places them last.
        Returns the valid products and the count of dropped items.
        """
        valid: list[Product] = []
        dropped = 0

        for product in products:
            if not product.source_id.strip():
                logger.debug(
                    "Dropped product without source id "
                    "(service=%s, name=%s)",
                    product.service_id,
                    product.name,
                )
                dropped += 1
                continue
            if not product.name.strip():
                logger.debug(
                    "Dropped product with empty name "
                    "(service=%s, id=%s)",
                    product.service_id,
                    product.source_id,
                )
                dropped += 1
                continue
            valid.append(product)

        if dropped:
            logger.info(
                "Validation dropped %d invalid products",
                dropped,
            )

        return valid, dropped
