# shop_aggregator/adapters/serpapi_adapter.py

"""Reference adapter for SerpApi's retail engines.

One instance serves one engine (``google_shopping``, ``ebay`` or
``walmart``).  Requests go through ``BaseAdapter._get_json``; payloads
decode into the typed records of ``serpapi_models`` and each record
type has its own mapping function into ``Product``.
"""

from shop_aggregator.adapters.base_adapter import BaseAdapter
from shop_aggregator.adapters.catalog import (
    derive_category,
    synthesize_description,
)
from shop_aggregator.adapters.serpapi_models import (
    SUPPORTED_ENGINES,
    EbayResult,
    SerpApiRecord,
    SerpApiSearchResponse,
    ShoppingResult,
    WalmartResult,
)
from shop_aggregator.errors import DecodeError, NotFoundError, UpstreamError
from shop_aggregator.models.product import Product

_ENGINE_PARAMS: dict[str, dict[str, str]] = {
    "google_shopping": {
        "google_domain": "google.com",
        "gl": "us",
        "hl": "en",
        "location": "United States",
        "num": "20",
    },
    "ebay": {"ebay_domain": "ebay.com", "_sacat": "0"},
    "walmart": {},
}

# Engines whose query parameter is not ``q``
_QUERY_PARAM: dict[str, str] = {"ebay": "_nkw", "walmart": "query"}


def _positive(price: float | None) -> float | None:
    return price if price is not None and price > 0 else None


def _images(thumbnail: str | None) -> tuple[str, ...]:
    return (thumbnail,) if thumbnail else ()


def _original_price(
    price: float | None, previous: float | None,
) -> float | None:
    previous = _positive(previous)
    if previous is None or price is None or previous <= price:
        return None
    return previous


# ── Record → Product ─────────────────────────────────────


def map_shopping_result(
    result: ShoppingResult, service_id: str,
) -> Product:
    title = result.title or ""
    price = _positive(result.extracted_price)
    category = derive_category(title)
    return Product(
        source_id=result.product_id or f"google_shopping_{result.position}",
        name=title,
        service_id=service_id,
        price=price,
        original_price=_original_price(price, result.extracted_old_price),
        description=synthesize_description(title, category, price),
        image_urls=_images(result.thumbnail),
        brand=result.source or "",
        category=category,
        rating=result.rating,
        review_count=result.reviews,
        product_url=result.link,
    )


def map_ebay_result(result: EbayResult, service_id: str) -> Product:
    title = result.title or ""
    price = _positive(result.price)
    category = derive_category(title)
    description = synthesize_description(title, category, price)
    if result.condition:
        description += f" Condition: {result.condition}."
    seller = result.seller
    rating = seller.rating if seller else None
    # Seller feedback arrives as a percentage
    if rating is not None and rating > 5:
        rating = round(rating / 20, 2)
    return Product(
        source_id=result.item_id or f"ebay_{result.position}",
        name=title,
        service_id=service_id,
        price=price,
        description=description,
        image_urls=_images(result.thumbnail),
        brand=(seller.name if seller and seller.name else "eBay Seller"),
        category=category,
        rating=rating,
        review_count=result.ratings_count,
        product_url=result.link,
    )


def map_walmart_result(result: WalmartResult, service_id: str) -> Product:
    title = result.title or ""
    price = _positive(result.price)
    category = derive_category(title)
    return Product(
        source_id=result.product_id or f"walmart_{result.position}",
        name=title,
        service_id=service_id,
        price=price,
        original_price=_original_price(price, result.was_price),
        description=synthesize_description(title, category, price),
        image_urls=_images(result.thumbnail),
        brand=result.seller_name or "Walmart",
        category=category,
        in_stock=not result.out_of_stock,
        rating=result.rating,
        review_count=result.ratings_count,
        product_url=result.link,
    )


def map_record(record: SerpApiRecord, service_id: str) -> Product:
    """Dispatch a decoded record to its mapping function."""
    if isinstance(record, ShoppingResult):
        return map_shopping_result(record, service_id)
    if isinstance(record, EbayResult):
        return map_ebay_result(record, service_id)
    return map_walmart_result(record, service_id)


# ── Adapter ──────────────────────────────────────────────


class SerpApiAdapter(BaseAdapter):
    """Retailer adapter backed by one SerpApi search engine."""

    def __init__(
        self,
        service_id: str,
        engine: str,
        api_key: str | None = None,
    ) -> None:
        super().__init__(service_id)
        if engine not in SUPPORTED_ENGINES:
            msg = (
                f"Unsupported SerpApi engine '{engine}' "
                f"(expected one of {', '.join(SUPPORTED_ENGINES)})"
            )
            raise ValueError(msg)
        self.engine = engine
        self.api_key = api_key if api_key is not None else (
            self.settings.SERPAPI_API_KEY
        )
        self.base_url = self.settings.SERPAPI_BASE_URL
        if not self.api_key:
            self.logger.warning(
                "[%s] No SerpApi key configured; requests will be "
                "rejected upstream",
                self.service_id,
            )

    def _masked_key(self) -> str:
        return f"{self.api_key[:8]}..." if self.api_key else "<none>"

    def build_params(self, query: str) -> dict[str, str]:
        """Engine-specific request parameters for a search."""
        params = {
            "engine": self.engine,
            "api_key": self.api_key,
            "q": query,
        }
        params.update(_ENGINE_PARAMS[self.engine])
        extra = _QUERY_PARAM.get(self.engine)
        if extra:
            params[extra] = query
        return params

    def search_products(self, query: str) -> list[Product]:
        self.logger.info(
            "[%s] Searching '%s' (engine=%s, key=%s)",
            self.service_id,
            query,
            self.engine,
            self._masked_key(),
        )
        data = self._get_json(self.base_url, self.build_params(query))
        try:
            response = SerpApiSearchResponse.from_payload(self.engine, data)
        except (ValueError, TypeError, KeyError) as exc:
            raw = str(data)
            self.logger.error(
                "[%s] Unexpected payload shape: %s | raw=%.500s",
                self.service_id,
                exc,
                raw,
            )
            raise DecodeError(self.service_id, str(exc), raw) from exc

        if response.error:
            raise UpstreamError(self.service_id, None, response.error)

        products: list[Product] = []
        for record in response.results:
            try:
                products.append(map_record(record, self.service_id))
            except ValueError as exc:
                self.logger.debug(
                    "[%s] Skipping unmappable result: %s",
                    self.service_id,
                    exc,
                )
        self.logger.info(
            "[%s] %d products for '%s'",
            self.service_id,
            len(products),
            query,
        )
        return products

    def get_product_details(self, product_id: str) -> Product:
        """Look the id up as a query; only an exact id match counts."""
        for product in self.search_products(product_id):
            if product.source_id == product_id:
                return product
        raise NotFoundError(self.service_id, product_id)


