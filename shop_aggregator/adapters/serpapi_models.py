# shop_aggregator/adapters/serpapi_models.py

"""Typed records for SerpApi search payloads, one family per engine.

Each record is built from the raw JSON by ``from_payload`` and knows
nothing about ``Product``; mapping lives in the adapter.  Constructors
raise ``ValueError``/``TypeError`` on shapes they cannot interpret.
"""

import re
from dataclasses import dataclass, field
from typing import Any

_EBAY_ITEM_RE = re.compile(r"/itm/(?:[^/]+/)?(\d+)")


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _as_dict(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"'{name}' should be an object, got {type(value).__name__}"
        raise TypeError(msg)
    return value


def _as_list(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"'{name}' should be a list, got {type(value).__name__}"
        raise TypeError(msg)
    return value


# ── Google Shopping ──────────────────────────────────────


@dataclass(frozen=True)
class ShoppingResult:
    """One ``shopping_results`` row."""

    position: int | None
    title: str | None
    link: str | None
    product_id: str | None
    source: str | None
    extracted_price: float | None
    extracted_old_price: float | None
    rating: float | None
    reviews: int | None
    thumbnail: str | None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ShoppingResult":
        return cls(
            position=_opt_int(data.get("position")),
            title=_opt_str(data.get("title")),
            link=_opt_str(data.get("link") or data.get("product_link")),
            product_id=_opt_str(data.get("product_id")),
            source=_opt_str(data.get("source")),
            extracted_price=_opt_float(data.get("extracted_price")),
            extracted_old_price=_opt_float(
                data.get("extracted_old_price")
            ),
            rating=_opt_float(data.get("rating")),
            reviews=_opt_int(
                data.get("reviews", data.get("rating_count"))
            ),
            thumbnail=_opt_str(data.get("thumbnail")),
        )


# ── eBay ─────────────────────────────────────────────────


@dataclass(frozen=True)
class EbaySeller:
    name: str | None
    rating: float | None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "EbaySeller":
        return cls(
            name=_opt_str(data.get("name") or data.get("username")),
            rating=_opt_float(data.get("rating")),
        )


@dataclass(frozen=True)
class EbayResult:
    """One eBay listing row."""

    position: int | None
    title: str | None
    link: str | None
    thumbnail: str | None
    condition: str | None
    price: float | None
    seller: EbaySeller | None
    ratings_count: int | None

    @property
    def item_id(self) -> str | None:
        """Numeric listing id parsed from the listing URL."""
        if not self.link:
            return None
        match = _EBAY_ITEM_RE.search(self.link)
        return match.group(1) if match else None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "EbayResult":
        price_block = _as_dict(data.get("price"), "price")
        extracted = price_block.get("extracted")
        # Ranged listings report [low, high]
        if isinstance(extracted, list):
            extracted = extracted[0] if extracted else None
        seller_block = data.get("seller")
        return cls(
            position=_opt_int(data.get("position")),
            title=_opt_str(data.get("title")),
            link=_opt_str(data.get("link")),
            thumbnail=_opt_str(data.get("thumbnail")),
            condition=_opt_str(data.get("condition")),
            price=_opt_float(extracted),
            seller=(
                EbaySeller.from_payload(_as_dict(seller_block, "seller"))
                if seller_block is not None
                else None
            ),
            ratings_count=_opt_int(data.get("ratings_count")),
        )


# ── Walmart ──────────────────────────────────────────────


@dataclass(frozen=True)
class WalmartResult:
    """One Walmart listing row."""

    position: int | None
    product_id: str | None
    title: str | None
    link: str | None
    thumbnail: str | None
    current_price: float | None
    offer_price: float | None
    was_price: float | None
    rating: float | None
    ratings_count: int | None
    seller_name: str | None
    out_of_stock: bool

    @property
    def price(self) -> float | None:
        if self.current_price is not None:
            return self.current_price
        return self.offer_price

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "WalmartResult":
        price_block = _as_dict(data.get("price"), "price")
        offer = _as_dict(data.get("primary_offer"), "primary_offer")
        seller = _as_dict(data.get("seller"), "seller")
        return cls(
            position=_opt_int(data.get("position")),
            product_id=_opt_str(
                data.get("product_id") or data.get("us_item_id")
            ),
            title=_opt_str(data.get("title")),
            link=_opt_str(data.get("link") or data.get("product_page_url")),
            thumbnail=_opt_str(data.get("thumbnail")),
            current_price=_opt_float(price_block.get("current_raw")),
            offer_price=_opt_float(
                offer.get("price_raw", offer.get("offer_price"))
            ),
            was_price=_opt_float(price_block.get("was_raw")),
            rating=_opt_float(data.get("rating")),
            ratings_count=_opt_int(
                data.get("ratings_count", data.get("reviews"))
            ),
            seller_name=_opt_str(
                seller.get("name") or data.get("seller_name")
            ),
            out_of_stock=bool(data.get("out_of_stock", False)),
        )


# ── Envelope ─────────────────────────────────────────────

SerpApiRecord = ShoppingResult | EbayResult | WalmartResult

_RESULT_KEYS: dict[str, tuple[str, ...]] = {
    "google_shopping": ("shopping_results",),
    "ebay": ("organic_results", "ebay_results"),
    "walmart": ("organic_results", "walmart_results"),
}

_RECORD_TYPES: dict[str, type[ShoppingResult | EbayResult | WalmartResult]] = {
    "google_shopping": ShoppingResult,
    "ebay": EbayResult,
    "walmart": WalmartResult,
}

SUPPORTED_ENGINES: tuple[str, ...] = tuple(_RECORD_TYPES)


@dataclass(frozen=True)
class SerpApiSearchResponse:
    """Decoded top-level search payload for one engine."""

    engine: str
    error: str | None
    results: list[SerpApiRecord] = field(
        default_factory=lambda: list[SerpApiRecord]()
    )

    @classmethod
    def from_payload(
        cls, engine: str, data: dict[str, Any],
    ) -> "SerpApiSearchResponse":
        if engine not in _RECORD_TYPES:
            msg = f"unsupported engine '{engine}'"
            raise ValueError(msg)
        record_cls = _RECORD_TYPES[engine]
        rows: list[Any] = []
        for key in _RESULT_KEYS[engine]:
            if key in data:
                rows = _as_list(data[key], key)
                break
        return cls(
            engine=engine,
            error=_opt_str(data.get("error")),
            results=[
                record_cls.from_payload(_as_dict(row, "result"))
                for row in rows
            ],
        )
