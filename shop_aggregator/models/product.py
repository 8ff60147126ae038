# shop_aggregator/models/product.py

"""Common product representation shared by every retailer adapter."""

from dataclasses import asdict, dataclass, field, fields
from typing import Any


@dataclass(frozen=True)
class Product:
    """A single product listing from any upstream service.

    ``source_id`` is unique within ``service_id``.  ``original_price``
    is only meaningful when it is greater than ``price``.
    """

    source_id: str
    name: str
    service_id: str
    price: float | None = None
    original_price: float | None = None
    currency: str = "USD"
    description: str = ""
    image_urls: tuple[str, ...] = field(default_factory=tuple)
    brand: str = ""
    category: str = ""
    in_stock: bool = True
    rating: float | None = None
    review_count: int | None = None
    product_url: str | None = None

    def __post_init__(self) -> None:
        if self.price is not None and self.price < 0:
            msg = f"price must be >= 0, got {self.price}"
            raise ValueError(msg)
        # Callers may hand in a list; keep the value hashable
        if not isinstance(self.image_urls, tuple):
            object.__setattr__(
                self, "image_urls", tuple(self.image_urls)
            )

    @property
    def has_discount(self) -> bool:
        """True when a list price above the current price is known."""
        return (
            self.price is not None
            and self.original_price is not None
            and self.original_price > self.price
        )

    @property
    def discount_percentage(self) -> float | None:
        """Percentage saved against the original price, if any."""
        if not self.has_discount:
            return None
        assert self.price is not None
        assert self.original_price is not None
        saved = self.original_price - self.price
        return round(saved / self.original_price * 100, 1)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to plain JSON-compatible types."""
        data = asdict(self)
        data["image_urls"] = list(self.image_urls)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        """Rebuild a Product, ignoring keys this version does not know."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["image_urls"] = tuple(kwargs.get("image_urls") or ())
        return cls(**kwargs)
