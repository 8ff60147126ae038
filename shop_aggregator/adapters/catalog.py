# shop_aggregator/adapters/catalog.py

"""Shared mapping policy: derived categories, descriptions, search terms."""

DEFAULT_CATEGORY = "Electronics"

# First matching row wins
CATEGORY_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("iphone", "ipad", "macbook", "airpods", "apple watch", "mac"), "Apple"),
    (("headphones", "earbuds", "speakers", "audio"), "Audio"),
    (("laptop", "computer", "desktop", "monitor"), "Computers"),
    (("phone", "smartphone", "mobile"), "Phones"),
    (("tv", "television", "roku", "streaming"), "Entertainment"),
    (("camera", "photography", "lens"), "Photography"),
    (("gaming", "playstation", "xbox", "nintendo"), "Gaming"),
    (("kitchen", "cooking", "instant pot", "coffee"), "Kitchen"),
    (("home", "smart home", "echo", "alexa"), "Smart Home"),
    (("clothing", "shirt", "dress", "shoes"), "Fashion"),
    (("book", "kindle", "reading"), "Books"),
    (("fitness", "exercise", "sports"), "Sports & Fitness"),
    (("beauty", "skincare", "makeup"), "Beauty"),
    (("tool", "hardware", "construction"), "Tools"),
    (("car", "automotive", "vehicle"), "Automotive"),
]

FEATURE_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("wireless", "bluetooth"), "wireless connectivity"),
    (("4k", "ultra hd", "uhd"), "4K Ultra HD resolution"),
    (("smart", "wifi"), "smart features"),
    (("noise cancel", "anc"), "noise cancelling technology"),
    (("waterproof", "water resistant"), "water resistance"),
    (("fast charg", "quick charg", "rapid charg"), "fast charging"),
    (("oled", "led", "lcd"), "high-quality display"),
    (("portable", "compact"), "portable design"),
    (("professional", "pro"), "professional-grade performance"),
    (("gaming",), "gaming optimized"),
    (("stereo", "surround"), "premium audio"),
    (("rechargeable", "battery"), "long-lasting battery"),
]

CATEGORY_BLURBS: dict[str, str] = {
    "Apple": "Premium Apple product designed for seamless integration "
             "with your Apple ecosystem.",
    "Audio": "High-quality audio device engineered for superior sound.",
    "Computers": "Powerful computing device built for productivity.",
    "Phones": "Advanced smartphone featuring modern mobile technology.",
    "Entertainment": "Entertainment device designed to enhance your "
                     "viewing experience.",
    "Photography": "Photography equipment for capturing stunning images.",
    "Gaming": "Gaming device optimized for immersive play.",
    "Kitchen": "Kitchen appliance designed to simplify cooking.",
    "Smart Home": "Smart home device that brings automation to your "
                  "living space.",
    "Fashion": "Stylish fashion item crafted with attention to detail.",
    "Books": "Reading material for every bookshelf.",
    "Sports & Fitness": "Fitness gear designed for an active lifestyle.",
    "Beauty": "Beauty product formulated for your daily routine.",
    "Tools": "Tool built for durability and precision.",
    "Automotive": "Automotive accessory built for the road.",
    DEFAULT_CATEGORY: "Electronic device featuring modern technology "
                      "and design.",
}

# (upper bound exclusive, sentence); prices at or above the last bound
# fall through to PREMIUM_TIER
PRICE_TIERS: list[tuple[float, str]] = [
    (50.0, "Great value for everyday use."),
    (200.0, "Excellent balance of quality and affordability."),
    (500.0, "Premium quality with professional-grade features."),
]
PREMIUM_TIER = "Top-tier item with exceptional build quality."

_STOP_WORDS = frozenset({"with", "from", "that", "this", "for", "and"})


def derive_category(title: str) -> str:
    """Map a product title to a human-readable category."""
    lowered = title.lower()
    for keywords, category in CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return DEFAULT_CATEGORY


def price_tier(price: float | None) -> str:
    """Value sentence for a price, empty when the price is unknown."""
    if price is None or price <= 0:
        return ""
    for bound, sentence in PRICE_TIERS:
        if price < bound:
            return sentence
    return PREMIUM_TIER


def synthesize_description(
    title: str, category: str, price: float | None,
) -> str:
    """Build a short description when upstream supplies none."""
    lowered = title.lower()
    features = [
        label
        for keywords, label in FEATURE_KEYWORDS
        if any(k in lowered for k in keywords)
    ]
    parts = [CATEGORY_BLURBS.get(category, CATEGORY_BLURBS[DEFAULT_CATEGORY])]
    if features:
        parts.append(
            f"Features {', '.join(features[:3])} "
            "for enhanced functionality."
        )
    tier = price_tier(price)
    if tier:
        parts.append(tier)
    return " ".join(parts)


def extract_search_terms(name: str, limit: int = 3) -> str:
    """Pick the first few meaningful words of a product name."""
    words = [
        w
        for w in name.split()
        if len(w) > 3 and w.lower() not in _STOP_WORDS
    ]
    return " ".join(words[:limit])
