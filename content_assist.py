"""
Content assist for product listings.

Deterministic templates only: the same description and category always
produce the same text, tags and price range. A generative backend can be
swapped in behind assist_content without changing its return shape.
"""
import re
from typing import Any, Dict, List, Optional

from errors import ValidationError

DEFAULT_REGION = "India"
CATEGORY_CONFIDENCE = 0.92
MAX_TAGS = 8

DEFAULT_PRICE_RANGE = {"min": 500, "max": 5000}
PRICE_RANGES = {
    "Pottery & Ceramics": {"min": 500, "max": 3000},
    "Textiles & Fabrics": {"min": 800, "max": 5000},
    "Jewelry & Accessories": {"min": 1200, "max": 8000},
    "Woodwork & Furniture": {"min": 2000, "max": 15000},
    "Metalwork": {"min": 1000, "max": 6000},
    "Leather Goods": {"min": 800, "max": 4000},
    "Art & Paintings": {"min": 1500, "max": 10000},
    "Sculptures": {"min": 2000, "max": 12000},
}

TAG_VOCABULARY = [
    "handmade", "artisan", "traditional", "authentic", "cultural",
    "heritage", "vintage", "rustic", "ethnic", "folk art", "handcrafted",
    "sustainable", "eco-friendly", "unique", "decorative", "gift",
]

DEFAULT_TECHNIQUES = ["traditional handcrafting", "artisan techniques", "heritage methods"]
TECHNIQUES = {
    "Pottery & Ceramics": ["wheel throwing", "hand building", "glazing", "firing"],
    "Textiles & Fabrics": ["weaving", "dyeing", "block printing", "embroidery"],
    "Jewelry & Accessories": ["metalwork", "stone setting", "engraving", "polishing"],
    "Woodwork & Furniture": ["carving", "joinery", "finishing", "inlay work"],
    "Metalwork": ["forging", "casting", "etching", "patination"],
}

MARKETING_KEYWORDS = [
    "handmade", "artisan", "traditional", "heritage", "authentic",
    "cultural", "unique", "sustainable", "eco-friendly", "one-of-a-kind",
]
TARGET_AUDIENCE = [
    "Art enthusiasts", "Cultural collectors", "Home decorators",
    "Gift seekers", "Sustainable living advocates",
]

TITLE_STOPWORDS = {"this", "that", "with", "from", "made", "using", "very", "great"}


def suggest_price_range(category: Optional[str]) -> Dict[str, int]:
    return dict(PRICE_RANGES.get(category or "", DEFAULT_PRICE_RANGE))


def extract_tags(text: str) -> List[str]:
    lowered = (text or "").lower()
    return [
        tag for tag in TAG_VOCABULARY
        if tag in lowered or tag.replace("-", " ") in lowered
    ][:MAX_TAGS]


def craft_techniques(category: Optional[str]) -> List[str]:
    return list(TECHNIQUES.get(category or "", DEFAULT_TECHNIQUES))


def suggest_title(description: str, category: Optional[str]) -> str:
    words = (description or "").split()[:10]
    keep = [w for w in words if len(w) > 3 and w.lower() not in TITLE_STOPWORDS][:3]
    category_word = (category or "").split(" ")[0]
    title = " ".join(p for p in ["Handcrafted", category_word, *keep] if p)
    title = re.sub(r"[^\w\s]", "", title)
    return re.sub(r"\s+", " ", title).strip()


def enhance_description(description: str, category: Optional[str]) -> str:
    subject = category.lower() if category else "handcrafted"
    parts = [
        f"This exquisite {subject} piece showcases the timeless artistry and cultural heritage of traditional Indian craftsmanship.",
        (description or "").strip(),
        "Each detail reflects hours of meticulous work and generations of inherited knowledge, making this a truly unique addition to any collection.",
    ]
    return " ".join(p for p in parts if p)


def heritage_story(category: Optional[str], region: Optional[str] = None) -> str:
    subject = category.lower() if category else "handcrafted piece"
    region = region or DEFAULT_REGION
    return "\n\n".join([
        f"In the heart of {region}'s vibrant craft communities, where ancient traditions meet artistic expression, "
        f"this {subject} comes to life through the skilled hands of master artisans. The creation begins with the "
        "careful selection of premium materials, each chosen for its unique characteristics and potential.",
        "Using techniques passed down through generations, the artisan shapes and molds with patience and precision "
        "that can only come from years of dedicated practice. The process is meditative, almost spiritual, as "
        "traditional tools transform raw materials into objects of beauty and function.",
        "What makes this piece truly special is not just its aesthetic appeal, but the story it carries: a story of "
        "cultural preservation, sustainable practices and the unwavering dedication to keeping ancient arts alive in "
        "our modern world. When you choose this handcrafted piece, you're not just purchasing a product; you're "
        "becoming part of a legacy that connects the past with the present.",
    ])


def cultural_context(category: Optional[str]) -> str:
    return (
        "This craft represents the rich cultural traditions of India, where artisans have been preserving ancient "
        f"techniques for centuries. The piece embodies the spirit of {category or 'traditional craftsmanship'} "
        "that has been passed down through generations."
    )


def assist_content(description: Optional[str], category: Optional[str], region: Optional[str] = None) -> Dict[str, Any]:
    description = (description or "").strip()
    category = (category or "").strip() or None
    if not description and not category:
        raise ValidationError("Either description or category is required")

    return {
        "description": enhance_description(description, category),
        "story": heritage_story(category, region),
        "tags": extract_tags(f"{description} {category or ''}"),
        "price_range": suggest_price_range(category),
        "suggested_title": suggest_title(description, category),
        "craft_techniques": craft_techniques(category),
        "cultural_context": cultural_context(category),
        "marketing_keywords": list(MARKETING_KEYWORDS),
        "target_audience": list(TARGET_AUDIENCE),
        "category_confidence": CATEGORY_CONFIDENCE,
    }


def generate_story(product_title: Optional[str], category: Optional[str] = None, materials: Optional[str] = None,
                   technique: Optional[str] = None, region: Optional[str] = None,
                   artisan_background: Optional[str] = None) -> str:
    if not product_title or not product_title.strip():
        raise ValidationError("Product title is required")
    title = product_title.strip()
    if artisan_background:
        lineage = (f"The artisan's journey began {artisan_background}, learning from masters who themselves "
                   "learned from their predecessors.")
    else:
        lineage = ("This craft has been passed down through generations, with each artisan adding their own touch "
                   "while preserving the essence of the tradition.")
    return "\n\n".join([
        f"In the vibrant workshops of {region or DEFAULT_REGION}, where tradition meets artistry, this {title} comes "
        "to life through the skilled hands of master craftspeople.",
        f"The creation process begins at dawn, when the artisan carefully selects the finest "
        f"{materials or 'traditional materials'}, each piece chosen for its unique character and potential. Using "
        f"the ancient technique of {technique or 'traditional craftsmanship'}, every curve and detail is shaped with "
        "patience and precision that can only come from years of dedicated practice.",
        lineage,
        f"What makes this {title} truly special is not just its aesthetic beauty, but the story it carries: a story "
        "of cultural preservation, sustainable practices and the unwavering dedication to keeping ancient arts alive "
        "in our modern world. Each piece is a bridge between the past and present, carrying the soul of traditional "
        f"{category or 'craftsmanship'} into contemporary homes.",
        "When you choose this piece, you're not just purchasing a product; you're becoming part of a legacy, "
        "supporting local artisans, and helping preserve invaluable cultural heritage for future generations.",
    ])
