import pytest

import content_assist
from errors import ValidationError


def test_price_range_by_category():
    assert content_assist.suggest_price_range("Pottery & Ceramics") == {"min": 500, "max": 3000}
    assert content_assist.suggest_price_range("Woodwork & Furniture") == {"min": 2000, "max": 15000}
    assert content_assist.suggest_price_range("Toys & Games") == {"min": 500, "max": 5000}
    assert content_assist.suggest_price_range(None) == {"min": 500, "max": 5000}


def test_price_range_is_a_copy():
    content_assist.suggest_price_range("Metalwork")["min"] = 1
    assert content_assist.PRICE_RANGES["Metalwork"]["min"] == 1000


def test_assist_content_shape():
    result = content_assist.assist_content(
        "A handmade terracotta lamp with traditional motifs, an eco-friendly gift", "Pottery & Ceramics",
    )
    assert result["price_range"] == {"min": 500, "max": 3000}
    assert result["tags"] == ["handmade", "traditional", "eco-friendly", "gift"]
    assert result["craft_techniques"] == ["wheel throwing", "hand building", "glazing", "firing"]
    assert result["suggested_title"] == "Handcrafted Pottery handmade terracotta lamp"
    assert "terracotta lamp" in result["description"]
    assert "pottery & ceramics" in result["story"]
    assert "India" in result["story"]
    assert result["category_confidence"] == 0.92
    assert result["target_audience"]
    assert result["marketing_keywords"]


def test_assist_content_is_deterministic():
    args = ("Blue pottery vase", "Pottery & Ceramics", "Jaipur")
    assert content_assist.assist_content(*args) == content_assist.assist_content(*args)
    assert "Jaipur" in content_assist.assist_content(*args)["story"]


def test_assist_content_category_only():
    result = content_assist.assist_content(None, "Metalwork")
    assert result["price_range"] == {"min": 1000, "max": 6000}
    assert result["suggested_title"] == "Handcrafted Metalwork"


def test_assist_content_requires_input():
    with pytest.raises(ValidationError):
        content_assist.assist_content("  ", None)


def test_extract_tags_caps_at_eight():
    text = " ".join(content_assist.TAG_VOCABULARY)
    assert len(content_assist.extract_tags(text)) == content_assist.MAX_TAGS


def test_generate_story():
    story = content_assist.generate_story(
        "Brass Diya", category="Metalwork", materials="brass", technique="lost-wax casting",
        region="Odisha", artisan_background="at the age of twelve",
    )
    assert story.count("\n\n") == 4
    assert "Odisha" in story
    assert "lost-wax casting" in story
    assert "at the age of twelve" in story
    assert "Brass Diya" in story


def test_generate_story_defaults():
    story = content_assist.generate_story("Cane Basket")
    assert "India" in story
    assert "traditional materials" in story
    assert "passed down through generations" in story


@pytest.mark.parametrize("title", [None, "", "   "])
def test_generate_story_requires_title(title):
    with pytest.raises(ValidationError):
        content_assist.generate_story(title)
