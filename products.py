"""
Product catalog

Products live in the "product" collection and embed their images and
reviews. The owning artisan's `stats.total_products` and `product_ids` are
kept in step on create/delete; that write is a separate document and can
drift under failures, see artisans.reconcile_product_counts.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

import storage
from auth import public_user
from database import create_document, now, paginate, serialize, sort_direction, to_object_id
from errors import AuthorizationError, ConflictError, DuplicateError, NotFoundError, ValidationError
from schemas import Product, ProductCreate, ProductUpdate, Review, ReviewIn, validate

logger = logging.getLogger(__name__)

FEATURED_LIMIT = 12

SORT_FIELDS = {
    "created_at": "created_at",
    "newest": "created_at",
    "price": "pricing.base_price",
    "rating": "stats.average_rating",
    "views": "stats.views",
    "popularity": "stats.likes",
    "title": "title",
}

# Fields of ProductUpdate and where they live in the stored document
UPDATE_PATHS = {
    "title": "title",
    "description": "description",
    "short_description": "short_description",
    "story": "story",
    "status": "status",
    "category": "category.primary",
    "secondary_categories": "category.secondary",
    "tags": "category.tags",
    "base_price": "pricing.base_price",
    "discounted_price": "pricing.discounted_price",
    "currency": "pricing.currency",
    "stock": "inventory.stock",
    "reserved": "inventory.reserved",
    "low_stock_threshold": "inventory.low_stock_threshold",
    "is_unlimited": "inventory.is_unlimited",
}
NESTED_UPDATES = ("specifications", "craft_details", "shipping", "ai_analysis", "flags", "featured", "seo")
NULLABLE = {"discounted_price", "short_description", "story"}


def slugify(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-")


def make_slug(db, title: str, product_id: ObjectId) -> str:
    """Lower-cased, hyphenated title plus the last six characters of the product id."""
    base = slugify(title)
    pid = str(product_id)
    slug = f"{base}-{pid[-6:]}" if base else pid[-6:]
    if db["product"].find_one({"slug": slug, "_id": {"$ne": product_id}}, {"_id": 1}):
        slug = f"{base}-{pid}" if base else pid
    return slug


def is_in_stock(inventory: Optional[Dict[str, Any]]) -> bool:
    inventory = inventory or {}
    if inventory.get("is_unlimited"):
        return True
    return inventory.get("stock", 0) - inventory.get("reserved", 0) > 0


def is_low_stock(inventory: Optional[Dict[str, Any]]) -> bool:
    inventory = inventory or {}
    if inventory.get("is_unlimited"):
        return False
    available = inventory.get("stock", 0) - inventory.get("reserved", 0)
    return 0 < available <= inventory.get("low_stock_threshold", 5)


def rating_stats(reviews: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    ratings = [r["rating"] for r in reviews]
    if not ratings:
        return {"average_rating": 0, "total_reviews": 0}
    return {"average_rating": round(sum(ratings) / len(ratings), 1), "total_reviews": len(ratings)}


def product_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    d = serialize(doc)
    d["is_in_stock"] = is_in_stock(doc.get("inventory"))
    d["is_low_stock"] = is_low_stock(doc.get("inventory"))
    return d


def artisan_summary(artisan: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not artisan:
        return None
    return serialize({
        "_id": artisan["_id"],
        "business_name": artisan.get("business_name"),
        "location": artisan.get("location"),
        "stats": artisan.get("stats"),
        "verification": {"is_verified": (artisan.get("verification") or {}).get("is_verified", False)},
    })


def _with_artisans(db, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = list({d["artisan_id"] for d in docs if d.get("artisan_id")})
    artisans = {a["_id"]: a for a in db["artisan"].find({"_id": {"$in": ids}})} if ids else {}
    items = []
    for d in docs:
        item = product_out(d)
        item["artisan"] = artisan_summary(artisans.get(d.get("artisan_id")))
        items.append(item)
    return items


def _resolve(db, doc: Dict[str, Any]) -> Dict[str, Any]:
    """Product with its artisan (and the artisan's user) and reviewer identities filled in."""
    out = product_out(doc)
    artisan = db["artisan"].find_one({"_id": doc.get("artisan_id")})
    if artisan:
        summary = serialize(artisan)
        summary["user"] = public_user(db["user"].find_one({"_id": artisan.get("user_id")}))
        out["artisan"] = summary
    else:
        out["artisan"] = None
    reviewer_ids = list({r["user_id"] for r in doc.get("reviews", [])})
    users = {u["_id"]: u for u in db["user"].find({"_id": {"$in": reviewer_ids}})} if reviewer_ids else {}
    for review, raw in zip(out.get("reviews", []), doc.get("reviews", [])):
        review["user"] = public_user(users.get(raw["user_id"]))
    return out


def _find_product(db, product_id) -> Dict[str, Any]:
    oid = to_object_id(product_id)
    product = db["product"].find_one({"_id": oid}) if oid else None
    if not product:
        raise NotFoundError("Product not found")
    return product


def _artisan_for_user(db, user_id) -> Optional[Dict[str, Any]]:
    oid = to_object_id(user_id)
    return db["artisan"].find_one({"user_id": oid}) if oid else None


def _owned_product(db, product_id, caller_id, action: str):
    product = _find_product(db, product_id)
    artisan = _artisan_for_user(db, caller_id)
    if not artisan or product.get("artisan_id") != artisan["_id"]:
        raise AuthorizationError(f"Not authorized to {action} this product")
    return product, artisan


def _flatten(path: str, value: Any, stored: Any, out: Dict[str, Any]) -> Dict[str, Any]:
    """Dotted $set paths for `value`, descending only into sub-documents that already exist."""
    if not isinstance(value, dict) or not isinstance(stored, dict):
        out[path] = value
        return out
    for k, v in value.items():
        _flatten(f"{path}.{k}", v, stored.get(k), out)
    return out


def _clean_list(values: Optional[Iterable[str]]) -> List[str]:
    return [v.strip() for v in values or [] if v and v.strip()]


# Operations

def create_product(db, owner_id, fields: Dict[str, Any], image_urls: Optional[List[str]] = None) -> Dict[str, Any]:
    missing = [k for k in ("title", "description", "category", "base_price") if fields.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    payload = validate(ProductCreate, fields)
    artisan = _artisan_for_user(db, owner_id)
    if not artisan:
        raise NotFoundError("Artisan profile not found")

    product_id = ObjectId()
    ts = now()
    images = [
        {"url": url, "alt": f"{payload.title} - Image {i + 1}", "is_primary": i == 0, "order": i}
        for i, url in enumerate(image_urls or [])
    ]
    product = validate(Product, {
        "artisan_id": artisan["_id"],
        "title": payload.title.strip(),
        "slug": make_slug(db, payload.title, product_id),
        "description": payload.description,
        "short_description": payload.short_description,
        "story": payload.story,
        "ai_analysis": payload.ai_analysis,
        "images": images,
        "category": {
            "primary": payload.category,
            "secondary": _clean_list(payload.secondary_categories),
            "tags": _clean_list(payload.tags),
        },
        "pricing": {
            "base_price": payload.base_price,
            "discounted_price": payload.discounted_price,
            "currency": payload.currency,
            "price_history": [{"price": payload.base_price, "date": ts, "reason": "Initial price"}],
        },
        "inventory": {"stock": payload.stock, "is_unlimited": payload.is_unlimited},
        "specifications": payload.specifications,
        "craft_details": payload.craft_details,
        "shipping": payload.shipping,
        "status": payload.status,
        "flags": payload.flags,
    })
    doc = product.model_dump()
    doc.update({"_id": product_id, "created_at": ts, "updated_at": ts})
    create_document("product", doc, db)

    db["artisan"].update_one(
        {"_id": artisan["_id"]},
        {"$inc": {"stats.total_products": 1}, "$push": {"product_ids": product_id}, "$set": {"updated_at": ts}},
    )
    logger.info("Product %s created by artisan %s", product_id, artisan["_id"])
    out = product_out(doc)
    out["artisan"] = artisan_summary(artisan)
    return out


def list_products(db, filters: Optional[Dict[str, Any]] = None, page: int = 1, limit: int = 20, sort: str = "created_at", order: str = "desc") -> Dict[str, Any]:
    filters = filters or {}
    query: Dict[str, Any] = {}

    status = filters.get("status", "active")
    if status and status != "all":
        query["status"] = status
    if filters.get("category"):
        query["category.primary"] = filters["category"]
    min_price, max_price = filters.get("min_price"), filters.get("max_price")
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = min_price
        if max_price is not None:
            price_filter["$lte"] = max_price
        query["pricing.base_price"] = price_filter
    if filters.get("featured"):
        query["featured.is_featured"] = True
    if filters.get("artisan"):
        artisan_id = to_object_id(filters["artisan"])
        if artisan_id is None:
            raise ValidationError("Invalid artisan id")
        query["artisan_id"] = artisan_id
    search = (filters.get("search") or "").strip()
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [
            {"title": pattern},
            {"description": pattern},
            {"category.tags": pattern},
            {"specifications.materials": pattern},
        ]

    direction = sort_direction(order)
    field = SORT_FIELDS.get(sort, "created_at")
    sort_spec = [(field, direction), ("_id", direction)]
    docs, envelope = paginate(db["product"], query, sort_spec, page, limit)
    return {"items": _with_artisans(db, docs), **envelope}


def get_product(db, product_id) -> Dict[str, Any]:
    """Fetch a product for display. Every successful fetch counts one view."""
    oid = to_object_id(product_id)
    doc = None
    if oid:
        doc = db["product"].find_one_and_update(
            {"_id": oid},
            {"$inc": {"stats.views": 1}},
            return_document=ReturnDocument.AFTER,
        )
    if not doc:
        raise NotFoundError("Product not found")
    return _resolve(db, doc)


def update_product(db, product_id, caller_id, fields: Dict[str, Any], image_urls: Optional[List[str]] = None) -> Dict[str, Any]:
    product, _ = _owned_product(db, product_id, caller_id, "update")
    payload = validate(ProductUpdate, fields)
    data = payload.model_dump(exclude_unset=True)
    ts = now()

    set_ops: Dict[str, Any] = {}
    push_ops: Dict[str, Any] = {}
    for key, path in UPDATE_PATHS.items():
        if key not in data:
            continue
        value = data[key]
        if value is None and key not in NULLABLE:
            continue
        if key in ("secondary_categories", "tags"):
            value = _clean_list(value)
        elif key == "title":
            value = value.strip()
            if not value:
                raise ValidationError("title: must not be blank")
        set_ops[path] = value
    for key in NESTED_UPDATES:
        if data.get(key):
            _flatten(key, data[key], product.get(key), set_ops)

    title = set_ops.get("title")
    if title and title != product.get("title"):
        set_ops["slug"] = make_slug(db, title, product["_id"])

    new_price = set_ops.get("pricing.base_price")
    if new_price is not None and new_price != product.get("pricing", {}).get("base_price"):
        push_ops["pricing.price_history"] = {
            "price": new_price,
            "date": ts,
            "reason": data.get("price_change_reason") or "Price updated",
        }

    if image_urls:
        existing = product.get("images", [])
        start = max((img.get("order", 0) for img in existing), default=-1) + 1
        label = title or product.get("title")
        push_ops["images"] = {"$each": [
            {
                "url": url,
                "alt": f"{label} - Image {len(existing) + i + 1}",
                "is_primary": not existing and i == 0,
                "order": start + i,
            }
            for i, url in enumerate(image_urls)
        ]}

    set_ops["updated_at"] = ts
    update: Dict[str, Any] = {"$set": set_ops}
    if push_ops:
        update["$push"] = push_ops
    db["product"].update_one({"_id": product["_id"]}, update)
    logger.info("Product %s updated", product["_id"])
    return _resolve(db, db["product"].find_one({"_id": product["_id"]}))


def delete_product(db, product_id, caller_id) -> bool:
    product, artisan = _owned_product(db, product_id, caller_id, "delete")

    removed = storage.delete_assets([img["url"] for img in product.get("images", []) if img.get("url")])
    db["product"].delete_one({"_id": product["_id"]})

    ts = now()
    db["artisan"].update_one({"_id": artisan["_id"]}, {"$pull": {"product_ids": product["_id"]}, "$set": {"updated_at": ts}})
    db["artisan"].update_one(
        {"_id": artisan["_id"], "stats.total_products": {"$gt": 0}},
        {"$inc": {"stats.total_products": -1}},
    )
    logger.info("Product %s deleted (%d image files removed)", product["_id"], removed)
    return True


def add_review(db, product_id, user_id, rating, comment: Optional[str] = None) -> Dict[str, Any]:
    """Append a review and recompute rating stats in one conditional write.

    The write only applies if the user has not reviewed the product and the
    review list is unchanged since it was read, so the stats always match
    the stored reviews.
    """
    if not isinstance(rating, (int, float)) or isinstance(rating, bool) or not 1 <= rating <= 5 or rating != int(rating):
        raise ValidationError("Rating must be a whole number between 1 and 5")
    payload = validate(ReviewIn, {"rating": int(rating), "comment": comment.strip() if comment else None})
    user_oid = to_object_id(user_id)
    if user_oid is None:
        raise NotFoundError("User not found")
    product = _find_product(db, product_id)

    reviews = product.get("reviews", [])
    if any(r.get("user_id") == user_oid for r in reviews):
        raise DuplicateError("You have already reviewed this product")

    review = validate(Review, {
        "user_id": user_oid,
        "rating": payload.rating,
        "comment": payload.comment,
        "created_at": now(),
    }).model_dump()
    review["_id"] = ObjectId()
    stats = rating_stats(reviews + [review])

    guard: Dict[str, Any] = {"_id": product["_id"], "reviews.user_id": {"$ne": user_oid}}
    if "reviews" in product:
        guard["reviews"] = {"$size": len(reviews)}
    else:
        guard["reviews"] = {"$exists": False}
    result = db["product"].update_one(
        guard,
        {
            "$push": {"reviews": review},
            "$set": {
                "stats.average_rating": stats["average_rating"],
                "stats.total_reviews": stats["total_reviews"],
                "updated_at": review["created_at"],
            },
        },
    )
    if result.matched_count == 0:
        current = _find_product(db, product_id)
        if any(r.get("user_id") == user_oid for r in current.get("reviews", [])):
            raise DuplicateError("You have already reviewed this product")
        raise ConflictError("Product reviews changed while saving, please try again")

    out = serialize(review)
    out["user"] = public_user(db["user"].find_one({"_id": user_oid}))
    return out


def list_featured_products(db) -> List[Dict[str, Any]]:
    cursor = db["product"].find({
        "featured.is_featured": True,
        "featured.featured_until": {"$gt": now()},
        "status": "active",
    }).sort([("stats.average_rating", DESCENDING), ("stats.views", DESCENDING)]).limit(FEATURED_LIMIT)
    return _with_artisans(db, list(cursor))


def list_category_counts(db) -> List[Dict[str, Any]]:
    rows = db["product"].aggregate([
        {"$match": {"status": "active"}},
        {"$group": {"_id": "$category.primary", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ])
    return [{"category": r["_id"], "count": r["count"]} for r in rows]
