"""
Artisan directory

Profiles in the "artisan" collection, one per user with role "artisan".
"""
import logging
import re
from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument

from auth import public_user
from database import now, paginate, serialize, sort_direction, to_object_id
from errors import NotFoundError, ValidationError
from products import list_products, product_out
from schemas import ArtisanUpdate, Award, Certification, CraftTradition, Location, SocialMedia, Workshop, validate

logger = logging.getLogger(__name__)

PLATFORM_FEE = 0.15
DASHBOARD_RECENT = 5
DASHBOARD_WINDOW_DAYS = 30
SEARCH_MAX_LIMIT = 50

SORT_FIELDS = {
    "rating": "stats.rating",
    "experience": "experience",
    "profile_views": "stats.profile_views",
    "total_products": "stats.total_products",
    "business_name": "business_name",
    "created_at": "created_at",
}

MERGED_SECTIONS = {
    "location": Location,
    "craft_tradition": CraftTradition,
    "workshop": Workshop,
    "social_media": SocialMedia,
}


def artisan_out(doc: Dict[str, Any], user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    d = serialize(doc)
    total_sales = (doc.get("stats") or {}).get("total_sales", 0)
    d["total_revenue"] = round(total_sales * (1 - PLATFORM_FEE), 2)
    if user is not None:
        d["user"] = public_user(user)
    return d


def _users_for(db, artisans: List[Dict[str, Any]]) -> Dict[Any, Dict[str, Any]]:
    ids = list({a["user_id"] for a in artisans if a.get("user_id")})
    return {u["_id"]: u for u in db["user"].find({"_id": {"$in": ids}})} if ids else {}


def _artisan_for_user(db, user_id) -> Dict[str, Any]:
    oid = to_object_id(user_id)
    artisan = db["artisan"].find_one({"user_id": oid}) if oid else None
    if not artisan:
        raise NotFoundError("Artisan profile not found")
    return artisan


def _ci_contains(text: str) -> Dict[str, str]:
    return {"$regex": re.escape(text), "$options": "i"}


def list_artisans(db, filters: Optional[Dict[str, Any]] = None, page: int = 1, limit: int = 20, sort: str = "rating", order: str = "desc") -> Dict[str, Any]:
    filters = filters or {}
    query: Dict[str, Any] = {}
    is_active = filters.get("is_active", True)
    if is_active is not None:
        query["is_active"] = is_active
    if filters.get("specialization"):
        query["specialization"] = filters["specialization"]
    if filters.get("city"):
        query["location.city"] = _ci_contains(filters["city"])
    if filters.get("state"):
        query["location.state"] = _ci_contains(filters["state"])
    if filters.get("verified"):
        query["verification.is_verified"] = True

    direction = sort_direction(order)
    field = SORT_FIELDS.get(sort, "created_at")
    docs, envelope = paginate(db["artisan"], query, [(field, direction), ("_id", direction)], page, limit)
    users = _users_for(db, docs)
    items = [artisan_out(a, users.get(a.get("user_id"), {})) for a in docs]
    return {"items": items, **envelope}


def get_artisan(db, artisan_id) -> Dict[str, Any]:
    """Public profile with active products. Every successful fetch counts one profile view."""
    oid = to_object_id(artisan_id)
    artisan = None
    if oid:
        artisan = db["artisan"].find_one_and_update(
            {"_id": oid},
            {"$inc": {"stats.profile_views": 1}},
            return_document=ReturnDocument.AFTER,
        )
    if not artisan:
        raise NotFoundError("Artisan not found")
    out = artisan_out(artisan, db["user"].find_one({"_id": artisan.get("user_id")}) or {})
    cursor = db["product"].find({"artisan_id": artisan["_id"], "status": "active"}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    out["products"] = [product_out(p) for p in cursor]
    return out


def update_artisan_profile(db, caller_id, fields: Dict[str, Any], new_images: Optional[Dict[str, List[str]]] = None) -> Dict[str, Any]:
    """Merge `fields` into the caller's profile.

    `new_images` maps "workshop", "certificates" and "awards" to freshly stored
    image URLs; each is appended to the matching list, nothing is replaced.
    Certificate and award details come from the parallel
    certificate_*/award_* lists in `fields`.
    """
    artisan = _artisan_for_user(db, caller_id)
    payload = validate(ArtisanUpdate, fields)
    data = payload.model_dump(exclude_unset=True)
    new_images = new_images or {}
    ts = now()

    set_ops: Dict[str, Any] = {}
    for key in ("business_name", "bio", "specialization", "experience"):
        if data.get(key) is not None:
            set_ops[key] = data[key]
    for key, model in MERGED_SECTIONS.items():
        if data.get(key):
            merged = {**(artisan.get(key) or {}), **data[key]}
            if key == "workshop":
                merged["images"] = (artisan.get("workshop") or {}).get("images", [])
            set_ops[key] = validate(model, merged).model_dump()

    push_ops: Dict[str, Any] = {}
    workshop_images = new_images.get("workshop") or []
    if workshop_images:
        if "workshop" in set_ops:
            set_ops["workshop"]["images"] = set_ops["workshop"]["images"] + workshop_images
        else:
            push_ops["workshop.images"] = {"$each": workshop_images}

    certificates = []
    names, issuers = payload.certificate_names, payload.certificate_issuers
    for i, url in enumerate(new_images.get("certificates") or []):
        certificates.append(validate(Certification, {
            "name": (names[i] if i < len(names) else "") or f"Certificate {i + 1}",
            "issued_by": (issuers[i] if i < len(issuers) else "") or "",
            "certificate_url": url,
        }).model_dump())
    if certificates:
        push_ops["certifications"] = {"$each": certificates}

    awards = []
    titles, years, descriptions = payload.award_titles, payload.award_years, payload.award_descriptions
    for i, url in enumerate(new_images.get("awards") or []):
        awards.append(validate(Award, {
            "title": (titles[i] if i < len(titles) else "") or f"Award {i + 1}",
            "year": years[i] if i < len(years) else ts.year,
            "description": (descriptions[i] if i < len(descriptions) else "") or "",
            "image_url": url,
        }).model_dump())
    if awards:
        push_ops["awards"] = {"$each": awards}

    set_ops["updated_at"] = ts
    update: Dict[str, Any] = {"$set": set_ops}
    if push_ops:
        update["$push"] = push_ops
    db["artisan"].update_one({"_id": artisan["_id"]}, update)
    logger.info("Artisan %s profile updated", artisan["_id"])

    updated = db["artisan"].find_one({"_id": artisan["_id"]})
    return artisan_out(updated, db["user"].find_one({"_id": updated.get("user_id")}) or {})


def list_my_products(db, caller_id, status: Optional[str] = None, page: int = 1, limit: int = 20) -> Dict[str, Any]:
    artisan = _artisan_for_user(db, caller_id)
    return list_products(db, {"artisan": str(artisan["_id"]), "status": status}, page=page, limit=limit)


def get_dashboard(db, caller_id) -> Dict[str, Any]:
    artisan = _artisan_for_user(db, caller_id)
    aid = artisan["_id"]

    recent = db["product"].find(
        {"artisan_id": aid},
        {"title": 1, "slug": 1, "images": 1, "pricing": 1, "stats": 1, "status": 1, "created_at": 1},
    ).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(DASHBOARD_RECENT)

    since = now() - timedelta(days=DASHBOARD_WINDOW_DAYS)
    rows = list(db["product"].aggregate([
        {"$match": {"artisan_id": aid, "created_at": {"$gte": since}}},
        {"$group": {
            "_id": None,
            "total_views": {"$sum": "$stats.views"},
            "total_likes": {"$sum": "$stats.likes"},
            "average_rating": {"$avg": "$stats.average_rating"},
        }},
    ]))
    monthly = {"total_views": 0, "total_likes": 0, "average_rating": 0}
    if rows:
        monthly = {
            "total_views": rows[0]["total_views"],
            "total_likes": rows[0]["total_likes"],
            "average_rating": round(rows[0]["average_rating"] or 0, 1),
        }

    stats = artisan.get("stats") or {}
    return {
        "artisan": artisan_out(artisan),
        "recent_products": [serialize(p) for p in recent],
        "monthly_stats": monthly,
        "overall_stats": {
            "total_products": stats.get("total_products", 0),
            "total_sales": stats.get("total_sales", 0),
            "rating": stats.get("rating", 0),
            "profile_views": stats.get("profile_views", 0),
            "followers": stats.get("followers", 0),
        },
    }


def search_artisans(db, query: str, limit: int = 10) -> List[Dict[str, Any]]:
    text = (query or "").strip()
    if not text:
        return []
    if limit < 1:
        raise ValidationError("limit must be 1 or greater")
    pattern = _ci_contains(text)
    cursor = db["artisan"].find({
        "$or": [
            {"business_name": pattern},
            {"specialization": pattern},
            {"location.city": pattern},
            {"location.state": pattern},
        ],
        "is_active": True,
    }).sort([("stats.rating", DESCENDING), ("_id", DESCENDING)]).limit(min(limit, SEARCH_MAX_LIMIT))
    docs = list(cursor)
    users = _users_for(db, docs)
    return [artisan_out(a, users.get(a.get("user_id"), {})) for a in docs]


def reconcile_product_counts(db) -> int:
    """Reset every artisan's product counter and list from the product collection.

    Safe to run repeatedly. Returns how many artisan documents were corrected.
    """
    owned = defaultdict(list)
    for p in db["product"].find({}, {"artisan_id": 1}).sort([("_id", 1)]):
        owned[p.get("artisan_id")].append(p["_id"])

    fixed = 0
    for artisan in db["artisan"].find({}, {"stats.total_products": 1, "product_ids": 1}):
        expected = owned.get(artisan["_id"], [])
        current_count = (artisan.get("stats") or {}).get("total_products", 0)
        if current_count == len(expected) and set(artisan.get("product_ids") or []) == set(expected):
            continue
        db["artisan"].update_one(
            {"_id": artisan["_id"]},
            {"$set": {"stats.total_products": len(expected), "product_ids": expected, "updated_at": now()}},
        )
        logger.warning("Artisan %s product count %s corrected to %s", artisan["_id"], current_count, len(expected))
        fixed += 1
    return fixed
