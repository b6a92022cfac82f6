import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel

import artisans
import auth
import config
import content_assist
import database
import products
import storage
from auth import get_current_user, require_artisan
from database import get_db
from errors import MarketplaceError, ValidationError
from schemas import ContentAssistIn, PasswordChange, ProfileUpdate, RegisterPayload, ReviewIn, StoryIn

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("marketplace")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; API calls will fail")
    yield


app = FastAPI(title="Artisan Marketplace API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount(storage.URL_PREFIX, StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = ValidationError.from_pydantic(exc)
    return JSONResponse(status_code=error.status_code, content={"detail": error.message})


# Helpers
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


def parse_json_field(name: str, value: Optional[str]) -> Optional[Any]:
    if value is None or value == "":
        return None
    try:
        return json.loads(value)
    except ValueError:
        raise ValidationError(f"{name} must be valid JSON")


def parse_csv(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@app.get("/")
def read_root():
    return {"message": "Artisan marketplace backend is running"}


# Auth
@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterPayload, db=Depends(get_db)):
    user, artisan = auth.register_user(db, payload.model_dump())
    token = auth.create_access_token({"sub": str(user["_id"])})
    return {
        "message": "User registered successfully",
        "token": token,
        "user": auth.user_out(user),
        "artisan": artisans.artisan_out(artisan) if artisan else None,
    }


@app.post("/api/auth/login")
def login(form_data: OAuth2PasswordRequestForm = Depends(), db=Depends(get_db)):
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    access_token = auth.create_access_token({"sub": str(user["_id"])})
    artisan = db["artisan"].find_one({"user_id": user["_id"]}) if user.get("role") == "artisan" else None
    return {
        **Token(access_token=access_token).model_dump(),
        "user": auth.user_out(user),
        "artisan": artisans.artisan_out(artisan) if artisan else None,
    }


@app.get("/api/auth/profile")
def get_profile(current=Depends(get_current_user), db=Depends(get_db)):
    artisan = db["artisan"].find_one({"user_id": current["_id"]}) if current.get("role") == "artisan" else None
    return {"user": auth.user_out(current), "artisan": artisans.artisan_out(artisan) if artisan else None}


@app.put("/api/auth/profile")
def update_profile(payload: ProfileUpdate, current=Depends(get_current_user), db=Depends(get_db)):
    user = auth.update_user_profile(db, current["_id"], payload.model_dump(exclude_unset=True))
    return {"message": "Profile updated successfully", "user": auth.user_out(user)}


@app.put("/api/auth/change-password")
def change_password(payload: PasswordChange, current=Depends(get_current_user), db=Depends(get_db)):
    auth.change_password(db, current["_id"], payload.model_dump())
    return {"message": "Password changed successfully"}


@app.post("/api/auth/deactivate")
def deactivate(current=Depends(get_current_user), db=Depends(get_db)):
    auth.deactivate_user(db, current["_id"])
    return {"message": "Account deactivated"}


@app.post("/api/auth/logout")
def logout(current=Depends(get_current_user)):
    # tokens are stateless; the client discards its copy
    return {"message": "Logged out successfully"}


@app.get("/api/auth/verify")
def verify(current=Depends(get_current_user)):
    return {"valid": True, "user": auth.user_out(current)}


@app.get("/api/me")
def me(current=Depends(get_current_user)):
    return auth.user_out(current)


# Catalog
@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    search: Optional[str] = None,
    q: Optional[str] = None,
    featured: Optional[bool] = None,
    artisan: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE,
    sort: str = Query("created_at", description="created_at|price|rating|views|popularity|title"),
    order: str = Query("desc", description="asc|desc"),
    db=Depends(get_db),
):
    filters = drop_none({
        "category": category,
        "min_price": min_price,
        "max_price": max_price,
        "search": search or q,
        "featured": featured,
        "artisan": artisan,
        "status": status,
    })
    return products.list_products(db, filters, page=page, limit=limit, sort=sort, order=order)


@app.get("/api/products/featured/list")
def featured_products(db=Depends(get_db)):
    return products.list_featured_products(db)


@app.get("/api/products/categories/list")
def product_categories(db=Depends(get_db)):
    return products.list_category_counts(db)


@app.post("/api/products", status_code=201)
async def create_product(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    base_price: Optional[float] = Form(None),
    stock: Optional[int] = Form(None),
    short_description: Optional[str] = Form(None),
    story: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    secondary_categories: Optional[str] = Form(None),
    discounted_price: Optional[float] = Form(None),
    currency: Optional[str] = Form(None),
    is_unlimited: Optional[bool] = Form(None),
    status: Optional[str] = Form(None),
    specifications: Optional[str] = Form(None),
    craft_details: Optional[str] = Form(None),
    shipping: Optional[str] = Form(None),
    ai_analysis: Optional[str] = Form(None),
    flags: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    current=Depends(require_artisan),
    db=Depends(get_db),
):
    fields = drop_none({
        "title": title,
        "description": description,
        "category": category,
        "base_price": base_price,
        "stock": stock,
        "short_description": short_description,
        "story": story,
        "tags": parse_csv(tags),
        "secondary_categories": parse_csv(secondary_categories),
        "discounted_price": discounted_price,
        "currency": currency,
        "is_unlimited": is_unlimited,
        "status": status,
        "specifications": parse_json_field("specifications", specifications),
        "craft_details": parse_json_field("craft_details", craft_details),
        "shipping": parse_json_field("shipping", shipping),
        "ai_analysis": parse_json_field("ai_analysis", ai_analysis),
        "flags": parse_json_field("flags", flags),
    })
    image_urls = await storage.save_uploads(images, "products", "images")
    try:
        product = await run_in_threadpool(products.create_product, db, current["_id"], fields, image_urls)
    except MarketplaceError:
        storage.delete_assets(image_urls)
        raise
    return {"message": "Product created successfully", "product": product}


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return products.get_product(db, product_id)


@app.put("/api/products/{product_id}")
async def update_product(
    product_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    base_price: Optional[float] = Form(None),
    price_change_reason: Optional[str] = Form(None),
    stock: Optional[int] = Form(None),
    reserved: Optional[int] = Form(None),
    short_description: Optional[str] = Form(None),
    story: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    secondary_categories: Optional[str] = Form(None),
    discounted_price: Optional[float] = Form(None),
    is_unlimited: Optional[bool] = Form(None),
    status: Optional[str] = Form(None),
    specifications: Optional[str] = Form(None),
    craft_details: Optional[str] = Form(None),
    shipping: Optional[str] = Form(None),
    ai_analysis: Optional[str] = Form(None),
    flags: Optional[str] = Form(None),
    featured: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    current=Depends(require_artisan),
    db=Depends(get_db),
):
    fields = drop_none({
        "title": title,
        "description": description,
        "category": category,
        "base_price": base_price,
        "price_change_reason": price_change_reason,
        "stock": stock,
        "reserved": reserved,
        "short_description": short_description,
        "story": story,
        "tags": parse_csv(tags),
        "secondary_categories": parse_csv(secondary_categories),
        "discounted_price": discounted_price,
        "is_unlimited": is_unlimited,
        "status": status,
        "specifications": parse_json_field("specifications", specifications),
        "craft_details": parse_json_field("craft_details", craft_details),
        "shipping": parse_json_field("shipping", shipping),
        "ai_analysis": parse_json_field("ai_analysis", ai_analysis),
        "flags": parse_json_field("flags", flags),
        "featured": parse_json_field("featured", featured),
    })
    image_urls = await storage.save_uploads(images, "products", "images")
    try:
        product = await run_in_threadpool(products.update_product, db, product_id, current["_id"], fields, image_urls)
    except MarketplaceError:
        storage.delete_assets(image_urls)
        raise
    return {"message": "Product updated successfully", "product": product}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, current=Depends(require_artisan), db=Depends(get_db)):
    products.delete_product(db, product_id, current["_id"])
    return {"message": "Product deleted successfully"}


@app.post("/api/products/{product_id}/reviews", status_code=201)
def add_review(product_id: str, review: ReviewIn, current=Depends(get_current_user), db=Depends(get_db)):
    created = products.add_review(db, product_id, current["_id"], review.rating, review.comment)
    return {"message": "Review added successfully", "review": created}


# Artisans
@app.get("/api/artisans")
def list_artisans(
    specialization: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    verified: Optional[bool] = None,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE,
    sort: str = Query("rating", description="rating|experience|profile_views|total_products|business_name|created_at"),
    order: str = Query("desc", description="asc|desc"),
    db=Depends(get_db),
):
    filters = drop_none({"specialization": specialization, "city": city, "state": state, "verified": verified})
    return artisans.list_artisans(db, filters, page=page, limit=limit, sort=sort, order=order)


@app.get("/api/artisans/search/{query}")
def search_artisans(query: str, limit: int = 10, db=Depends(get_db)):
    return artisans.search_artisans(db, query, limit)


@app.get("/api/artisans/my/products")
def my_products(
    status: Optional[str] = None,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE,
    current=Depends(require_artisan),
    db=Depends(get_db),
):
    return artisans.list_my_products(db, current["_id"], status=status, page=page, limit=limit)


@app.get("/api/artisans/my/dashboard")
def dashboard(current=Depends(require_artisan), db=Depends(get_db)):
    return artisans.get_dashboard(db, current["_id"])


@app.put("/api/artisans/profile")
async def update_artisan_profile(
    business_name: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    specialization: Optional[str] = Form(None),
    experience: Optional[int] = Form(None),
    location: Optional[str] = Form(None),
    craft_tradition: Optional[str] = Form(None),
    workshop: Optional[str] = Form(None),
    social_media: Optional[str] = Form(None),
    certificate_names: Optional[List[str]] = Form(None),
    certificate_issuers: Optional[List[str]] = Form(None),
    award_titles: Optional[List[str]] = Form(None),
    award_years: Optional[List[int]] = Form(None),
    award_descriptions: Optional[List[str]] = Form(None),
    workshop_images: Optional[List[UploadFile]] = File(None),
    certificate_images: Optional[List[UploadFile]] = File(None),
    award_images: Optional[List[UploadFile]] = File(None),
    current=Depends(require_artisan),
    db=Depends(get_db),
):
    for name, files, max_count in (("workshop_images", workshop_images, 5), ("certificate_images", certificate_images, 3), ("award_images", award_images, 3)):
        if files and len(files) > max_count:
            raise ValidationError(f"At most {max_count} {name} can be uploaded at once")

    fields = drop_none({
        "business_name": business_name,
        "bio": bio,
        "specialization": parse_csv(specialization),
        "experience": experience,
        "location": parse_json_field("location", location),
        "craft_tradition": parse_json_field("craft_tradition", craft_tradition),
        "workshop": parse_json_field("workshop", workshop),
        "social_media": parse_json_field("social_media", social_media),
        "certificate_names": certificate_names,
        "certificate_issuers": certificate_issuers,
        "award_titles": award_titles,
        "award_years": award_years,
        "award_descriptions": award_descriptions,
    })
    new_images: Dict[str, List[str]] = {}
    try:
        new_images["workshop"] = await storage.save_uploads(workshop_images, "artisans", "workshop_images")
        new_images["certificates"] = await storage.save_uploads(certificate_images, "artisans", "certificate_images")
        new_images["awards"] = await storage.save_uploads(award_images, "artisans", "award_images")
        artisan = await run_in_threadpool(artisans.update_artisan_profile, db, current["_id"], fields, new_images)
    except MarketplaceError:
        storage.delete_assets([url for urls in new_images.values() for url in urls])
        raise
    return {"message": "Profile updated successfully", "artisan": artisan}


@app.get("/api/artisans/{artisan_id}")
def get_artisan(artisan_id: str, db=Depends(get_db)):
    return artisans.get_artisan(db, artisan_id)


# Content assist
@app.post("/api/ai/analyze-product")
def analyze_product(payload: ContentAssistIn, current=Depends(require_artisan)):
    analysis = content_assist.assist_content(payload.description, payload.category, payload.region)
    return {"message": "Product analyzed successfully", "analysis": analysis}


@app.post("/api/ai/generate-story")
def generate_story(payload: StoryIn, current=Depends(require_artisan)):
    story = content_assist.generate_story(**payload.model_dump())
    return {"message": "Story generated successfully", "story": story}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
