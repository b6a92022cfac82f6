"""
Database Schemas for the Artisan Marketplace

Each top-level Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name:
- User -> "user"
- Artisan -> "artisan"
- Product -> "product"

The *Create / *Update / *In models further down are request payloads.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError

PRODUCT_CATEGORIES = [
    "Pottery & Ceramics", "Textiles & Fabrics", "Jewelry & Accessories",
    "Woodwork & Furniture", "Metalwork", "Leather Goods", "Art & Paintings",
    "Sculptures", "Home Decor", "Traditional Instruments", "Toys & Games",
    "Bags & Purses", "Clothing & Apparel", "Kitchen & Dining", "Religious Items",
]

SPECIALIZATIONS = [
    "Pottery", "Textiles", "Jewelry", "Woodwork", "Metalwork",
    "Leather", "Painting", "Sculpture", "Weaving", "Embroidery",
    "Glass Work", "Stone Carving", "Basketry", "Calligraphy",
    "Traditional Instruments", "Other",
]

Role = Literal["customer", "artisan"]
ProductStatus = Literal["draft", "pending_review", "active", "inactive", "out_of_stock", "discontinued"]
Difficulty = Literal["Beginner", "Intermediate", "Advanced", "Master"]


def validate(model_cls, data: Dict[str, Any]):
    """Build `model_cls` from `data`, raising the domain ValidationError on failure."""
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc)


def _check_category(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in PRODUCT_CATEGORIES:
        raise ValueError(f"'{value}' is not a recognized category")
    return value


def _check_specializations(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return values
    unknown = [v for v in values if v not in SPECIALIZATIONS]
    if unknown:
        raise ValueError(f"unrecognized specialization: {', '.join(unknown)}")
    # keep first occurrence order, drop repeats
    return list(dict.fromkeys(values))


# ---------------------- Users ----------------------

class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lower-cased")
    password_hash: str = Field(..., description="Hashed password")
    role: Role = Field("customer")
    phone: Optional[str] = None
    avatar_url: Optional[str] = Field(None)
    is_active: bool = Field(True)
    last_login: Optional[datetime] = None


# ---------------------- Artisans ----------------------

class Coordinates(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Location(BaseModel):
    city: str = ""
    state: str = ""
    country: str = "India"
    coordinates: Optional[Coordinates] = None


class CraftTradition(BaseModel):
    origin: Optional[str] = None
    history: Optional[str] = None
    techniques: List[str] = []
    cultural_significance: Optional[str] = None


class Workshop(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    images: List[str] = []
    description: Optional[str] = None
    visiting_hours: Optional[str] = None
    can_visit: bool = False


class SocialMedia(BaseModel):
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    youtube: Optional[str] = None
    website: Optional[str] = None


class Certification(BaseModel):
    name: str
    issued_by: str = ""
    issued_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    certificate_url: Optional[str] = None


class Award(BaseModel):
    title: str
    year: int
    description: str = ""
    image_url: Optional[str] = None


class ArtisanStats(BaseModel):
    total_products: int = Field(0, ge=0)
    total_sales: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5)
    review_count: int = 0
    followers: int = 0
    profile_views: int = 0


class VerificationDocument(BaseModel):
    type: str = Field(..., description="identity | business_license | craft_certificate")
    url: str
    status: Literal["pending", "approved", "rejected"] = "pending"


class Verification(BaseModel):
    is_verified: bool = False
    verification_date: Optional[datetime] = None
    documents: List[VerificationDocument] = []


class Subscription(BaseModel):
    plan: Literal["free", "premium", "enterprise"] = "free"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    features: List[str] = []


class Artisan(BaseModel):
    user_id: Any = Field(..., description="Reference to user _id")
    business_name: str = Field(..., min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=1000)
    specialization: List[str] = []
    craft_tradition: CraftTradition = CraftTradition()
    experience: int = Field(0, ge=0, description="Years of experience")
    location: Location = Location()
    workshop: Workshop = Workshop()
    social_media: SocialMedia = SocialMedia()
    certifications: List[Certification] = []
    awards: List[Award] = []
    product_ids: List[Any] = []
    stats: ArtisanStats = ArtisanStats()
    verification: Verification = Verification()
    subscription: Subscription = Subscription()
    is_active: bool = True
    featured_until: Optional[datetime] = None
    joined_date: Optional[datetime] = None

    @field_validator("specialization")
    @classmethod
    def specialization_in_enum(cls, v):
        return _check_specializations(v)


# ---------------------- Products ----------------------

class ProductImage(BaseModel):
    url: str
    alt: str = ""
    is_primary: bool = False
    order: int = 0


class AIAnalysis(BaseModel):
    generated_description: Optional[str] = None
    suggested_tags: List[str] = []
    category_confidence: Optional[float] = None
    craft_techniques: List[str] = []
    cultural_context: Optional[str] = None
    marketing_keywords: List[str] = []
    target_audience: List[str] = []


class Category(BaseModel):
    primary: str
    secondary: List[str] = []
    tags: List[str] = []

    @field_validator("primary")
    @classmethod
    def primary_in_enum(cls, v):
        return _check_category(v)


class PriceChange(BaseModel):
    price: float
    date: datetime
    reason: Optional[str] = None


class Pricing(BaseModel):
    base_price: float = Field(..., ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    currency: str = "INR"
    price_history: List[PriceChange] = []


class Inventory(BaseModel):
    stock: int = Field(1, ge=0)
    reserved: int = Field(0, ge=0)
    sold: int = Field(0, ge=0)
    low_stock_threshold: int = Field(5, ge=0)
    is_unlimited: bool = False


class Dimensions(BaseModel):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    unit: str = "cm"


class Weight(BaseModel):
    value: Optional[float] = None
    unit: str = "g"


class Specifications(BaseModel):
    dimensions: Dimensions = Dimensions()
    weight: Weight = Weight()
    materials: List[str] = []
    colors: List[str] = []
    pattern: Optional[str] = None
    finish: Optional[str] = None
    care_instructions: Optional[str] = None
    customizable: bool = False
    made_to_order: bool = False
    production_time: Optional[int] = Field(None, ge=0, description="Days")


class CraftDetails(BaseModel):
    technique: Optional[str] = None
    time_to_make: Optional[float] = Field(None, ge=0, description="Hours")
    difficulty: Optional[Difficulty] = None
    tools: List[str] = []
    heritage: Optional[str] = None
    region: Optional[str] = None


class Shipping(BaseModel):
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    shipping_class: Optional[str] = None
    free_shipping: bool = False
    domestic_shipping: bool = True
    international_shipping: bool = False


class Review(BaseModel):
    user_id: Any
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    images: List[str] = []
    verified: bool = False
    helpful: int = 0
    created_at: datetime


class ProductStats(BaseModel):
    views: int = 0
    likes: int = 0
    shares: int = 0
    saves: int = 0
    average_rating: float = 0
    total_reviews: int = 0


class Seo(BaseModel):
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: List[str] = []


class Featured(BaseModel):
    is_featured: bool = False
    featured_until: Optional[datetime] = None
    featured_category: Optional[str] = None


class Flags(BaseModel):
    is_new: bool = True
    is_bestseller: bool = False
    is_handmade: bool = True
    is_eco_friendly: bool = False
    is_certified: bool = False


class Product(BaseModel):
    artisan_id: Any = Field(..., description="Reference to artisan _id")
    title: str = Field(..., min_length=1, max_length=150)
    slug: str = Field(..., description="URL-safe identifier")
    description: str = Field(..., min_length=1, max_length=2000)
    short_description: Optional[str] = Field(None, max_length=300)
    story: Optional[str] = Field(None, max_length=3000)
    ai_analysis: AIAnalysis = AIAnalysis()
    images: List[ProductImage] = []
    category: Category
    pricing: Pricing
    inventory: Inventory = Inventory()
    specifications: Specifications = Specifications()
    craft_details: CraftDetails = CraftDetails()
    shipping: Shipping = Shipping()
    reviews: List[Review] = []
    stats: ProductStats = ProductStats()
    seo: Seo = Seo()
    status: ProductStatus = "active"
    featured: Featured = Featured()
    flags: Flags = Flags()


# ---------------------- Request payloads ----------------------

class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    role: Role = "customer"
    phone: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class ProductCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=150)
    description: str = Field(..., min_length=1, max_length=2000)
    category: str
    base_price: float = Field(..., ge=0)
    stock: int = Field(1, ge=0)
    short_description: Optional[str] = Field(None, max_length=300)
    story: Optional[str] = Field(None, max_length=3000)
    secondary_categories: List[str] = []
    tags: List[str] = []
    discounted_price: Optional[float] = Field(None, ge=0)
    currency: str = "INR"
    is_unlimited: bool = False
    status: ProductStatus = "active"
    specifications: Specifications = Specifications()
    craft_details: CraftDetails = CraftDetails()
    shipping: Shipping = Shipping()
    ai_analysis: AIAnalysis = AIAnalysis()
    flags: Flags = Flags()

    @field_validator("category")
    @classmethod
    def category_in_enum(cls, v):
        return _check_category(v)


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    category: Optional[str] = None
    base_price: Optional[float] = Field(None, ge=0)
    price_change_reason: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    reserved: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    short_description: Optional[str] = Field(None, max_length=300)
    story: Optional[str] = Field(None, max_length=3000)
    secondary_categories: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    discounted_price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    is_unlimited: Optional[bool] = None
    status: Optional[ProductStatus] = None
    specifications: Optional[Specifications] = None
    craft_details: Optional[CraftDetails] = None
    shipping: Optional[Shipping] = None
    ai_analysis: Optional[AIAnalysis] = None
    flags: Optional[Flags] = None
    featured: Optional[Featured] = None
    seo: Optional[Seo] = None

    @field_validator("category")
    @classmethod
    def category_in_enum(cls, v):
        return _check_category(v)


class ReviewIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class ArtisanUpdate(BaseModel):
    business_name: Optional[str] = Field(None, min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=1000)
    specialization: Optional[List[str]] = None
    experience: Optional[int] = Field(None, ge=0)
    location: Optional[Dict[str, Any]] = None
    craft_tradition: Optional[Dict[str, Any]] = None
    workshop: Optional[Dict[str, Any]] = None
    social_media: Optional[Dict[str, Any]] = None
    certificate_names: List[str] = []
    certificate_issuers: List[str] = []
    award_titles: List[str] = []
    award_years: List[int] = []
    award_descriptions: List[str] = []

    @field_validator("specialization")
    @classmethod
    def specialization_in_enum(cls, v):
        return _check_specializations(v)


class ContentAssistIn(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None
    region: Optional[str] = None


class StoryIn(BaseModel):
    product_title: Optional[str] = None
    category: Optional[str] = None
    materials: Optional[str] = None
    technique: Optional[str] = None
    region: Optional[str] = None
    artisan_background: Optional[str] = None
