"""
Database Schemas for ReWear (clothing exchange)

Each Pydantic model maps to a MongoDB collection (lowercased class name):
User -> "user", Item -> "item", SwapRequest -> "swaprequest",
Transaction -> "transaction", Payment -> "payment".
References to other documents are stored as ObjectId strings.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator

Role = Literal['user', 'moderator', 'admin']
Category = Literal['clothing', 'accessories', 'shoes', 'bags', 'jewelry', 'electronics', 'books', 'home']
Condition = Literal['new', 'like_new', 'gently_used', 'used', 'vintage']
ItemStatus = Literal['available', 'pending_swap', 'swapped', 'removed']
SwapStatus = Literal['pending', 'approved', 'rejected', 'cancelled', 'completed']
SwapType = Literal['item_for_item', 'item_for_points', 'points_for_item', 'mixed']
TransactionType = Literal['purchase', 'deduction', 'transfer', 'bonus', 'refund']
TransactionStatus = Literal['pending', 'completed', 'failed', 'cancelled']
PaymentMethod = Literal['credit_card', 'debit_card', 'paypal', 'stripe', 'bank_transfer', 'system']
PaymentStatus = Literal['pending', 'processing', 'completed', 'failed', 'cancelled', 'refunded']


class Location(BaseModel):
    city: Optional[str] = Field(None, max_length=50)
    state: Optional[str] = Field(None, max_length=50)
    country: Optional[str] = Field(None, max_length=50)


class UserStats(BaseModel):
    items_listed: int = Field(0, ge=0)
    items_swapped: int = Field(0, ge=0)
    total_swaps: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5)
    reviews: int = Field(0, ge=0)


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True
    swap_requests: bool = True
    new_items: bool = False


class PrivacyPreferences(BaseModel):
    show_location: bool = True
    show_email: bool = False
    show_phone: bool = False


class Preferences(BaseModel):
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    privacy: PrivacyPreferences = Field(default_factory=PrivacyPreferences)
    categories: List[Category] = Field(default_factory=list)


class Social(BaseModel):
    phone: Optional[str] = Field(None, max_length=20)
    website: Optional[str] = Field(None, max_length=200)
    instagram: Optional[str] = Field(None, max_length=50)


# Members who list, swap and redeem items
class User(BaseModel):
    name: str = Field(..., max_length=50, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lower-cased")
    password_hash: str = Field(..., description="Salted PBKDF2 hash of password")
    avatar: str = Field("", description="Avatar URL")
    bio: Optional[str] = Field(None, max_length=500)
    points: int = Field(100, ge=0, description="Points balance")
    role: Role = Field('user', description="Role for permissions")
    location: Location = Field(default_factory=Location)
    preferences: Preferences = Field(default_factory=Preferences)
    social: Social = Field(default_factory=Social)
    stats: UserStats = Field(default_factory=UserStats)
    is_active: bool = Field(True, description="Whether user is active")
    last_active: Optional[datetime] = None


# Garments and other goods listed for swap or redemption
class Item(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    category: Category
    subcategory: Optional[str] = Field(None, max_length=50)
    brand: Optional[str] = Field(None, max_length=50)
    type: str = Field(..., min_length=1, max_length=50)
    size: str = Field(..., min_length=1, max_length=20)
    color: Optional[str] = Field(None, max_length=30)
    condition: Condition
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(..., min_length=1, description="At least one image URL")
    user_id: str = Field(..., description="Owner user id")
    status: ItemStatus = Field('available')
    points: int = Field(..., ge=1, le=10000, description="Redemption price in points")
    location: Location = Field(default_factory=Location)
    views: int = Field(0, ge=0)
    likes: int = Field(0, ge=0)
    featured: bool = False
    buyer_id: Optional[str] = None
    swapped_at: Optional[datetime] = None

    @field_validator('images')
    @classmethod
    def images_not_blank(cls, v: List[str]) -> List[str]:
        if any(not url.strip() for url in v):
            raise ValueError('Image URL cannot be empty')
        return v

    @field_validator('tags')
    @classmethod
    def tags_short(cls, v: List[str]) -> List[str]:
        if any(len(tag) > 30 for tag in v):
            raise ValueError('Tag cannot exceed 30 characters')
        return v


class SideValue(BaseModel):
    requester: Optional[Any] = None
    owner: Optional[Any] = None


# Proposal to exchange items and/or points between two members
class SwapRequest(BaseModel):
    requester_id: str
    item_id: str
    offered_item_id: Optional[str] = None
    status: SwapStatus = Field('pending')
    message: Optional[str] = Field(None, max_length=500)
    requester_message: Optional[str] = Field(None, max_length=500)
    owner_message: Optional[str] = Field(None, max_length=500)
    points_offered: int = Field(0, ge=0)
    points_requested: int = Field(0, ge=0)
    swap_type: SwapType
    meeting_location: Optional[str] = Field(None, max_length=200)
    meeting_date: Optional[datetime] = None
    rating: SideValue = Field(default_factory=SideValue)
    review: SideValue = Field(default_factory=SideValue)


class TransactionMetadata(BaseModel):
    item_id: Optional[str] = None
    swap_request_id: Optional[str] = None
    related_user_id: Optional[str] = None
    reason: Optional[str] = None


# Audit record of a single balance change
class Transaction(BaseModel):
    user_id: str
    type: TransactionType
    amount: int = Field(..., ge=0)
    description: str = Field(..., max_length=200)
    status: TransactionStatus = Field('pending')
    payment_method: PaymentMethod = Field('system')
    payment_id: Optional[str] = None
    metadata: TransactionMetadata = Field(default_factory=TransactionMetadata)
    balance_before: int
    balance_after: int


class Address(BaseModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class BillingDetails(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[Address] = None


# Credit package purchase attempt (gateway is simulated)
class Payment(BaseModel):
    user_id: str
    amount: float = Field(..., ge=0)
    currency: Literal['USD', 'EUR', 'GBP', 'CAD', 'AUD'] = 'USD'
    points_to_receive: int = Field(..., ge=0)
    payment_method: PaymentMethod
    status: PaymentStatus = Field('pending')
    gateway: Literal['stripe', 'paypal', 'square', 'manual']
    gateway_payment_id: Optional[str] = None
    gateway_response: Optional[Dict[str, Any]] = None
    billing_details: BillingDetails
    metadata: Dict[str, Optional[str]] = Field(default_factory=dict)
