from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, List
from enum import Enum

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class Tier(str, Enum):
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"
    REGULAR = "regular"

class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    DELETED = "deleted"

class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    IN_PROGRESS = "in-progress"

class SchedulingType(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"

class ServiceCategory(str, Enum):
    WEBSITE = "website"
    DESIGN = "design"
    MANAGEMENT = "management"
    ADVERTISING = "advertising"

class Platform(str, Enum):
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    TIKTOK = "tiktok"
    SNAPCHAT = "snapchat"
    YOUTUBE = "youtube"
    GOOGLE = "google"
    WEBSITE = "website"
    OTHER = "other"

class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


# ============================================================================
# SERVICE ENTRIES
# ============================================================================

class WebsiteService(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    price: float = Field(0, ge=0)


class DesignService(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    price: float = Field(0, ge=0)
    monthlyInstances: int = Field(1, ge=0)
    schedulingType: SchedulingType = SchedulingType.AUTOMATIC
    platforms: List[Platform] = Field(default_factory=lambda: [Platform.FACEBOOK])


class ManagementService(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    price: float = Field(0, ge=0)
    monthlyUpdates: int = Field(1, ge=0)
    schedulingType: SchedulingType = SchedulingType.AUTOMATIC
    platforms: List[Platform] = Field(default_factory=lambda: [Platform.FACEBOOK])


class AdvertisingService(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    price: float = Field(0, ge=0)
    platforms: List[Platform] = Field(default_factory=lambda: [Platform.FACEBOOK])
    budget: float = Field(0, ge=0)  # Not part of totalPrice


# ============================================================================
# TASKS & SUBSCRIPTIONS
# ============================================================================

class Task(BaseModel):
    """A scheduled (automatic) or human-tracked (manual) unit of work.

    Automatic tasks are standalone documents in the ``tasks`` collection;
    manual tasks are embedded in their subscription's ``manualTasks``.
    """
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str
    description: str
    clientId: str
    clientName: str = ""
    subscriptionId: str
    dueDate: str = ""  # YYYY-MM-DD, empty for unscheduled manual tasks
    status: TaskStatus = TaskStatus.PENDING
    serviceCategory: ServiceCategory
    serviceType: str
    isDeleted: bool = False
    schedulingType: SchedulingType
    completedAt: Optional[str] = None


class SubscriptionForm(BaseModel):
    """Raw input of the "new subscription" form, validated before aggregation."""
    model_config = ConfigDict(extra="ignore")

    clientId: str = Field(..., min_length=1)
    clientName: str = Field(..., min_length=1)
    clientPhone: str = ""
    duration: int = Field(..., gt=0)
    startDate: str
    emailCredentials: Optional[str] = None
    websiteServices: List[WebsiteService] = Field(default_factory=list)
    designServices: List[DesignService] = Field(default_factory=list)
    managementServices: List[ManagementService] = Field(default_factory=list)
    advertisingServices: List[AdvertisingService] = Field(default_factory=list)


class Subscription(BaseModel):
    """In-memory subscription record. Dates are ISO strings; the store converts
    them to and from BSON datetimes at its read/write edges."""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str
    clientId: str = ""
    clientName: str
    clientPhone: str = ""
    duration: int = Field(1, gt=0)
    startDate: str  # YYYY-MM-DD
    endDate: str  # YYYY-MM-DD ("" when the start date could not be parsed)
    totalPrice: float = Field(0, ge=0)
    emailCredentials: Optional[str] = None
    websiteServices: List[WebsiteService] = Field(default_factory=list)
    designServices: List[DesignService] = Field(default_factory=list)
    managementServices: List[ManagementService] = Field(default_factory=list)
    advertisingServices: List[AdvertisingService] = Field(default_factory=list)
    manualTasks: List[Task] = Field(default_factory=list)
    tier: Tier = Tier.REGULAR
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    createdAt: Optional[str] = None  # full ISO-8601 timestamp
    deletedAt: Optional[str] = None


class SubscriptionUpdate(BaseModel):
    """Editable subset of a subscription (tier and createdAt are not editable)."""
    model_config = ConfigDict(extra="ignore")

    clientName: Optional[str] = None
    clientPhone: Optional[str] = None
    emailCredentials: Optional[str] = None
    totalPrice: Optional[float] = Field(None, ge=0)
    websiteServices: Optional[List[WebsiteService]] = None
    designServices: Optional[List[DesignService]] = None
    managementServices: Optional[List[ManagementService]] = None
    advertisingServices: Optional[List[AdvertisingService]] = None
    manualTasks: Optional[List[Task]] = None


class ManualTaskEdit(BaseModel):
    description: str = Field(..., min_length=1)


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


# ============================================================================
# AUTH
# ============================================================================

class UserProfile(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str
    name: str = ""
    email: Optional[str] = None
    role: UserRole = UserRole.STAFF


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserProfile
