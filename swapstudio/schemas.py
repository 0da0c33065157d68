import re
from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any

NAME_RE = re.compile(r"^[A-Za-z\s]+$")
EMAIL_RE = re.compile(r"^[^@\s<>]+@[^@\s<>]+\.[A-Za-z]{2,}$")
PHONE_RE = re.compile(r"^\d{10}$")

class SubmissionForm(BaseModel):
    name: str
    email: str
    phone: str
    terms: bool

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Name is required")
        if not 4 <= len(v) <= 30:
            raise ValueError("Name must be between 4 and 30 characters")
        if not NAME_RE.match(v):
            raise ValueError("Name must contain only alphabetic characters and spaces")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v):
        v = (v or "").strip().lower()
        if not v:
            raise ValueError("Email is required")
        if not EMAIL_RE.match(v):
            raise ValueError("Please provide a valid email address")
        return v

    @field_validator("phone", mode="before")
    @classmethod
    def check_phone(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Phone number is required")
        if not PHONE_RE.match(v):
            raise ValueError("Phone number must be exactly 10 digits")
        return v

    @field_validator("terms", mode="before")
    @classmethod
    def check_terms(cls, v):
        if v != "on" and v is not True:
            raise ValueError("You must accept the Terms & Conditions")
        return True

class HostedImage(BaseModel):
    url: str
    public_id: str
    width: int
    height: int
    format: str
    bytes: int

class SubmissionRecord(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    terms: bool
    source_image: Optional[HostedImage] = None
    target_image: Optional[HostedImage] = None
    swapped_image: Optional[HostedImage] = None
    created_at_ms: int
    updated_at_ms: int

class SubmissionResponse(BaseModel):
    submission_id: str
    swapped_image_url: str
    message: str = "Face swap completed"

class SubmissionStats(BaseModel):
    total: int
    today: int
    last_updated: str

class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionRecord]
    stats: SubmissionStats
    page: int
    has_next_page: bool
    has_prev_page: bool

class ApiStatusResponse(BaseModel):
    configured: bool
    connected: bool
    timestamp: str
    message: Optional[str] = None

class ClientStatsResponse(BaseModel):
    total_requests: int
    successful_swaps: int
    failed_swaps: int
    average_processing_time_ms: float
    success_rate: str
    average_processing_time_formatted: str

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime_seconds: float
    environment: str

class ServiceInfo(BaseModel):
    service: str
    api_configured: bool
    routes: Dict[str, Any]
