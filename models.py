"""
Data models for both SQLAlchemy (database) and Pydantic (API validation).
"""

from sqlalchemy import CheckConstraint, Column, Integer, String, Float, DateTime
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from database import Base


LAST_REFRESHED_KEY = "last_refreshed_at"


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as ISO-8601 UTC with a trailing Z. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============= SQLAlchemy Models (Database Tables) =============

class CountryDB(Base):
    """
    SQLAlchemy model representing the countries table.
    """
    __tablename__ = "countries"
    __table_args__ = (
        CheckConstraint("population >= 0", name="ck_countries_population"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    name_key = Column(String(255), nullable=False, unique=True, index=True)
    capital = Column(String(255), nullable=True)
    region = Column(String(100), nullable=True, index=True)
    population = Column(Integer, nullable=False)
    currency_code = Column(String(10), nullable=True, index=True)
    exchange_rate = Column(Float, nullable=True)
    estimated_gdp = Column(Float, nullable=True, index=True)
    flag_url = Column(String(500), nullable=True)
    last_refreshed_at = Column(DateTime, nullable=True)


class RefreshMeta(Base):
    """Key/value rows; holds the global last_refreshed_at marker."""
    __tablename__ = "refresh_meta"

    key = Column(String(64), primary_key=True)
    value = Column(String(64), nullable=False)


# ============= Domain Entity =============

class CountryRecord(BaseModel):
    """
    A fully derived country, ready to be written.

    name_key is computed here, once, from the trimmed name. It is the only
    identity used for upsert, lookup and delete.
    """
    name: str = Field(..., min_length=1, max_length=255)
    name_key: str = ""
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int = Field(..., ge=0)
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = Field(None, ge=0)
    estimated_gdp: Optional[float] = Field(None, ge=0)
    flag_url: Optional[str] = None
    last_refreshed_at: Optional[datetime] = None

    class Config:
        str_strip_whitespace = True

    @model_validator(mode="after")
    def _set_name_key(self):
        self.name_key = self.name.lower()
        return self


# ============= Pydantic Models (API Validation) =============

class CountryResponse(BaseModel):
    """Response model for country data."""
    id: int
    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None
    last_refreshed_at: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator("last_refreshed_at", mode="before")
    @classmethod
    def _format_timestamp(cls, value):
        if isinstance(value, datetime):
            return to_iso(value)
        return value


class Summary(BaseModel):
    """Snapshot rendered into the summary image."""
    total: int
    top5: List[CountryResponse]
    last_refreshed_at: str


class RefreshResult(BaseModel):
    """Outcome of one refresh cycle."""
    inserted: int
    modified: int
    failed: int = 0
    last_refreshed_at: str

    @property
    def total_updated_or_inserted(self) -> int:
        return self.inserted + self.modified


class StatusResponse(BaseModel):
    """Response model for status endpoint."""
    total_countries: int
    last_refreshed_at: Optional[str] = None


class RefreshResponse(BaseModel):
    """Response model for refresh endpoint."""
    message: str
    total_updated_or_inserted: int
    last_refreshed_at: str


class MessageResponse(BaseModel):
    message: str


class ImageRefreshResponse(BaseModel):
    message: str
    path: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    details: Optional[Any] = None


class ValidationErrorResponse(BaseModel):
    """Validation error response."""
    error: str = "Validation failed"
    details: Dict[str, str]
