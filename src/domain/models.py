from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional
from pydantic import AfterValidator, AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class BugStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "InProgress"
    FIXED = "Fixed"
    WONT_FIX = "WontFix"
    DUPLICATE = "Duplicate"


class ResponsibleParty(str, Enum):
    FRONTEND = "Frontend"
    BACKEND = "Backend"
    PM = "PM"
    DESIGN = "Design"
    QA = "QA"


class BugUrl(BaseModel):
    """A reproduction URL owned by exactly one Bug."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="UUID generated when the URL row is inserted")
    url: str = Field(..., min_length=1)
    bug_id: str = Field(..., description="ID of the owning bug")


class Bug(BaseModel):
    """
    Immutable aggregate root: a bug report together with its materialized URLs.
    Instances are snapshots read from the store; mutations go through BugService.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="UUID generated at creation, never reassigned")
    description: str = Field(..., min_length=1)
    image_url: Optional[str] = Field(None, description="Opaque reference to an externally stored screenshot")
    status: BugStatus
    comment: Optional[str] = None
    responsible: ResponsibleParty
    urls: List[BugUrl] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


_HTTP_URL = TypeAdapter(AnyHttpUrl)


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("description should not be empty")
    return value


Description = Annotated[str, AfterValidator(_require_text)]


class BugUrlInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., min_length=1)

    @field_validator("url")
    @classmethod
    def _must_be_http_url(cls, value: str) -> str:
        # Validate only; the caller's spelling is what gets stored.
        try:
            _HTTP_URL.validate_python(value)
        except ValueError:
            raise ValueError(f"{value!r} must be a valid http(s) URL") from None
        return value


class BugCreate(BaseModel):
    """Request payload for creating a bug. Field aliases match the JSON the UI sends."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    description: Description
    urls: List[BugUrlInput]
    image_url: Optional[str] = Field(None, alias="imageUrl")
    status: BugStatus
    comment: Optional[str] = None
    responsible: ResponsibleParty


class BugUpdate(BaseModel):
    """
    Partial update. Only fields present in the payload are applied.
    A non-empty `urls` list replaces every existing URL; an empty or missing list leaves them alone.
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    description: Optional[Description] = None
    urls: Optional[List[BugUrlInput]] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    status: Optional[BugStatus] = None
    comment: Optional[str] = None
    responsible: Optional[ResponsibleParty] = None

    @model_validator(mode="after")
    def _required_columns_not_null(self) -> "BugUpdate":
        for name in ("description", "status", "responsible"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def scalar_changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"urls"})

    def replacement_urls(self) -> List[str]:
        return [item.url for item in self.urls or []]
