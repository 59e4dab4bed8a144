from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any, Dict
from datetime import datetime
from enum import Enum

from popup_config import merge_page_targeting, truncate_popup_name, POPUP_NAME_MAX_LENGTH


class CamelModel(BaseModel):
    """Wire models speak camelCase; Python attributes stay snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─────────────── Enums ───────────────

class PopupType(str, Enum):
    email = "email"
    wheel_email = "wheel-email"
    community = "community"
    timer = "timer"
    scratch_card = "scratch-card"


class Frequency(str, Enum):
    once = "once"
    daily = "daily"
    weekly = "weekly"
    always = "always"


class EventType(str, Enum):
    view = "view"
    email_entered = "email_entered"
    spin = "spin"
    win = "win"
    lose = "lose"
    copy_code = "copy_code"
    close = "close"
    ask_me_later = "ask_me_later"
    timer_expired = "timer_expired"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


# ─────────────── Structured sub-schemas ───────────────

class WheelSegment(BaseModel):
    label: str
    color: str
    code: Optional[str] = None


class SocialIcon(BaseModel):
    platform: str
    url: str = ""
    enabled: bool = True

    @field_validator("platform")
    @classmethod
    def known_platform(cls, v: str) -> str:
        if v not in {"facebook", "instagram", "linkedin", "x"}:
            raise ValueError("Platform must be one of facebook, instagram, linkedin, x")
        return v


class SelectedPage(BaseModel):
    type: str
    label: str
    value: str
    url: Optional[str] = None


class PageTargeting(CamelModel):
    target_all_pages: bool = True
    target_specific_pages: bool = False
    selected_pages: List[SelectedPage] = []


# ─────────────── Popup Request / Response ───────────────

class PopupSaveRequest(CamelModel):
    type: PopupType
    config: Dict[str, Any]
    name: Optional[str] = None
    page_targeting: Optional[PageTargeting] = None
    popup_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_limit(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return truncate_popup_name(v) if v else None

    @model_validator(mode="after")
    def validate_structured_fields(self) -> "PopupSaveRequest":
        config = self.config
        if self.type == PopupType.wheel_email and isinstance(config.get("segments"), list):
            config["segments"] = [WheelSegment.model_validate(s).model_dump() for s in config["segments"]]
        if self.type == PopupType.community and isinstance(config.get("socialIcons"), list):
            config["socialIcons"] = [SocialIcon.model_validate(i).model_dump() for i in config["socialIcons"]]
        frequency = config.get("frequency")
        if frequency is not None and frequency not in {f.value for f in Frequency}:
            raise ValueError("Frequency must be one of once, daily, weekly, always")
        return self

    def page_targeting_dict(self) -> Optional[Dict[str, Any]]:
        if self.page_targeting is None:
            return None
        return merge_page_targeting(self.page_targeting.model_dump(by_alias=True, exclude_none=True))


class SavedPopup(CamelModel):
    """Stored popup: metadata plus every field of its type's config (as extra keys)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    shop: str
    name: str
    type: PopupType
    is_active: bool
    page_targeting: Dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActionResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    config: Optional[SavedPopup] = None


class ToggleActiveRequest(CamelModel):
    # The popup's current state as the admin UI sends it: "true" / "false".
    is_active: str

    def next_state(self) -> bool:
        return self.is_active.strip().lower() != "true"


class UpdateNameRequest(CamelModel):
    new_name: str = Field(..., min_length=1, max_length=POPUP_NAME_MAX_LENGTH)

    @field_validator("new_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name cannot be blank")
        return v.strip()


class PublicPopupResponse(BaseModel):
    config: Optional[SavedPopup] = None


# ─────────────── Analytics ───────────────

class AnalyticsEventCreate(CamelModel):
    event_type: EventType
    email: Optional[str] = None
    discount_code: Optional[str] = None
    prize_label: Optional[str] = None
    session_id: Optional[str] = None
    popup_id: Optional[str] = None
    metadata: Optional[Any] = None

    @field_validator("email", "discount_code", "prize_label", "session_id", "popup_id")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None


class DiscountCodeResponse(CamelModel):
    id: str
    email: str
    code: str
    discount_type: str
    discount_value: str
    usage_count: int
    usage_limit: int
    is_active: bool
    starts_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class DiscountCodeList(CamelModel):
    success: bool = True
    discount_codes: List[DiscountCodeResponse]
