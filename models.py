import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Index

from database import Base, utcnow


def _new_id() -> str:
    return uuid.uuid4().hex


class PopupConfig(Base):
    """
    Database model for storefront popups. A shop may own several popups.

    type: 'email' | 'wheel-email' | 'community' | 'timer' | 'scratch-card'
    Columns belonging to a type other than the row's own are NULL.
    Structured fields are stored as JSON text:
        - segments:       [{"label": str, "color": "#hex", "code": str | null}, ...]
        - house_rules:    [str, ...]
        - social_icons:   [{"platform": "facebook|instagram|linkedin|x", "url": str, "enabled": bool}, ...]
        - page_targeting: {"targetAllPages": bool, "targetSpecificPages": bool, "selectedPages": [...]}
    """
    __tablename__ = "popup_configs"

    id = Column(String(32), primary_key=True, default=_new_id)
    shop = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="Untitled Popup")
    type = Column(String(32), nullable=False)

    # Common
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    placeholder = Column(Text, nullable=True)
    button_text = Column(String(255), nullable=True)
    discount_code = Column(String(255), nullable=True)
    background_color = Column(Text, nullable=True)
    text_color = Column(String(64), nullable=True)
    button_color = Column(String(64), nullable=True)
    border_radius = Column(Integer, nullable=True)
    show_close_button = Column(Boolean, nullable=True)
    display_delay = Column(Integer, nullable=True)
    frequency = Column(String(16), nullable=True)
    exit_intent = Column(Boolean, nullable=True)
    exit_intent_delay = Column(Integer, nullable=True)

    # wheel-email
    subtitle = Column(String(255), nullable=True)
    segments = Column(Text, nullable=True)
    background_type = Column(String(16), nullable=True)
    house_rules = Column(Text, nullable=True)
    show_house_rules = Column(Boolean, nullable=True)

    # community
    banner_image = Column(Text, nullable=True)
    social_icons = Column(Text, nullable=True)
    ask_me_later_text = Column(String(255), nullable=True)
    show_ask_me_later = Column(Boolean, nullable=True)

    # timer
    timer_days = Column(Integer, nullable=True)
    timer_hours = Column(Integer, nullable=True)
    timer_minutes = Column(Integer, nullable=True)
    timer_seconds = Column(Integer, nullable=True)
    timer_icon = Column(String(16), nullable=True)
    on_expiration = Column(String(32), nullable=True)
    expired_title = Column(String(255), nullable=True)
    expired_message = Column(Text, nullable=True)
    expired_icon = Column(String(16), nullable=True)
    expired_button_text = Column(String(255), nullable=True)
    success_title = Column(String(255), nullable=True)
    success_message = Column(Text, nullable=True)
    disclaimer = Column(Text, nullable=True)

    # scratch-card
    scratch_discount_percentage = Column(Integer, nullable=True)

    page_targeting = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_popup_configs_shop_is_active", "shop", "is_active"),
    )


class PopupAnalytics(Base):
    """Append-only event log written by the storefront popup script."""
    __tablename__ = "popup_analytics"

    id = Column(String(32), primary_key=True, default=_new_id)
    shop = Column(String(255), nullable=False, index=True)
    popup_id = Column(String(32), nullable=True, index=True)
    event_type = Column(String(32), nullable=False, index=True)
    email = Column(String(320), nullable=True, index=True)
    discount_code = Column(String(255), nullable=True)
    prize_label = Column(String(255), nullable=True)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    session_id = Column(String(255), nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    event_metadata = Column("metadata", Text, nullable=True)

    __table_args__ = (
        Index("ix_popup_analytics_shop_event_type", "shop", "event_type"),
    )


class DiscountCode(Base):
    """Discount codes issued to popup subscribers (written by the discount generator)."""
    __tablename__ = "discount_codes"

    id = Column(String(32), primary_key=True, default=_new_id)
    shop = Column(String(255), nullable=False, index=True)
    email = Column(String(320), nullable=False, index=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    discount_type = Column(String(32), nullable=False)
    discount_value = Column(String(32), nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)
    usage_limit = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    starts_at = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    ends_at = Column(DateTime, nullable=False)
