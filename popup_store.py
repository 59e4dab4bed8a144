import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
import schemas
from database import utcnow
from popup_config import (
    default_popup_name,
    deserialize_row,
    merge_page_targeting,
    serialize_config,
)

logger = logging.getLogger(__name__)

POPUP_NOT_FOUND = "Popup not found"
SAVE_FAILED = "Failed to save configuration"
TOGGLE_FAILED = "Failed to update popup status"
RENAME_FAILED = "Failed to update popup name"
DELETE_FAILED = "Failed to delete popup"


def to_saved_popup(row: models.PopupConfig) -> schemas.SavedPopup:
    """Stored row -> wire shape, structured fields parsed, gaps filled from type defaults."""
    return schemas.SavedPopup(
        **deserialize_row(row),
        id=row.id,
        shop=row.shop,
        name=row.name,
        type=row.type,
        is_active=row.is_active,
        page_targeting=merge_page_targeting(row.page_targeting),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PopupStore:
    """Read/write access to a shop's popups. Every call is scoped to ``shop``."""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, shop: str):
        return self.db.query(models.PopupConfig).filter(models.PopupConfig.shop == shop)

    def _find(self, shop: str, popup_id: str) -> Optional[models.PopupConfig]:
        return self._query(shop).filter(models.PopupConfig.id == popup_id).first()

    def _id_taken(self, popup_id: str) -> bool:
        """True when any shop already owns ``popup_id``."""
        return self.db.query(models.PopupConfig.id).filter(models.PopupConfig.id == popup_id).first() is not None

    # ─────────────── Reads ───────────────

    def get(self, shop: str, popup_id: Optional[str] = None) -> Optional[schemas.SavedPopup]:
        if popup_id is not None:
            row = self._find(shop, popup_id)
        else:
            row = self._query(shop).order_by(models.PopupConfig.created_at.desc()).first()
        return to_saved_popup(row) if row else None

    def get_active(self, shop: str) -> Optional[schemas.SavedPopup]:
        row = (
            self._query(shop)
            .filter(models.PopupConfig.is_active == True)
            .order_by(models.PopupConfig.updated_at.desc())
            .first()
        )
        return to_saved_popup(row) if row else None

    def list(self, shop: str) -> List[schemas.SavedPopup]:
        rows = self._query(shop).order_by(models.PopupConfig.created_at.desc()).all()
        return [to_saved_popup(row) for row in rows]

    # ─────────────── Writes ───────────────

    def save(
        self,
        shop: str,
        popup_type: str,
        config: Dict[str, Any],
        name: Optional[str] = None,
        page_targeting: Optional[Dict[str, Any]] = None,
        popup_id: Optional[str] = None,
    ) -> schemas.ActionResult:
        """
        Create or fully replace a popup. Columns of other popup types are
        cleared, so switching type never leaves stale fields behind.
        With ``popup_id`` the call is an upsert on that id, which makes
        retries land on the same row. An id owned by another shop is
        reported as not found.
        """
        now = utcnow()
        try:
            row = self._find(shop, popup_id) if popup_id else None
            if row is None and popup_id and self._id_taken(popup_id):
                return schemas.ActionResult(success=False, error=POPUP_NOT_FOUND)
            if row is None:
                row = models.PopupConfig(shop=shop, created_at=now)
                if popup_id:
                    row.id = popup_id
                self.db.add(row)

            for column, value in serialize_config(config, popup_type).items():
                setattr(row, column, value)
            row.type = popup_type
            row.name = name or row.name or default_popup_name(popup_type, now)
            row.page_targeting = json.dumps(merge_page_targeting(page_targeting))
            row.is_active = True
            row.updated_at = now

            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to save popup for shop=%s popup_id=%s", shop, popup_id)
            return schemas.ActionResult(success=False, error=SAVE_FAILED)

        logger.info("Saved %s popup %s for shop=%s", popup_type, row.id, shop)
        return schemas.ActionResult(success=True, message="Popup configuration saved successfully!", config=to_saved_popup(row))

    def toggle_active(self, shop: str, popup_id: str, next_state: bool) -> schemas.ActionResult:
        try:
            row = self._find(shop, popup_id)
            if row is None:
                return schemas.ActionResult(success=False, error=POPUP_NOT_FOUND)
            row.is_active = next_state
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to toggle popup %s for shop=%s", popup_id, shop)
            return schemas.ActionResult(success=False, error=TOGGLE_FAILED)

        state = "activated" if next_state else "deactivated"
        return schemas.ActionResult(success=True, message=f"Popup {state} successfully!")

    def update_name(self, shop: str, popup_id: str, new_name: str) -> schemas.ActionResult:
        try:
            row = self._find(shop, popup_id)
            if row is None:
                return schemas.ActionResult(success=False, error=POPUP_NOT_FOUND)
            row.name = new_name
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to rename popup %s for shop=%s", popup_id, shop)
            return schemas.ActionResult(success=False, error=RENAME_FAILED)

        return schemas.ActionResult(success=True, message="Popup name updated successfully!")

    def delete(self, shop: str, popup_id: str) -> schemas.ActionResult:
        try:
            row = self._find(shop, popup_id)
            if row is None:
                return schemas.ActionResult(success=False, error=POPUP_NOT_FOUND)
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to delete popup %s for shop=%s", popup_id, shop)
            return schemas.ActionResult(success=False, error=DELETE_FAILED)

        logger.info("Deleted popup %s for shop=%s", popup_id, shop)
        return schemas.ActionResult(success=True, message="Popup deleted successfully!")
