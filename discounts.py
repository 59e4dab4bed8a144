import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
import schemas

logger = logging.getLogger(__name__)

CODE_NOT_FOUND = "Discount code not found"
DEACTIVATE_FAILED = "Failed to deactivate discount code"
DELETE_FAILED = "Failed to delete discount code"


class DiscountCodeStore:
    """Discount codes already issued to subscribers. Nothing here talks to Shopify."""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, shop: str, code_id: str):
        return self.db.query(models.DiscountCode).filter(
            models.DiscountCode.shop == shop,
            models.DiscountCode.id == code_id,
        ).first()

    def list(self, shop: str) -> List[models.DiscountCode]:
        return (
            self.db.query(models.DiscountCode)
            .filter(models.DiscountCode.shop == shop)
            .order_by(models.DiscountCode.created_at.desc())
            .all()
        )

    def deactivate(self, shop: str, code_id: str) -> schemas.ActionResult:
        try:
            code = self._find(shop, code_id)
            if code is None:
                return schemas.ActionResult(success=False, error=CODE_NOT_FOUND)
            code.is_active = False
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to deactivate discount code %s for shop=%s", code_id, shop)
            return schemas.ActionResult(success=False, error=DEACTIVATE_FAILED)
        return schemas.ActionResult(success=True, message="Discount code deactivated")

    def delete(self, shop: str, code_id: str) -> schemas.ActionResult:
        try:
            code = self._find(shop, code_id)
            if code is None:
                return schemas.ActionResult(success=False, error=CODE_NOT_FOUND)
            self.db.delete(code)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to delete discount code %s for shop=%s", code_id, shop)
            return schemas.ActionResult(success=False, error=DELETE_FAILED)
        return schemas.ActionResult(success=True, message="Discount code deleted from database")
