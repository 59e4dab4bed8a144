"""
main.py
=======
FastAPI application entry point.

Admin endpoints (shop from the X-Shopify-Shop-Domain header):
  POST   /api/admin/popups                       - Save (create or replace) a popup
  GET    /api/admin/popups                       - List the shop's popups
  GET    /api/admin/popups/{id}                  - Get a popup by ID
  POST   /api/admin/popups/{id}/toggle           - Activate / deactivate a popup
  PATCH  /api/admin/popups/{id}/name             - Rename a popup
  DELETE /api/admin/popups/{id}                  - Delete a popup
  GET    /api/admin/popup-defaults/{type}        - Default config for a popup type
  GET    /api/admin/subscribers                  - Subscriber profiles
  GET    /api/admin/analytics                    - Shop-wide event summary
  GET    /api/admin/popup-analytics              - Event summary for one popup
  GET    /api/admin/discount-codes               - Issued discount codes
  POST   /api/admin/discount-codes/{id}/deactivate
  DELETE /api/admin/discount-codes/{id}

Storefront endpoints (anonymous, CORS-open, shop from the query string):
  GET    /api/public/popup-config                - Active popup for a shop
  POST   /api/public/analytics                   - Record a popup event
"""

import logging
import os
import sys

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List, Optional

import models
import schemas
import analytics
import subscribers
from config import settings
from database import engine, get_db
from discounts import DiscountCodeStore
from popup_config import build_default_config
from popup_store import PopupStore

logger = logging.getLogger(__name__)


def _init_logging():
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.LOG_FORMAT, stream=sys.stdout)


_init_logging()

# Create DB tables on startup
models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Admin API for storefront marketing popups: configuration, subscribers and analytics.",
    version=settings.VERSION,
)

PUBLIC_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With, Accept, Origin",
    "Access-Control-Max-Age": str(settings.CORS_MAX_AGE),
}


def _validate_shop(shop: Optional[str]) -> str:
    """Returns the shop domain or raises ValueError with the client-facing message."""
    if not shop:
        raise ValueError("Shop parameter is required")
    if ".myshopify.com" not in shop and ".shopify.com" not in shop:
        raise ValueError("Invalid shop domain format")
    return shop


def get_current_shop(x_shopify_shop_domain: Optional[str] = Header(None)) -> str:
    """The authenticated shop. Authentication itself happens upstream."""
    try:
        return _validate_shop(x_shopify_shop_domain)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _public_json(content, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        content=jsonable_encoder(content, by_alias=True),
        status_code=status_code,
        headers=PUBLIC_CORS_HEADERS,
    )


# ═══════════════════════════════════════════════════
#  POPUP CONFIGURATION
# ═══════════════════════════════════════════════════

@app.post(
    "/api/admin/popups",
    response_model=schemas.ActionResult,
    tags=["Popups"],
    summary="Save a popup configuration",
)
def save_popup(
    request: schemas.PopupSaveRequest,
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    """
    Create a popup, or fully replace an existing one when **popupId** is given.
    Missing config fields are filled with the type's defaults; fields that
    belong to other popup types are cleared.
    """
    return PopupStore(db).save(
        shop,
        request.type.value,
        request.config,
        name=request.name,
        page_targeting=request.page_targeting_dict(),
        popup_id=request.popup_id,
    )


@app.get(
    "/api/admin/popups",
    response_model=List[schemas.SavedPopup],
    tags=["Popups"],
    summary="List popups, newest first",
)
def list_popups(shop: str = Depends(get_current_shop), db: Session = Depends(get_db)):
    return PopupStore(db).list(shop)


@app.get(
    "/api/admin/popups/{popup_id}",
    response_model=schemas.SavedPopup,
    tags=["Popups"],
    summary="Get a popup by ID",
)
def get_popup(popup_id: str, shop: str = Depends(get_current_shop), db: Session = Depends(get_db)):
    popup = PopupStore(db).get(shop, popup_id)
    if popup is None:
        raise HTTPException(status_code=404, detail=f"Popup with id={popup_id} not found")
    return popup


@app.post(
    "/api/admin/popups/{popup_id}/toggle",
    response_model=schemas.ActionResult,
    tags=["Popups"],
    summary="Activate or deactivate a popup",
)
def toggle_popup(
    popup_id: str,
    request: schemas.ToggleActiveRequest,
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    """**isActive** is the popup's current state; the popup is switched to the opposite."""
    return PopupStore(db).toggle_active(shop, popup_id, request.next_state())


@app.patch(
    "/api/admin/popups/{popup_id}/name",
    response_model=schemas.ActionResult,
    tags=["Popups"],
    summary="Rename a popup",
)
def rename_popup(
    popup_id: str,
    request: schemas.UpdateNameRequest,
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return PopupStore(db).update_name(shop, popup_id, request.new_name)


@app.delete(
    "/api/admin/popups/{popup_id}",
    response_model=schemas.ActionResult,
    tags=["Popups"],
    summary="Delete a popup",
)
def delete_popup(popup_id: str, shop: str = Depends(get_current_shop), db: Session = Depends(get_db)):
    return PopupStore(db).delete(shop, popup_id)


@app.get(
    "/api/admin/popup-defaults/{popup_type}",
    tags=["Popups"],
    summary="Default configuration for a popup type",
)
def popup_defaults(popup_type: schemas.PopupType):
    return build_default_config(popup_type.value)


# ═══════════════════════════════════════════════════
#  SUBSCRIBERS & ANALYTICS
# ═══════════════════════════════════════════════════

@app.get("/api/admin/subscribers", tags=["Subscribers"], summary="List popup subscribers")
def list_subscribers(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    search: str = "",
    sort_by: str = Query("timestamp", alias="sortBy"),
    sort_order: schemas.SortOrder = Query(schemas.SortOrder.desc, alias="sortOrder"),
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    """
    Everyone who entered an email in a popup, with their full interaction
    history, discount codes and prizes. **search** narrows which subscribers
    are listed; the summary covers every listed subscriber across all pages.
    """
    try:
        return subscribers.list_subscribers(
            db, shop, page=page, limit=limit, search=search,
            sort_by=sort_by, sort_order=sort_order.value,
        )
    except SQLAlchemyError as e:
        logger.exception("Error fetching subscribers for shop=%s", shop)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to fetch subscribers", "details": type(e).__name__},
        )


@app.get("/api/admin/analytics", tags=["Analytics"], summary="Shop-wide popup analytics")
def get_shop_analytics(
    time_range: str = Query("24h", alias="timeRange"),
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    try:
        return {"success": True, "analytics": analytics.shop_analytics(db, shop, time_range)}
    except SQLAlchemyError:
        logger.exception("Error fetching analytics for shop=%s", shop)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to fetch analytics data"})


@app.get("/api/admin/popup-analytics", tags=["Analytics"], summary="Analytics for a single popup")
def get_popup_analytics(
    popup_id: Optional[str] = Query(None, alias="popupId"),
    time_range: str = Query("30d", alias="timeRange"),
    shop: str = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    if not popup_id:
        raise HTTPException(status_code=400, detail="Popup ID is required")
    try:
        return {"success": True, "analytics": analytics.popup_analytics(db, shop, popup_id, time_range)}
    except SQLAlchemyError:
        logger.exception("Error fetching analytics for popup=%s shop=%s", popup_id, shop)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to fetch popup analytics data"})


# ═══════════════════════════════════════════════════
#  DISCOUNT CODES
# ═══════════════════════════════════════════════════

@app.get(
    "/api/admin/discount-codes",
    response_model=schemas.DiscountCodeList,
    tags=["Discount Codes"],
    summary="List issued discount codes",
)
def list_discount_codes(shop: str = Depends(get_current_shop), db: Session = Depends(get_db)):
    codes = DiscountCodeStore(db).list(shop)
    return schemas.DiscountCodeList(
        discount_codes=[schemas.DiscountCodeResponse.model_validate(c) for c in codes]
    )


@app.post(
    "/api/admin/discount-codes/{code_id}/deactivate",
    response_model=schemas.ActionResult,
    tags=["Discount Codes"],
    summary="Deactivate a discount code",
)
def deactivate_discount_code(code_id: str, shop: str = Depends(get_current_shop), db: Session = Depends(get_db)):
    return DiscountCodeStore(db).deactivate(shop, code_id)


@app.delete(
    "/api/admin/discount-codes/{code_id}",
    response_model=schemas.ActionResult,
    tags=["Discount Codes"],
    summary="Delete a discount code from the database",
)
def delete_discount_code(code_id: str, shop: str = Depends(get_current_shop), db: Session = Depends(get_db)):
    return DiscountCodeStore(db).delete(shop, code_id)


# ═══════════════════════════════════════════════════
#  STOREFRONT (PUBLIC)
# ═══════════════════════════════════════════════════

@app.get("/api/public/popup-config", tags=["Storefront"], summary="Active popup for a shop")
def public_popup_config(shop: Optional[str] = None, db: Session = Depends(get_db)):
    """Called by the storefront script from the shop's own origin, hence the open CORS headers."""
    try:
        shop = _validate_shop(shop)
    except ValueError as e:
        return _public_json({"error": str(e)}, status_code=400)

    try:
        popup = PopupStore(db).get_active(shop)
    except SQLAlchemyError:
        logger.exception("Error fetching public popup config for shop=%s", shop)
        return _public_json({"error": "Failed to fetch configuration"}, status_code=500)
    return _public_json(schemas.PublicPopupResponse(config=popup))


@app.post("/api/public/analytics", tags=["Storefront"], summary="Record a popup event")
def public_record_event(
    event: schemas.AnalyticsEventCreate,
    request: Request,
    shop: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        shop = _validate_shop(shop)
    except ValueError as e:
        return _public_json({"error": str(e)}, status_code=400)

    try:
        analytics.record_event(
            db, shop, event,
            user_agent=request.headers.get("user-agent"),
            ip=analytics.client_ip(request.headers),
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error recording analytics event for shop=%s", shop)
        return _public_json({"error": "Internal server error"}, status_code=500)
    return _public_json({"success": True, "message": "Event recorded successfully"})


@app.options("/api/public/popup-config", include_in_schema=False)
@app.options("/api/public/analytics", include_in_schema=False)
def public_preflight():
    return Response(status_code=status.HTTP_200_OK, headers=PUBLIC_CORS_HEADERS)


# ═══════════════════════════════════════════════════
#  HEALTH CHECK
# ═══════════════════════════════════════════════════

@app.get("/", tags=["Health"], summary="Health check")
def root():
    return {"status": "ok", "message": "Popup Admin API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
