from __future__ import annotations

from fastapi import APIRouter

from hotel_reservations.api.routes import admin_bookings, admin_promotions, admin_settings, admin_sweep, bookings, promotions

api_router = APIRouter()

api_router.include_router(promotions.router, prefix="/promotions", tags=["promotions"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

# Admin
api_router.include_router(admin_bookings.router, prefix="/admin/bookings", tags=["admin-bookings"])
api_router.include_router(admin_promotions.router, prefix="/admin/promotions", tags=["admin-promotions"])
api_router.include_router(admin_settings.router, prefix="/admin/settings", tags=["admin-settings"])
api_router.include_router(admin_sweep.router, prefix="/admin/sweep", tags=["admin-sweep"])
