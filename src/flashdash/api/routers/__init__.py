"""FlashDash API routers.

- users: profile registration, addresses, lookup by phone
- deliveries: customer delivery creation and listing
- rider: rider discovery and lifecycle actions
"""

from flashdash.api.routers.deliveries import router as deliveries_router
from flashdash.api.routers.rider import router as rider_router
from flashdash.api.routers.users import router as users_router

__all__ = [
    "deliveries_router",
    "rider_router",
    "users_router",
]
