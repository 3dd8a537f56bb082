# SPDX-License-Identifier: AGPL-3.0-or-later
"""Route package exports."""

from .orders import router as orders_router
from .pricing import router as pricing_router
from .production import router as production_router

__all__ = ["orders_router", "pricing_router", "production_router"]
