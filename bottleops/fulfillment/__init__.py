# SPDX-License-Identifier: AGPL-3.0-or-later
from .consolidate import ConsolidatedLine, ConsolidatedView, consolidate, consolidated_order

__all__ = ["ConsolidatedLine", "ConsolidatedView", "consolidate", "consolidated_order"]
