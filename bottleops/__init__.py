# SPDX-License-Identifier: AGPL-3.0-or-later
"""BottleOps Core: order and production batch lifecycle engine."""

from bottleops.version import VERSION

__all__ = ["VERSION"]
