# SPDX-License-Identifier: AGPL-3.0-or-later
from .state_machine import (
    ALLOWED_EDGES,
    TransitionContext,
    TransitionResult,
    allowed_targets,
    effective_status,
    release_hold,
    transition,
)

__all__ = [
    "ALLOWED_EDGES",
    "TransitionContext",
    "TransitionResult",
    "allowed_targets",
    "effective_status",
    "release_hold",
    "transition",
]
