"""Per-owner overlay (watermark) resolution."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class OverlayPolicy(str, Enum):
    """How the dispatcher treats owner overlays.

    DISABLED: no lookup, plain pipeline.
    OPTIONAL: use the overlay when one is registered.
    REQUIRED: drop events whose owner has no overlay.
    """
    DISABLED = "disabled"
    OPTIONAL = "optional"
    REQUIRED = "required"


@dataclass(frozen=True)
class OverlayDecision:
    """Result of applying the overlay policy to one owner."""
    proceed: bool
    overlay_key: Optional[str] = None
    reason: Optional[str] = None


def apply_overlay_policy(
    policy: OverlayPolicy,
    owner: str,
    overlay_key: Optional[str],
) -> OverlayDecision:
    """Decide whether and how to proceed given a lookup result."""
    if policy == OverlayPolicy.DISABLED:
        return OverlayDecision(proceed=True)
    if overlay_key:
        return OverlayDecision(proceed=True, overlay_key=overlay_key)
    if policy == OverlayPolicy.REQUIRED:
        return OverlayDecision(
            proceed=False,
            reason=f"no overlay registered for owner '{owner}'",
        )
    return OverlayDecision(proceed=True)


class OverlayResolver:
    """Resolves owner overlays against the overlay store.

    Store errors propagate to the caller.
    """

    def __init__(self, overlay_service, policy: OverlayPolicy = OverlayPolicy.DISABLED):
        self.overlay_service = overlay_service
        self.policy = policy

    async def lookup(self, owner: str) -> Optional[str]:
        """Get the overlay key of an owner, if any."""
        return await self.overlay_service.get_overlay_key(owner)

    async def resolve(self, owner: str) -> OverlayDecision:
        if self.policy == OverlayPolicy.DISABLED:
            return OverlayDecision(proceed=True)
        overlay_key = await self.lookup(owner)
        return apply_overlay_policy(self.policy, owner, overlay_key)
