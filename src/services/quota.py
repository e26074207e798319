"""Tiered weekly usage quotas for saves, AI voice transforms and dubbing."""

import enum
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.config import get_settings


class UserTier(str, enum.Enum):
    """Privilege level governing quota ceilings."""

    GUEST = "guest"  # no wallet connected
    FREE = "free"
    PREMIUM = "premium"


class ResourceClass(str, enum.Enum):
    """Metered resource classes."""

    SAVE = "save"
    AI_VOICE = "ai_voice"
    DUBBING = "dubbing"


class TokenTier(str, enum.Enum):
    """On-chain token holding tier."""

    NONE = "none"
    BASIC = "basic"
    PRO = "pro"
    PREMIUM = "premium"


TIER_ORDER = {UserTier.GUEST: 0, UserTier.FREE: 1, UserTier.PREMIUM: 2}

TOKEN_TIER_TO_USER_TIER = {
    TokenTier.NONE: UserTier.FREE,
    TokenTier.BASIC: UserTier.PREMIUM,
    TokenTier.PRO: UserTier.PREMIUM,
    TokenTier.PREMIUM: UserTier.PREMIUM,
}


def derive_user_tier(is_connected: bool, token_tier: Optional[TokenTier]) -> UserTier:
    """Map wallet connection + on-chain token tier to a user tier."""
    if not is_connected:
        return UserTier.GUEST
    if token_tier is None:
        return UserTier.FREE
    return TOKEN_TIER_TO_USER_TIER[TokenTier(token_tier)]


def tier_meets_requirement(current: UserTier, required: UserTier) -> bool:
    return TIER_ORDER[UserTier(current)] >= TIER_ORDER[UserTier(required)]


def week_start(now: datetime) -> datetime:
    """Most recent Monday 00:00 relative to ``now``."""
    monday = now - timedelta(days=now.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class QuotaCeilings:
    saves: int = 5
    ai_voice: int = 3
    dubbing: int = 3

    @classmethod
    def from_settings(cls) -> "QuotaCeilings":
        settings = get_settings()
        return cls(
            saves=settings.weekly_save_limit,
            ai_voice=settings.weekly_ai_voice_limit,
            dubbing=settings.weekly_dubbing_limit,
        )


@dataclass
class QuotaState:
    """JSON-serializable quota snapshot."""

    tier: UserTier
    saves_used: int
    ai_voice_used: int
    dubbing_used: int
    window_start: datetime

    def to_dict(self) -> dict:
        data = asdict(self)
        data["tier"] = self.tier.value
        data["window_start"] = self.window_start.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "QuotaState":
        return cls(
            tier=UserTier(data["tier"]),
            saves_used=int(data.get("saves_used", 0)),
            ai_voice_used=int(data.get("ai_voice_used", 0)),
            dubbing_used=int(data.get("dubbing_used", 0)),
            window_start=datetime.fromisoformat(data["window_start"]),
        )


_COUNTER_FIELDS = {
    ResourceClass.SAVE: "saves_used",
    ResourceClass.AI_VOICE: "ai_voice_used",
    ResourceClass.DUBBING: "dubbing_used",
}


class QuotaGate:
    """
    Weekly usage counters per resource class.

    The window reset is checked lazily on every read and increment rather
    than driven by a timer. ``increment`` counts, it does not guard: callers
    check ``can_use`` first.
    """

    def __init__(
        self,
        tier: UserTier = UserTier.GUEST,
        ceilings: Optional[QuotaCeilings] = None,
        clock: Callable[[], datetime] = datetime.now,
        state: Optional[QuotaState] = None,
    ):
        self._clock = clock
        self.ceilings = ceilings or QuotaCeilings.from_settings()
        self._state = state or QuotaState(
            tier=UserTier(tier),
            saves_used=0,
            ai_voice_used=0,
            dubbing_used=0,
            window_start=week_start(clock()),
        )

    @property
    def tier(self) -> UserTier:
        return self._state.tier

    @property
    def window_start(self) -> datetime:
        self._roll_window()
        return self._state.window_start

    def _roll_window(self) -> None:
        current = week_start(self._clock())
        if current > self._state.window_start:
            self._state.saves_used = 0
            self._state.ai_voice_used = 0
            self._state.dubbing_used = 0
            self._state.window_start = current

    def _ceiling(self, resource: ResourceClass) -> int:
        return {
            ResourceClass.SAVE: self.ceilings.saves,
            ResourceClass.AI_VOICE: self.ceilings.ai_voice,
            ResourceClass.DUBBING: self.ceilings.dubbing,
        }[ResourceClass(resource)]

    def used(self, resource: ResourceClass) -> int:
        self._roll_window()
        return getattr(self._state, _COUNTER_FIELDS[ResourceClass(resource)])

    def can_use(self, resource: ResourceClass) -> bool:
        resource = ResourceClass(resource)
        self._roll_window()
        if self.tier == UserTier.PREMIUM:
            return True
        if self.tier == UserTier.GUEST and resource == ResourceClass.SAVE:
            return False
        return self.used(resource) < self._ceiling(resource)

    def increment(self, resource: ResourceClass) -> None:
        self._roll_window()
        if self.tier == UserTier.PREMIUM:
            return
        field = _COUNTER_FIELDS[ResourceClass(resource)]
        setattr(self._state, field, getattr(self._state, field) + 1)

    def remaining(self, resource: ResourceClass) -> Optional[int]:
        """Remaining allowance this week; ``None`` means unbounded."""
        self._roll_window()
        if self.tier == UserTier.PREMIUM:
            return None
        return max(0, self._ceiling(resource) - self.used(resource))

    def remaining_all(self) -> dict[str, Optional[int]]:
        return {resource.value: self.remaining(resource) for resource in ResourceClass}

    def set_tier(self, tier: UserTier) -> None:
        # Counters are kept: switching tiers mid-week does not open a new window
        self._state.tier = UserTier(tier)

    def to_snapshot(self) -> dict:
        self._roll_window()
        return self._state.to_dict()

    @classmethod
    def from_snapshot(
        cls,
        snapshot: dict,
        ceilings: Optional[QuotaCeilings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "QuotaGate":
        return cls(ceilings=ceilings, clock=clock, state=QuotaState.from_dict(snapshot))
