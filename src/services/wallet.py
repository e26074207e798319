"""Per-session wallet connection record."""

from dataclasses import asdict, dataclass
from typing import Optional

from src.services.quota import TokenTier, UserTier, derive_user_tier


@dataclass
class WalletConnection:
    address: str = ""
    delegated_account: Optional[str] = None
    token_tier: Optional[TokenTier] = None

    @property
    def is_connected(self) -> bool:
        return bool(self.address)

    @property
    def user_tier(self) -> UserTier:
        return derive_user_tier(self.is_connected, self.token_tier)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["token_tier"] = self.token_tier.value if self.token_tier else None
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "WalletConnection":
        if not data:
            return cls()
        token_tier = data.get("token_tier")
        return cls(
            address=data.get("address", ""),
            delegated_account=data.get("delegated_account"),
            token_tier=TokenTier(token_tier) if token_tier else None,
        )
