"""Domain model for accepted leads handed to the sink."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SEARCH_CONDITION = "自動収集"

_PREFECTURE_PATTERN = re.compile(
    r"(北海道|東京都|大阪府|京都府|"
    r"青森県|岩手県|宮城県|秋田県|山形県|福島県|茨城県|栃木県|群馬県|埼玉県|千葉県|神奈川県|"
    r"新潟県|富山県|石川県|福井県|山梨県|長野県|岐阜県|静岡県|愛知県|三重県|滋賀県|兵庫県|"
    r"奈良県|和歌山県|鳥取県|島根県|岡山県|広島県|山口県|徳島県|香川県|愛媛県|高知県|"
    r"福岡県|佐賀県|長崎県|熊本県|大分県|宮崎県|鹿児島県|沖縄県)"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_region(address: str | None) -> str | None:
    """Return the prefecture an address starts with (or contains), if any."""
    if not address:
        return None
    match = _PREFECTURE_PATTERN.search(address)
    return match.group(1) if match else None


class LeadRecord(BaseModel):
    """Accepted lead as stored by a LeadSink."""

    company_name: str = Field(..., min_length=1)
    location: str = ""
    address: str = ""
    phone: str | None = None
    website: str | None = None
    email: str | None = None
    confidence: int = Field(default=0, ge=0, le=100)
    search_condition: str = DEFAULT_SEARCH_CONDITION
    region: str | None = None
    source_urls: list[str] = Field(default_factory=list)
    captured_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(from_attributes=True)

    @property
    def name(self) -> str:
        return self.company_name

    @property
    def identity_location(self) -> str:
        """Location used for duplicate keys: the searched location, else the stored address."""
        return self.location or self.address
