from __future__ import annotations

from enum import Enum

from compliance_risk.core.errors import InvalidInputError


class EntityType(str, Enum):
    EXCHANGE = "exchange"
    STABLECOIN = "stablecoin"
    DEFI = "defi"
    NFT = "nft"
    FUND = "fund"
    TOKEN = "token"


def parse_entity_type(value: str) -> EntityType:
    text = (value or "").strip().lower()
    try:
        return EntityType(text)
    except ValueError:
        known = ", ".join(t.value for t in EntityType)
        raise InvalidInputError(f"Unknown entity type {value!r} (expected one of: {known})") from None
