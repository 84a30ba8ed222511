"""Per-user settings: a flat ``key -> str`` bag in storage, typed at the edges.

The store only ever sees strings. ``encode_settings`` turns an incoming
JSON payload into that form (validating the keys we know about) and
``SettingsView`` decodes the stored bag for code that needs real types.
"""

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Tuple

from pydantic import BaseModel, Field

from config import DEFAULT_SETTINGS
from errors import ValidationFailed

MAX_KEY_LENGTH = 100
MAX_BUDGET_DIGITS = 10


class Currency(str, Enum):
    USD = "USD"
    INR = "INR"
    SAR = "SAR"
    AED = "AED"
    EUR = "EUR"
    GBP = "GBP"


class SettingsView(BaseModel):
    monthly_budget: Decimal = Decimal(DEFAULT_SETTINGS["monthly_budget"])
    currency: Currency = Currency(DEFAULT_SETTINGS["currency"])
    default_category: str = DEFAULT_SETTINGS["default_category"]
    custom_categories: List[str] = Field(default_factory=list)

    @classmethod
    def from_mapping(cls, values: Dict[str, str]) -> "SettingsView":
        data = {k: values[k] for k in ("monthly_budget", "currency", "default_category") if k in values}
        raw = values.get("custom_categories")
        if raw:
            try:
                data["custom_categories"] = [str(c) for c in json.loads(raw)]
            except (ValueError, TypeError):
                data["custom_categories"] = []
        return cls(**data)


def _encode_budget(value) -> str:
    if isinstance(value, bool):
        raise ValidationFailed("monthly_budget must be a number")
    try:
        budget = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationFailed("monthly_budget must be a number")
    if not budget.is_finite() or budget < 0:
        raise ValidationFailed("monthly_budget must be a non-negative number")
    # same ceiling as an expense amount (12 digits, 2 of them decimals)
    if budget.adjusted() >= MAX_BUDGET_DIGITS:
        raise ValidationFailed("monthly_budget is too large")
    return str(value).strip()


def _encode_currency(value) -> str:
    try:
        return Currency(str(value)).value
    except ValueError:
        supported = ", ".join(c.value for c in Currency)
        raise ValidationFailed(f"currency must be one of: {supported}")


def _encode_categories(value) -> str:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValidationFailed("custom_categories must be a list of strings")
    if not isinstance(value, list) or not all(isinstance(c, str) for c in value):
        raise ValidationFailed("custom_categories must be a list of strings")
    return json.dumps(value)


def _encode_default_category(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed("default_category must be a non-empty string")
    return value


_ENCODERS = {
    "monthly_budget": _encode_budget,
    "currency": _encode_currency,
    "custom_categories": _encode_categories,
    "default_category": _encode_default_category,
}


def _encode_plain(key, value) -> str:
    if value is None:
        raise ValidationFailed(f"Setting '{key}' must not be null")
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


def encode_settings(payload) -> Dict[str, str]:
    """Validate an incoming settings payload and flatten it to strings.

    Raises ValidationFailed before anything is written if any key or value
    is unacceptable.
    """
    if not isinstance(payload, dict):
        raise ValidationFailed("Settings must be a JSON object")
    encoded = {}
    for key, value in payload.items():
        if not key or len(key) > MAX_KEY_LENGTH:
            raise ValidationFailed(f"Setting keys must be 1-{MAX_KEY_LENGTH} characters")
        encoder = _ENCODERS.get(key)
        encoded[key] = encoder(value) if encoder else _encode_plain(key, value)
    return encoded


@dataclass
class SettingUpsert:
    key: str
    value: str
    created: bool


def merge_settings(existing: Dict[str, str], incoming: Dict[str, str]) -> Tuple[Dict[str, str], List[SettingUpsert]]:
    """Upsert ``incoming`` over ``existing``.

    Returns the merged flat view and one upsert per incoming key, in the
    order the keys arrived. Keys absent from ``incoming`` are kept as is.
    """
    merged = dict(existing)
    upserts = []
    for key, value in incoming.items():
        upserts.append(SettingUpsert(key=key, value=value, created=key not in existing))
        merged[key] = value
    return merged, upserts
