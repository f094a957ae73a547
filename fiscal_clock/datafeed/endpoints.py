"""
Upstream endpoint registry.

Endpoint keys are short names ("debt", "mts", "dts", "worldbank:SP.POP.TOTL").
Treasury keys can be routed through the local proxy (see proxy.py); World Bank
endpoints are always requested directly.
"""

from __future__ import annotations

from typing import Any

from ..config import FISCAL_DATA_BASE, WORLD_BANK_BASE, Settings
from ..errors import ApiError, ConfigurationError

# Treasury Fiscal Data endpoints, relative to the fiscal_service base
TREASURY_PATHS: dict[str, str] = {
    "debt": "/v2/accounting/od/debt_to_penny",
    "mts": "/v1/accounting/mts/mts_table_1",
    "dts": "/v1/accounting/dts/operating_cash_balance",
}

WORLD_BANK_PREFIX = "worldbank:"


def world_bank_key(indicator: str) -> str:
    return f"{WORLD_BANK_PREFIX}{indicator}"


class EndpointRegistry:
    """Maps endpoint keys to absolute URLs."""

    def __init__(
        self,
        fiscal_base: str = FISCAL_DATA_BASE,
        world_bank_base: str = WORLD_BANK_BASE,
        proxy_base: str | None = None,
    ) -> None:
        self.fiscal_base = fiscal_base.rstrip("/")
        self.world_bank_base = world_bank_base.rstrip("/")
        self.proxy_base = proxy_base.rstrip("/") if proxy_base else None

    @classmethod
    def from_settings(cls, settings: Settings) -> EndpointRegistry:
        return cls(settings.fiscal_base, settings.world_bank_base, settings.proxy_base)

    def url_for(self, key: str) -> str:
        if key.startswith(WORLD_BANK_PREFIX):
            indicator = key[len(WORLD_BANK_PREFIX):]
            if not indicator:
                raise ConfigurationError(f"Missing World Bank indicator in endpoint key {key!r}")
            return f"{self.world_bank_base}/{indicator}"

        path = TREASURY_PATHS.get(key)
        if path is None:
            raise ConfigurationError(f"Unknown endpoint key: {key!r}")
        if self.proxy_base:
            return f"{self.proxy_base}/api/{key}"
        return f"{self.fiscal_base}{path}"


def extract_fiscal_records(body: Any) -> list[dict]:
    """
    Pull the record list out of a Fiscal Data response.

    Expected format: {data: [{record_date, <amount_field>}, ...], meta: {...}}
    """
    if not isinstance(body, dict):
        raise ApiError(f"Unexpected Fiscal Data body: {type(body).__name__}")
    data = body.get("data")
    if data is None:
        return []
    if not isinstance(data, list):
        raise ApiError("Fiscal Data 'data' field is not a list")
    return [r for r in data if isinstance(r, dict)]


def extract_world_bank_records(body: Any) -> list[dict]:
    """
    Pull the record list out of a World Bank response, dropping null values.

    Expected format: [meta, [{date, value}, ...]]
    Error format:    [{message: [{id, key, value}]}]
    """
    if not isinstance(body, list) or not body:
        raise ApiError(f"Unexpected World Bank body: {type(body).__name__}")

    meta = body[0]
    if isinstance(meta, dict) and "message" in meta:
        messages = meta["message"]
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            detail = messages[0].get("value") or messages[0].get("key") or "unknown error"
        else:
            detail = str(messages)
        raise ApiError(f"World Bank error: {detail}")

    if len(body) < 2 or body[1] is None:
        return []
    records = body[1]
    if not isinstance(records, list):
        raise ApiError("World Bank records element is not a list")
    return [r for r in records if isinstance(r, dict) and r.get("value") is not None]
