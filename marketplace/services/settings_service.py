# marketplace/services/settings_service.py
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from marketplace.repos.settings_repo import SettingsRepo
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

VAT_PERCENTAGE = "vat_percentage"
COMMISSION_PERCENTAGE = "admin_commission_percentage"
HIGH_VALUE_THRESHOLD = "high_value_threshold"
FUND_HOLD_DAYS = "fund_hold_days"
LEGACY_FUND_HOLD_DAYS = "product_return_period"
VAT_RULES = "vat_rules"

DEFAULTS = {
    VAT_PERCENTAGE: Decimal("5"),
    COMMISSION_PERCENTAGE: Decimal("10"),
    HIGH_VALUE_THRESHOLD: Decimal("10000"),
    FUND_HOLD_DAYS: 10,
}

COMPANY_KEYS = (
    "admin_company_name",
    "admin_company_street",
    "admin_company_city",
    "admin_company_country",
    "admin_company_phone",
    "admin_company_email",
    "admin_logo_url",
    "admin_invoice_footer",
)


class SettingsService:
    """
    Read side of the platform settings table. Every parameter has a default,
    a missing or malformed row never breaks checkout.
    """

    def __init__(self, db: Session):
        self.repo = SettingsRepo(db)

    def _decimal(self, key: str) -> Decimal:
        raw = self.repo.get_value(key)
        if raw is None or raw == "":
            return DEFAULTS[key]
        try:
            return Decimal(str(raw).strip())
        except InvalidOperation:
            logger.warning(f"Setting {key}={raw!r} is not a number, using default {DEFAULTS[key]}")
            return DEFAULTS[key]

    def vat_percent(self) -> Decimal:
        return self._decimal(VAT_PERCENTAGE)

    def commission_percent(self) -> Decimal:
        return self._decimal(COMMISSION_PERCENTAGE)

    def high_value_threshold(self) -> Decimal:
        return self._decimal(HIGH_VALUE_THRESHOLD)

    def fund_hold_days(self) -> int:
        raw = self.repo.get_value(FUND_HOLD_DAYS)
        if raw is None:
            raw = self.repo.get_value(LEGACY_FUND_HOLD_DAYS)
        if raw is None or raw == "":
            return DEFAULTS[FUND_HOLD_DAYS]
        try:
            return int(str(raw).strip())
        except ValueError:
            logger.warning(f"Setting {FUND_HOLD_DAYS}={raw!r} is not an integer, using default")
            return DEFAULTS[FUND_HOLD_DAYS]

    def vat_rules(self) -> List[Dict[str, Any]]:
        raw = self.repo.get_value(VAT_RULES)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.error("Failed to parse vat_rules setting")
            return []
        if not isinstance(parsed, list):
            return []
        rules = [rule for rule in parsed if isinstance(rule, dict)]
        if len(rules) != len(parsed):
            logger.warning(f"Ignoring {len(parsed) - len(rules)} malformed vat_rules entries")
        return rules

    def company_details(self) -> Dict[str, Any]:
        values = self.repo.get_values(COMPANY_KEYS)
        city_country = ", ".join(
            v for v in (values.get("admin_company_city"), values.get("admin_company_country")) if v
        )
        address = "\n".join(v for v in (values.get("admin_company_street"), city_country) if v)
        return {
            "name": values.get("admin_company_name") or "Marketplace Platform",
            "address": address or None,
            "phone": values.get("admin_company_phone"),
            "email": values.get("admin_company_email"),
            "logo_url": values.get("admin_logo_url"),
            "footer": values.get("admin_invoice_footer"),
        }

    def invoice_terms(self, invoice_type: str) -> str | None:
        key = "vendor_invoice_terms" if invoice_type == "vendor" else "customer_invoice_terms"
        return self.repo.get_value(key)
