# marketplace/services/vat_service.py
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from marketplace.services.jurisdiction import HOME, REST_OF_WORLD, classify_region
from marketplace.services.settings_service import SettingsService
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import HOME_JURISDICTION_ALIASES

logger = get_logger(__name__)

# rule tables written before the region codes were generalized use "UAE"
_REGION_ALIASES = {"UAE": HOME, "HOME": HOME, "ROW": REST_OF_WORLD}


@dataclass(frozen=True)
class VatScenario:
    vendor_to_platform: Decimal
    platform_to_customer: Decimal
    scenario: str


def _percent(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        return Decimal("0")


def match_rule(
    rules: List[Dict[str, Any]],
    source_region: str,
    destination_region: str,
) -> Optional[VatScenario]:
    for rule in rules:
        src = _REGION_ALIASES.get(str(rule.get("source_region", "")).upper())
        dst = _REGION_ALIASES.get(str(rule.get("destination_region", "")).upper())
        if src == source_region and dst == destination_region:
            return VatScenario(
                vendor_to_platform=_percent(rule.get("vendor_to_admin_vat_percent")),
                platform_to_customer=_percent(rule.get("admin_to_customer_vat_percent")),
                scenario=rule.get("scenario") or "Unknown",
            )
    return None


class VatService:
    """
    Jurisdiction-pair VAT lookup. Countries are reduced to HOME / ROW and
    matched against the vat_rules setting; with no matching rule both rates
    fall back to the flat vat_percentage setting.
    """

    def __init__(self, settings: SettingsService, home_aliases: Iterable[str] = HOME_JURISDICTION_ALIASES):
        self.settings = settings
        self.home_aliases = tuple(home_aliases)
        self._rules: Optional[List[Dict[str, Any]]] = None

    def _load_rules(self) -> List[Dict[str, Any]]:
        if self._rules is None:
            self._rules = self.settings.vat_rules()
        return self._rules

    def rates_for(self, vendor_country: Optional[str], buyer_country: Optional[str]) -> VatScenario:
        source = classify_region(vendor_country, self.home_aliases)
        destination = classify_region(buyer_country, self.home_aliases)

        matched = match_rule(self._load_rules(), source, destination)
        if matched:
            return matched

        fallback = self.settings.vat_percent()
        logger.debug(f"No VAT rule for {source}->{destination}, using flat {fallback}%")
        return VatScenario(vendor_to_platform=fallback, platform_to_customer=fallback, scenario="Default")
