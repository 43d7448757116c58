# marketplace/services/jurisdiction.py
from typing import Iterable, Optional

from marketplace.utils.settings import HOME_JURISDICTION_ALIASES

HOME = "HOME"
REST_OF_WORLD = "ROW"


def is_home_jurisdiction(value: Optional[str], home_aliases: Iterable[str] = HOME_JURISDICTION_ALIASES) -> bool:
    # a missing jurisdiction is treated as foreign
    if not value:
        return False
    return value.strip().upper() in {a.upper() for a in home_aliases}


def classify_region(country: Optional[str], home_aliases: Iterable[str] = HOME_JURISDICTION_ALIASES) -> str:
    return HOME if is_home_jurisdiction(country, home_aliases) else REST_OF_WORLD


def platform_jurisdiction() -> str:
    return HOME_JURISDICTION_ALIASES[0] if HOME_JURISDICTION_ALIASES else "AE"
