"""
Sender number selection for outbound SMS and calls.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lightfriend.core import config

logger = logging.getLogger(__name__)


@dataclass
class SenderNumber:
    number: str
    fallback_countries: List[str] = field(default_factory=list)


class PhoneNumberRegistry:
    """Maps country codes (ISO alpha-3, lower case) to our sending numbers."""

    def __init__(self, numbers: Optional[Dict[str, SenderNumber]] = None):
        self._numbers: Dict[str, SenderNumber] = dict(numbers or {})

    @classmethod
    def from_config(cls) -> "PhoneNumberRegistry":
        candidates = {
            "usa": (config.USA_PHONE, ["can"]),
            "fin": (config.FIN_PHONE, ["swe", "nor"]),
            "nld": (config.NLD_PHONE, ["deu", "bel", "fra", "usa"]),
        }
        numbers = {}
        for country, (number, fallbacks) in candidates.items():
            if not number:
                logger.warning(f"No sender number configured for {country}")
                continue
            numbers[country] = SenderNumber(number=number, fallback_countries=fallbacks)
        return cls(numbers)

    def get_sender_number(self, country: str) -> Optional[str]:
        """
        Pick the number to send from for a recipient country.

        A direct match wins; otherwise the first number listing the country
        as a fallback is used.
        """
        country = country.lower()
        direct = self._numbers.get(country)
        if direct:
            return direct.number
        for sender in self._numbers.values():
            if country in sender.fallback_countries:
                return sender.number
        return None

    def all_numbers(self) -> List[str]:
        return [sender.number for sender in self._numbers.values()]
