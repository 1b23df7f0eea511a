"""
Field-level cleaning rules shared by the transform steps
"""

import math
import re
from typing import Any, Optional
from urllib.parse import urlparse

MAX_TEXT_LENGTH = 1000

WHITESPACE = re.compile(r"\s+")
DISALLOWED_TEXT = re.compile(r"[^A-Za-z0-9 \-.,!?()]")
NON_PRICE = re.compile(r"[^0-9.]")
NON_DIGIT = re.compile(r"[^0-9]")
LEADING_DECIMAL = re.compile(r"\d+(?:\.\d*)?|\.\d+")
LEADING_NUMBER = re.compile(r"\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+))")

# Upper bounds (exclusive) of the price buckets, checked in order
PRICE_RANGES = (
    (500, "Low"),
    (1000, "Medium"),
    (5000, "High"),
)
TOP_PRICE_RANGE = "Premium"


def is_missing(value: Any) -> bool:
    """None and float NaN count as missing"""
    return value is None or (isinstance(value, float) and math.isnan(value))


class FieldNormalizer:
    """
    Normalize individual cell values into canonical types.
    
    Handles:
    - Text normalization (whitespace, character whitelist, length cap)
    - Price/number coercion from strings like "₹1,299"
    - Rating clamping
    - URL sanity checks
    """
    
    @staticmethod
    def clean_text(value: Any, normalize: bool = True) -> str:
        """Trim, collapse whitespace, drop characters outside the whitelist, cap length"""
        if is_missing(value):
            return ""
        text = value if isinstance(value, str) else str(value)
        text = text.strip()
        if normalize:
            text = WHITESPACE.sub(" ", text)
            text = DISALLOWED_TEXT.sub("", text).strip()
        return text[:MAX_TEXT_LENGTH]
    
    @staticmethod
    def clean_price(value: Any) -> float:
        """
        Coerce to a non-negative number.
        
        NaN passes through so the fill step can replace it; anything
        unparsable becomes 0.
        """
        if isinstance(value, bool):
            return 0.0
        if isinstance(value, (int, float)):
            if math.isnan(value):
                return float("nan")
            return max(0.0, float(value))
        if isinstance(value, str):
            match = LEADING_DECIMAL.match(NON_PRICE.sub("", value))
            return float(match.group()) if match else 0.0
        return 0.0
    
    @staticmethod
    def clean_rating(value: Any) -> float:
        """Clamp to [0, 5]; unparsable -> 0"""
        if isinstance(value, bool) or is_missing(value):
            return 0.0
        if isinstance(value, (int, float)):
            number = float(value)
        else:
            match = LEADING_NUMBER.match(str(value))
            if not match:
                return 0.0
            number = float(match.group(1))
        return max(0.0, min(5.0, number))
    
    @staticmethod
    def clean_count(value: Any) -> int:
        """Non-negative integer; "1,234 ratings" -> 1234"""
        if isinstance(value, bool) or is_missing(value):
            return 0
        if isinstance(value, (int, float)):
            return max(0, int(value)) if math.isfinite(value) else 0
        digits = NON_DIGIT.sub("", str(value))
        return int(digits) if digits else 0
    
    @staticmethod
    def clean_url(value: Any) -> Optional[str]:
        if not isinstance(value, str) or not value.strip():
            return None
        cleaned = value.strip()
        parsed = urlparse(cleaned)
        if parsed.scheme and parsed.netloc:
            return cleaned
        return cleaned if cleaned.startswith("http") else None
    
    @staticmethod
    def discount_percentage(discounted_price: float, actual_price: float) -> float:
        if actual_price > 0:
            return (actual_price - discounted_price) / actual_price * 100
        return 0.0
    
    @staticmethod
    def price_range(price: float) -> str:
        for upper_bound, label in PRICE_RANGES:
            if price < upper_bound:
                return label
        return TOP_PRICE_RANGE
