"""Value normalizers for tender documents.

Tender notices are mostly written in Brazilian Portuguese, so dates, amounts
and periods are recognised in that locale ("15 de março de 2025",
"R$ 93.810,66", "cinco dias úteis") as well as in ISO/English forms.
"""

import re
import unicodedata
from typing import Any, Dict, Optional, Tuple

MONTHS: Dict[str, str] = {
    "JANEIRO": "01", "FEVEREIRO": "02", "MARCO": "03", "ABRIL": "04",
    "MAIO": "05", "JUNHO": "06", "JULHO": "07", "AGOSTO": "08",
    "SETEMBRO": "09", "OUTUBRO": "10", "NOVEMBRO": "11", "DEZEMBRO": "12",
    "JANUARY": "01", "FEBRUARY": "02", "MARCH": "03", "APRIL": "04",
    "MAY": "05", "JUNE": "06", "JULY": "07", "AUGUST": "08",
    "SEPTEMBER": "09", "OCTOBER": "10", "NOVEMBER": "11", "DECEMBER": "12",
}

NUMBER_WORDS: Dict[str, int] = {
    "UM": 1, "UMA": 1, "DOIS": 2, "DUAS": 2, "TRES": 3, "QUATRO": 4,
    "CINCO": 5, "SEIS": 6, "SETE": 7, "OITO": 8, "NOVE": 9, "DEZ": 10,
    "ONZE": 11, "DOZE": 12, "TREZE": 13, "QUATORZE": 14, "CATORZE": 14,
    "QUINZE": 15, "DEZESSEIS": 16, "DEZESSETE": 17, "DEZOITO": 18,
    "DEZENOVE": 19, "VINTE": 20, "VINTE E UM": 21, "VINTE E UMA": 21,
    "VINTE E DOIS": 22, "VINTE E DUAS": 22, "VINTE E TRES": 23,
    "VINTE E QUATRO": 24, "VINTE E CINCO": 25, "VINTE E SEIS": 26,
    "VINTE E SETE": 27, "VINTE E OITO": 28, "VINTE E NOVE": 29,
    "TRINTA": 30, "TRINTA E UM": 31, "TRINTA E UMA": 31, "TRINTA E SEIS": 36,
    "QUARENTA": 40, "QUARENTA E CINCO": 45, "QUARENTA E OITO": 48,
    "CINQUENTA": 50, "SESSENTA": 60, "NOVENTA": 90, "CEM": 100,
    "CENTO E VINTE": 120, "CENTO E OITENTA": 180,
    "TREZENTOS E SESSENTA": 360, "TREZENTOS E SESSENTA E CINCO": 365,
}

# Longest phrases first so "VINTE E UM" wins over "VINTE"
_NUMBER_WORD_PATTERNS = [
    (re.compile(rf"\b{re.escape(word)}\b"), value)
    for word, value in sorted(NUMBER_WORDS.items(), key=lambda kv: -len(kv[0]))
]

_DATE_NUMERIC = re.compile(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})")
_DATE_WRITTEN = re.compile(r"(\d{1,2})\s+DE\s+([A-Z]+)\s+DE\s+(\d{4})")
_DATE_ISO = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_TIME_COLON = re.compile(r"(\d{1,2}):(\d{2})")
_TIME_H = re.compile(r"\b(\d{1,2})H(\d{2})?\b")
_TIME_HOURS = re.compile(r"(\d{1,2})\s*HORAS?")
_PERCENT = re.compile(r"(\d+(?:[,.]\d+)?)\s*%")
_DAYS = re.compile(r"(\d+)\s*DIAS?")
_PERIOD = re.compile(r"(\d+)\s*(MESES|MES|ANOS?|DIAS?)")


def normalize_text(text: str) -> str:
    """Uppercase and strip diacritics ("Março" -> "MARCO")."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return stripped.upper().strip()


def _number_word(cleaned: str) -> Optional[int]:
    for pattern, value in _NUMBER_WORD_PATTERNS:
        if pattern.search(cleaned):
            return value
    return None


def normalize_date(value: str) -> Optional[str]:
    """Normalize a date to ISO ``YYYY-MM-DD``.

    Supports DD/MM/YYYY (also with - or .), "DD de <mês> de YYYY" and ISO.
    """
    if not value:
        return None
    cleaned = normalize_text(value)

    match = _DATE_NUMERIC.search(cleaned)
    if match:
        day, month, year = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    match = _DATE_WRITTEN.search(cleaned)
    if match:
        day, month_name, year = match.groups()
        month = MONTHS.get(month_name)
        if month:
            return f"{year}-{month}-{day.zfill(2)}"

    match = _DATE_ISO.search(cleaned)
    if match:
        return match.group(0)

    return None


def normalize_time(value: str) -> Optional[str]:
    """Normalize a time of day to ``HH:MM`` ("14h30", "9:00h", "10 horas")."""
    if not value:
        return None
    cleaned = normalize_text(value)

    match = _TIME_COLON.search(cleaned)
    if match:
        return f"{match.group(1).zfill(2)}:{match.group(2)}"

    match = _TIME_H.search(cleaned)
    if match:
        return f"{match.group(1).zfill(2)}:{match.group(2) or '00'}"

    match = _TIME_HOURS.search(cleaned)
    if match:
        return f"{match.group(1).zfill(2)}:00"

    return None


def normalize_monetary(value: str) -> Optional[float]:
    """Parse an amount in Brazilian (1.234,56) or US (1,234.56) notation."""
    if not value:
        return None
    cleaned = re.sub(r"R\$\s*", "", value, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s", "", cleaned)

    if re.search(r",\d{2}$", cleaned):
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif re.search(r"\.\d{2}$", cleaned) and "," in cleaned:
        cleaned = cleaned.replace(",", "")

    match = re.match(r"-?\d+(?:\.\d+)?", cleaned)
    return float(match.group(0)) if match else None


def normalize_percentage(value: str) -> Optional[float]:
    """Parse a percentage as a fraction ("0,5%" -> 0.005, "cinco por cento" -> 0.05)."""
    if not value:
        return None
    cleaned = normalize_text(value)

    match = _PERCENT.search(cleaned)
    if match:
        return float(match.group(1).replace(",", ".")) / 100

    if "POR CENTO" in cleaned:
        number = _number_word(cleaned)
        if number is not None:
            return number / 100

    return None


def normalize_days_period(value: str) -> Optional[Tuple[int, bool]]:
    """Parse a day period, returning ``(days, business_days)``."""
    if not value:
        return None
    cleaned = normalize_text(value)
    business_days = "UTEIS" in cleaned or "BUSINESS" in cleaned

    if "DIA" in cleaned:
        number = _number_word(cleaned)
        if number is not None:
            return number, business_days

    match = _DAYS.search(cleaned)
    if match:
        return int(match.group(1)), business_days

    return None


def normalize_warranty_period(value: str) -> Optional[int]:
    """Parse a period into months ("36 meses", "3 anos", "trinta e seis meses")."""
    if not value:
        return None
    cleaned = normalize_text(value)

    number = _number_word(cleaned)
    if number is not None:
        if "ANO" in cleaned:
            return number * 12
        if "MES" in cleaned:
            return number
        if "DIA" in cleaned:
            return round(number / 30)

    match = _PERIOD.search(cleaned)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        if unit.startswith("ANO"):
            return amount * 12
        if unit.startswith("MES"):
            return amount
        return round(amount / 30)

    return None


def extract_number(value: str) -> Optional[int]:
    """First number in the text, written out or numeric."""
    if not value:
        return None
    cleaned = normalize_text(value)
    number = _number_word(cleaned)
    if number is not None:
        return number
    match = re.search(r"\d+", cleaned)
    return int(match.group(0)) if match else None


def _format_number(value: float) -> str:
    return f"{value:g}" if value != int(value) else str(int(value))


def normalize_value(entity_type: str, raw_value: str, metadata: Optional[Dict[str, Any]] = None) -> str:
    """Type-aware normalized value used to compare colliding extractions.

    Args:
        entity_type: EntityType value
        raw_value: Value as written in the document
        metadata: Entity metadata as a plain dict

    Returns:
        Canonical string form of the value
    """
    metadata = metadata or {}
    raw_value = raw_value or ""

    if entity_type == "DEADLINE":
        day = normalize_date(raw_value)
        time = normalize_time(raw_value)
        if day and time:
            return f"{day}T{time}"
        if day:
            return day
        days = normalize_days_period(raw_value)
        if days:
            count, business = days
            return f"{count}{'BD' if business else 'CD'}"
        months = normalize_warranty_period(raw_value)
        if months:
            return f"{months}M"
        return raw_value

    if entity_type == "DATE":
        return normalize_date(raw_value) or raw_value

    if entity_type in ("PENALTY", "SANCTION"):
        percentage = normalize_percentage(raw_value)
        if percentage is not None:
            return _format_number(percentage)
        amount = normalize_monetary(raw_value)
        if amount is not None:
            return _format_number(amount)
        return raw_value

    if entity_type in ("REQUIREMENT", "TECHNICAL_CERTIFICATE", "DOCUMENTATION"):
        category = metadata.get("category") or metadata.get("document_type") or ""
        item = metadata.get("related_item") or metadata.get("certificate_type") or ""
        if category or item:
            return re.sub(r"\s+", "_", f"{category}:{item}".upper())

    return re.sub(r"\s+", "_", raw_value.upper())[:100]
