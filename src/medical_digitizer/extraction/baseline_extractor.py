# ============================================================================
# src/medical_digitizer/extraction/baseline_extractor.py
# ============================================================================
"""
Baseline Entity Extractor

Deterministic, local extraction of the eight entity categories from OCR
text. Always runs; the AI pass can only add to what this finds.

Categories:
- Names (labelled "Patient:/Name:" fields, honorifics, known given names)
- Ages (bounded to 1-120 years)
- Dates (numeric, ISO and month-name forms)
- Medications (known drug list and drug-class suffixes)
- Symptoms (keyword list)
- Vitals (BP, temperature, pulse, respiration, SpO2, weight, height)
- Addresses (labelled lines and street suffixes)
- Phone numbers (at least 10 digits)

Empty categories come back as empty lists, never as the "None" sentinel.
"""

from typing import Iterable, List
import logging
import re

from ..core.models import EntitySet

logger = logging.getLogger(__name__)


# Given names common in the clinic's catchment (Yoruba, Igbo, Hausa, English)
KNOWN_GIVEN_NAMES = {
    "adebayo", "adewale", "ayodele", "babatunde", "folake", "funmilayo", "olumide", "temitope",
    "chinedu", "chioma", "chukwuemeka", "ifeanyi", "ngozi", "nnamdi", "obinna", "uchenna",
    "abubakar", "aisha", "fatima", "ibrahim", "musa", "usman", "yusuf", "zainab",
    "david", "grace", "john", "mary", "michael", "peter", "samuel", "sarah",
}

KNOWN_MEDICATIONS = [
    "paracetamol", "acetaminophen", "ibuprofen", "aspirin", "amoxicillin", "metformin",
    "lisinopril", "amlodipine", "simvastatin", "omeprazole", "atorvastatin", "levothyroxine",
    "artemether", "lumefantrine", "chloroquine", "ciprofloxacin", "metronidazole",
    "insulin", "salbutamol", "prednisolone", "diclofenac", "folic acid",
]

SYMPTOM_KEYWORDS = [
    "shortness of breath", "chest pain", "abdominal pain", "back pain", "joint pain",
    "muscle pain", "sore throat", "runny nose", "pain", "fever", "headache", "nausea",
    "vomiting", "diarrhea", "diarrhoea", "constipation", "cough", "cold", "flu", "fatigue",
    "weakness", "dizziness", "sneezing", "itching", "rash", "swelling", "chills",
]

_NAME_WORDS = r"[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*"

NAME_PATTERNS = [
    re.compile(r"\b(?i:patient(?:[ \t]+name)?|name|pt\.?)[ \t]*[:\-][ \t]*(" + _NAME_WORDS + r")"),
    re.compile(r"\b(?i:mrs|mr|miss|ms|dr)\.?[ \t]+(" + _NAME_WORDS + r")"),
]

AGE_PATTERNS = [
    re.compile(r"\bage(?:d)?[ \t]*[:\-]?[ \t]*(\d{1,3})\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,3})[ \t]*(?:years?|yrs?|y/o|yo)\b", re.IGNORECASE),
]

_MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*"

DATE_PATTERNS = [
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\b"),
    re.compile(r"\b\d{1,2}(?:st|nd|rd|th)?[ \t]+" + _MONTHS + r",?[ \t]+\d{2,4}\b", re.IGNORECASE),
    re.compile(r"\b" + _MONTHS + r"[ \t]+\d{1,2}(?:st|nd|rd|th)?,?[ \t]+\d{4}\b", re.IGNORECASE),
]

MEDICATION_PATTERNS = [
    re.compile(r"\b(" + "|".join(re.escape(m) for m in KNOWN_MEDICATIONS) + r")\b", re.IGNORECASE),
    re.compile(r"\b([A-Za-z]{2,}(?:cillin|mycin|pril|olol|statin|azole|oxacin|sartan|dipine|tidine))\b", re.IGNORECASE),
    re.compile(r"\b(?:medication|medicine|drug|rx)[ \t]*[:\-][ \t]*([A-Za-z][A-Za-z\-]{2,})", re.IGNORECASE),
]

VITAL_PATTERNS = [
    re.compile(r"\b(?:bp|blood pressure)[ \t]*[:\-]?[ \t]*\d{2,3}[ \t]*/[ \t]*\d{2,3}(?:[ \t]*mmhg)?", re.IGNORECASE),
    re.compile(r"\b(?:temp(?:erature)?)[ \t]*[:\-]?[ \t]*\d{2,3}(?:\.\d+)?(?:[ \t]*°?[ \t]*[cf]\b)?", re.IGNORECASE),
    re.compile(r"\b(?:pulse|heart rate|hr)[ \t]*[:\-]?[ \t]*\d{2,3}(?:[ \t]*bpm)?", re.IGNORECASE),
    re.compile(r"\b(?:rr|resp(?:iratory)?[ \t]+rate)[ \t]*[:\-]?[ \t]*\d{1,2}\b", re.IGNORECASE),
    re.compile(r"\b(?:spo2|o2[ \t]+sat(?:uration)?)[ \t]*[:\-]?[ \t]*\d{2,3}[ \t]*%?", re.IGNORECASE),
    re.compile(r"\b(?:weight|wt)[ \t]*[:\-]?[ \t]*\d{1,3}(?:\.\d+)?(?:[ \t]*(?:kg|lbs?)\b)?", re.IGNORECASE),
    re.compile(r"\b(?:height|ht)[ \t]*[:\-]?[ \t]*\d{1,3}(?:\.\d+)?(?:[ \t]*(?:cm|m)\b)?", re.IGNORECASE),
]

ADDRESS_PATTERNS = [
    re.compile(r"\b(?:address|addr)[ \t]*[:\-][ \t]*([^\n]+)", re.IGNORECASE),
    re.compile(r"\b(\d+[ \t]+" + _NAME_WORDS + r"[ \t]+(?i:street|st|road|rd|avenue|ave|lane|ln|close|crescent))\b"),
]

PHONE_PATTERNS = [
    re.compile(r"\b(?:phone|tel|mobile|contact)[ \t]*[:\-]?[ \t]*(\+?[\d \t\-()]{10,})", re.IGNORECASE),
    re.compile(r"(\+?234[ \t\-]?\d{3}[ \t\-]?\d{3}[ \t\-]?\d{4})"),
    re.compile(r"\b(0[789][01]\d{8})\b"),
]


def _unique(values: Iterable[str]) -> List[str]:
    """Drop duplicates case-insensitively, keeping first spelling and order."""
    seen = set()
    result = []
    for value in values:
        key = value.casefold()
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


class BaselineExtractor:
    """
    Regex and keyword extractor producing the baseline EntitySet.
    """

    def __init__(self, min_age: int = 1, max_age: int = 120):
        self.min_age = min_age
        self.max_age = max_age

    def extract(self, text: str) -> EntitySet:
        """
        Extract all entity categories from OCR text.

        Args:
            text: Raw OCR text

        Returns:
            EntitySet with possibly-empty category lists
        """
        text = text or ""

        entities = EntitySet(
            names=self.extract_names(text),
            ages=self.extract_ages(text),
            dates=self.extract_dates(text),
            medications=self.extract_medications(text),
            symptoms=self.extract_symptoms(text),
            vitals=self.extract_vitals(text),
            addresses=self.extract_addresses(text),
            phone_numbers=self.extract_phone_numbers(text),
        )

        logger.debug(
            f"Baseline extraction found {entities.total_entities()} entities "
            f"in {len(entities.filled_categories())} categories"
        )
        return entities

    def extract_names(self, text: str) -> List[str]:
        names = []
        for pattern in NAME_PATTERNS:
            names.extend(m.group(1).strip() for m in pattern.finditer(text))

        for word in re.findall(r"\b[A-Za-z]{2,}\b", text):
            if word.casefold() in KNOWN_GIVEN_NAMES:
                # Skip given names already covered by a labelled full name
                if not any(word.casefold() in n.casefold().split() for n in names):
                    names.append(word.capitalize())

        return _unique(names)

    def extract_ages(self, text: str) -> List[str]:
        ages = []
        for pattern in AGE_PATTERNS:
            for match in pattern.finditer(text):
                age = int(match.group(1))
                if self.min_age <= age <= self.max_age:
                    ages.append(f"{age} years")
        return _unique(ages)

    def extract_dates(self, text: str) -> List[str]:
        dates = []
        for pattern in DATE_PATTERNS:
            dates.extend(m.group(0).strip() for m in pattern.finditer(text))
        return _unique(dates)

    def extract_medications(self, text: str) -> List[str]:
        medications = []
        for pattern in MEDICATION_PATTERNS:
            medications.extend(m.group(1).strip() for m in pattern.finditer(text))
        return _unique(medications)

    def extract_symptoms(self, text: str) -> List[str]:
        lowered = text.lower()
        symptoms: List[str] = []
        # Keywords are ordered longest phrase first
        for keyword in SYMPTOM_KEYWORDS:
            if not re.search(r"\b" + re.escape(keyword) + r"\b", lowered):
                continue
            if any(keyword in found for found in symptoms):
                continue
            symptoms.append(keyword)
        return symptoms

    def extract_vitals(self, text: str) -> List[str]:
        vitals = []
        for pattern in VITAL_PATTERNS:
            vitals.extend(m.group(0).strip() for m in pattern.finditer(text))
        return _unique(vitals)

    def extract_addresses(self, text: str) -> List[str]:
        addresses = []
        for pattern in ADDRESS_PATTERNS:
            for match in pattern.finditer(text):
                address = match.group(1).strip()
                if len(address) > 5:
                    addresses.append(address)
        return _unique(addresses)

    def extract_phone_numbers(self, text: str) -> List[str]:
        phones = []
        for pattern in PHONE_PATTERNS:
            for match in pattern.finditer(text):
                phone = match.group(1).strip()
                if len(re.sub(r"\D", "", phone)) >= 10:
                    phones.append(phone)

        # The same number is often hit by both the labelled and the bare pattern
        by_digits = {}
        for phone in phones:
            by_digits.setdefault(re.sub(r"\D", "", phone), phone)
        return list(by_digits.values())
