"""
Receipt and Voice Field Extraction

DESIGN DECISION: Gemini reads the receipt photo or the voice memo and
returns a structured GUESS. Everything after that is deterministic:
1. The model answers in JSON against a fixed field list
2. normalize_extracted_date / normalize_extracted_amount clean the guess
3. category_from_hint maps the free-text category onto our registry ids

CRITICAL BOUNDARIES:
- The extractor NEVER saves anything. It returns fields for the entry
  form; the user confirms and the book saves.
- A failed or unreadable response raises ExtractionFailedError. No
  half-filled draft is returned.
- Categories are never invented: unknown hints land in "other".
"""

import json
import re
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional

import google.generativeai as genai
from pydantic import BaseModel, Field

from smartledger.config import get_settings
from smartledger.config.settings import GeminiSettings
from smartledger.ledger.categories import (
    DEFAULT_REGISTRY,
    OTHER_INCOME_ID,
    CategoryRegistry,
)
from smartledger.ledger.recurrence import local_today
from smartledger.logging_config import get_logger
from smartledger.models.ledger import TransactionType, parse_amount


logger = get_logger(__name__)

ROC_YEAR_OFFSET = 1911

_DATE_SEPARATORS = re.compile(r"[/.年月]")
_NON_AMOUNT_CHARS = re.compile(r"[^0-9.]")

INCOME_HINTS = (
    ("cat_salary", ("salary", "wage", "paycheck", "薪")),
    ("cat_investment", ("investment", "dividend", "interest", "stock", "投資")),
    ("cat_gift", ("gift", "bonus", "red envelope", "禮")),
)

RECEIPT_CATEGORIES = [
    "Food", "Transport", "Shopping", "Bills", "Healthcare",
    "Education", "Travel", "Entertainment",
]
VOICE_CATEGORIES = RECEIPT_CATEGORIES + ["Salary", "Investment"]


class ExtractionError(Exception):
    """Base exception for field extraction."""
    pass


class ExtractionFailedError(ExtractionError):
    """The model gave no usable answer."""
    pass


# =============================================================================
# EXTRACTED FIELDS
# =============================================================================

class ReceiptFields(BaseModel):
    """Cleaned fields read from a receipt photo."""

    date: str = Field(..., description="YYYY-MM-DD")
    amount: int = Field(..., ge=0)
    description: str = ""
    category: str = Field(..., description="Registry category id")
    category_hint: Optional[str] = Field(
        default=None,
        description="The model's category guess before mapping"
    )


class VoiceFields(ReceiptFields):
    """Cleaned fields from a spoken entry. Voice can also record income."""

    type: TransactionType = TransactionType.EXPENSE
    location: Optional[str] = None


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_extracted_date(raw: Any, today: Optional[date] = None) -> str:
    """
    Turn a model-read date into YYYY-MM-DD.

    '/', '.', '年', '月' become '-', '日' is dropped, and a year below 1911
    is read as a Republic of China year (113 -> 2024). Anything that is
    still not a calendar date becomes `today`.
    """
    fallback = (today or local_today()).isoformat()
    if raw is None:
        return fallback

    text = _DATE_SEPARATORS.sub("-", str(raw).strip()).replace("日", "")
    text = text.split("T")[0].split(" ")[0].strip("-")
    parts = text.split("-")
    if len(parts) != 3:
        return fallback

    try:
        year, month, day = (int(part) for part in parts)
        if year < ROC_YEAR_OFFSET:
            year += ROC_YEAR_OFFSET
        return date(year, month, day).isoformat()
    except ValueError:
        return fallback


def normalize_extracted_amount(raw: Any) -> int:
    """
    Turn a model-read amount into a whole number.

    Numbers are rounded; strings lose everything but digits and the
    decimal point ("NT$1,280" -> 1280). Unreadable amounts become 0.
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        amount = parse_amount(raw)
        return abs(amount) if amount is not None else 0

    cleaned = _NON_AMOUNT_CHARS.sub("", str(raw or ""))
    amount = parse_amount(cleaned)
    return amount if amount is not None else 0


def category_from_hint(
    hint: Optional[str],
    transaction_type: TransactionType = TransactionType.EXPENSE,
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> str:
    """Map a free-text category guess to a registry id for the given type."""
    if transaction_type != TransactionType.INCOME:
        return registry.from_hint(hint)

    if not hint:
        return OTHER_INCOME_ID
    found = registry.get(hint) or registry.find_by_name(hint)
    if found and found.type == TransactionType.INCOME:
        return found.id

    lowered = hint.lower()
    for category_id, keywords in INCOME_HINTS:
        if registry.get(category_id) and any(k in lowered for k in keywords):
            return category_id
    return OTHER_INCOME_ID


def _parse_json_object(text: Optional[str]) -> dict:
    if not text:
        raise ExtractionFailedError("Empty response from model")
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ExtractionFailedError("Response contained no JSON object")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise ExtractionFailedError(f"Response was not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionFailedError("Response JSON was not an object")
    return data


def receipt_fields_from_response(
    data: dict,
    today: Optional[date] = None,
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> ReceiptFields:
    hint = data.get("category")
    return ReceiptFields(
        date=normalize_extracted_date(data.get("date"), today),
        amount=normalize_extracted_amount(data.get("amount")),
        description=str(data.get("description") or "").strip(),
        category=category_from_hint(hint, TransactionType.EXPENSE, registry),
        category_hint=hint,
    )


def voice_fields_from_response(
    data: dict,
    today: Optional[date] = None,
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> VoiceFields:
    raw_type = str(data.get("type") or "").upper()
    tx_type = TransactionType.INCOME if raw_type == "INCOME" else TransactionType.EXPENSE
    hint = data.get("category")
    location = str(data.get("location") or "").strip()
    return VoiceFields(
        date=normalize_extracted_date(data.get("date"), today),
        amount=normalize_extracted_amount(data.get("amount")),
        description=str(data.get("description") or "").strip(),
        category=category_from_hint(hint, tx_type, registry),
        category_hint=hint,
        type=tx_type,
        location=location or None,
    )


# =============================================================================
# EXTRACTORS
# =============================================================================

class FieldExtractor(ABC):
    """Reads transaction fields from a receipt image or a voice recording."""

    @abstractmethod
    async def extract_receipt_fields(self, image: bytes, mime_type: str = "image/jpeg") -> ReceiptFields:
        """
        Raises:
            ExtractionFailedError: If no fields could be read
        """
        pass

    @abstractmethod
    async def extract_voice_fields(self, audio: bytes, mime_type: str) -> VoiceFields:
        """
        Raises:
            ExtractionFailedError: If no fields could be read
        """
        pass


class GeminiFieldExtractor(FieldExtractor):
    """
    Gemini implementation of FieldExtractor.

    Temperature comes from settings and defaults to 0 so the same receipt
    reads the same way twice.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        registry: CategoryRegistry = DEFAULT_REGISTRY,
    ):
        self._settings = settings or get_settings().gemini
        self._registry = registry
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    async def _generate(self, blob: bytes, mime_type: str, prompt: str) -> dict:
        try:
            response = await self._model.generate_content_async([
                {"mime_type": mime_type, "data": blob},
                prompt,
            ])
            text = response.text
        except Exception as e:
            logger.warning("extraction_request_failed", error=str(e))
            raise ExtractionFailedError(f"Gemini request failed: {e}") from e
        return _parse_json_object(text)

    async def extract_receipt_fields(self, image: bytes, mime_type: str = "image/jpeg") -> ReceiptFields:
        today = local_today()
        prompt = f"""You are an OCR engine for Traditional Chinese receipts (Taiwan Uniform Invoices / 統一發票).
Extract these fields from the image:

1. date: YYYY-MM-DD. Republic of China years (113年, 114年) add 1911
   (113 = 2024). If the date is illegible, use today's date: {today.isoformat()}.
2. amount: the total (總計, 合計, 小計). Ignore tax (稅額) and change (找零).
   Numeric value only, without currency symbols or commas.
3. description: the merchant name (e.g. 7-ELEVEN, 全家) or the main item,
   in Traditional Chinese.
4. category: one of [{', '.join(RECEIPT_CATEGORIES)}].

Respond with ONLY a JSON object:
{{"date": "...", "amount": 0, "description": "...", "category": "..."}}"""

        data = await self._generate(image, mime_type, prompt)
        fields = receipt_fields_from_response(data, today, self._registry)
        logger.info("receipt_fields_extracted", amount=fields.amount, category=fields.category)
        return fields

    async def extract_voice_fields(self, audio: bytes, mime_type: str) -> VoiceFields:
        today = local_today()
        prompt = f"""Current date: {today.isoformat()}.
Listen to this voice command for a bookkeeping app and extract:

- date: YYYY-MM-DD. Resolve relative dates ("yesterday", "last friday").
  Default to today.
- amount: number only.
- type: INCOME or EXPENSE (EXPENSE if ambiguous).
- category: best fit from [{', '.join(VOICE_CATEGORIES)}].
- description: brief summary in Traditional Chinese.
- location: if mentioned (e.g. "at 7-11").

Respond with ONLY a JSON object:
{{"date": "...", "amount": 0, "type": "EXPENSE", "category": "...", "description": "...", "location": "..."}}"""

        data = await self._generate(audio, mime_type, prompt)
        fields = voice_fields_from_response(data, today, self._registry)
        logger.info("voice_fields_extracted", amount=fields.amount, type=fields.type.value)
        return fields
