"""AI Agents package."""

from smartledger.agents.extraction import (
    ExtractionError,
    ExtractionFailedError,
    FieldExtractor,
    GeminiFieldExtractor,
    ReceiptFields,
    VoiceFields,
    category_from_hint,
    normalize_extracted_amount,
    normalize_extracted_date,
)

__all__ = [
    "ExtractionError",
    "ExtractionFailedError",
    "FieldExtractor",
    "GeminiFieldExtractor",
    "ReceiptFields",
    "VoiceFields",
    "category_from_hint",
    "normalize_extracted_amount",
    "normalize_extracted_date",
]
