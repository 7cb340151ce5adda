"""
Receipt Scanning using Gemini vision

DESIGN DECISION: The photographed receipt goes straight to a vision
model with a fixed extraction prompt. The model answers with JSON that
is parsed here into a ReceiptScanResult.

This service handles:
1. Basic image checks before spending an API call
2. Sending the image to Gemini
3. Parsing the (possibly Markdown-fenced) JSON answer

CRITICAL: The scan is a PROPOSAL. It is validated and shown to the
member, and only becomes an expense after explicit confirmation.
"""

import asyncio
import json
import re
import urllib.request
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Optional

import google.generativeai as genai
import structlog
from PIL import Image, UnidentifiedImageError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from family_ledger.config import get_settings
from family_ledger.models.receipt import ReceiptScanResult, ScannedItem


logger = structlog.get_logger(__name__)

MIN_IMAGE_DIMENSION = 300

EXTRACTION_PROMPT = """Please analyze this receipt/invoice document and extract the following information in JSON format:
{
  "date": "YYYY-MM-DD format",
  "vendor": "store/company name",
  "total": number (total amount),
  "items": [
    {
      "name": "item name",
      "price": number,
      "quantity": number (if available),
      "category": "food/other classification"
    }
  ],
  "currency": "ILS or other currency code",
  "confidence_score": number (0-100, your confidence in the extraction)
}

Please be as accurate as possible and only include information that is clearly visible in the document.
Respond with ONLY the JSON object."""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_DATE_FORMATS = ["%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y", "%d-%m-%Y", "%Y/%m/%d"]


class ReceiptScanError(Exception):
    """Base exception for receipt scanning errors."""
    pass


class ReceiptUnreadableError(ReceiptScanError):
    """Nothing usable could be read from the receipt."""
    pass


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def _safe_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value).replace(",", "")).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return amount if amount >= 0 else None


def _safe_date(value) -> Optional[date]:
    if not value or not isinstance(value, str):
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def _normalize_confidence(value) -> float:
    """The model reports 0-100; older answers sometimes use 0-1."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score > 1:
        score = score / 100
    return max(0.0, min(1.0, score))


def _parse_items(raw_items) -> list[ScannedItem]:
    items = []
    if not isinstance(raw_items, list):
        return items

    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        name = str(raw.get("name") or "").strip()
        price = _safe_decimal(raw.get("price"))
        if not name or price is None:
            continue
        items.append(ScannedItem(
            name=name[:200],
            price=price,
            quantity=_safe_decimal(raw.get("quantity")),
            category=str(raw.get("category") or "")[:100],
        ))
    return items


def parse_scan_response(text: str) -> ReceiptScanResult:
    """
    Parse the model's answer into a ReceiptScanResult.

    Raises:
        ReceiptScanError: If the answer holds no JSON object
        ReceiptUnreadableError: If the JSON carries no usable field
    """
    cleaned = _FENCE.sub("", (text or "").strip()).strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start < 0 or end <= start:
        raise ReceiptScanError("Scan response did not contain a JSON object")

    try:
        data = json.loads(cleaned[start:end])
    except json.JSONDecodeError as e:
        raise ReceiptScanError(f"Scan response is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ReceiptScanError("Scan response JSON is not an object")

    vendor = data.get("vendor")
    result = ReceiptScanResult(
        date=_safe_date(data.get("date")),
        vendor=str(vendor).strip()[:200] if vendor else None,
        total=_safe_decimal(data.get("total")),
        items=_parse_items(data.get("items")),
        currency=str(data.get("currency") or "ILS"),
        confidence_score=_normalize_confidence(data.get("confidence_score")),
        raw_response=text,
    )

    if result.total is None and not result.items and not result.vendor and result.date is None:
        raise ReceiptUnreadableError(
            "No receipt details could be read. Please upload a clearer photo."
        )

    return result


# =============================================================================
# SCANNER
# =============================================================================

class GeminiReceiptScanner:
    """
    Receipt scanner backed by the Gemini vision model.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts data - it does NOT validate semantically
    2. It never saves anything
    """

    def __init__(self):
        self._settings = get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def _load_image(self, image_bytes: bytes) -> Image.Image:
        """Open the image and reject ones too small to read."""
        try:
            img = Image.open(BytesIO(image_bytes))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ReceiptUnreadableError(f"File is not a readable image: {e}")

        if min(img.size) < MIN_IMAGE_DIMENSION:
            raise ReceiptUnreadableError(
                f"Image resolution too low (minimum {MIN_IMAGE_DIMENSION}px on smallest side)"
            )
        return img

    async def _download(self, image_url: str) -> bytes:
        def fetch() -> bytes:
            with urllib.request.urlopen(image_url, timeout=30) as response:
                return response.read()

        try:
            return await asyncio.to_thread(fetch)
        except OSError as e:
            raise ReceiptScanError(f"Could not download receipt image: {e}")

    async def scan_receipt(
        self,
        image_url: Optional[str] = None,
        image_bytes: Optional[bytes] = None,
    ) -> ReceiptScanResult:
        """
        Extract receipt details from a photo.

        Args:
            image_url: URL of the uploaded receipt image
            image_bytes: Raw image bytes (takes precedence over image_url)

        Returns:
            ReceiptScanResult with confidence normalised to 0-1

        Raises:
            ReceiptUnreadableError: Image unusable or nothing extracted
            ReceiptScanError: Model call or parsing failed
            ValueError: Neither image_url nor image_bytes was given
        """
        if image_bytes is None and not image_url:
            raise ValueError("Either image_url or image_bytes is required")
        return await self._scan(image_url, image_bytes)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(ReceiptUnreadableError),
        reraise=True,
    )
    async def _scan(
        self,
        image_url: Optional[str],
        image_bytes: Optional[bytes],
    ) -> ReceiptScanResult:
        if image_bytes is None:
            image_bytes = await self._download(image_url)

        image = self._load_image(image_bytes)

        try:
            response = await self._model.generate_content_async([EXTRACTION_PROMPT, image])
            text = response.text
        except ValueError as e:
            # response.text raises ValueError when the answer was blocked
            raise ReceiptUnreadableError(f"Model returned no text: {e}")
        except Exception as e:
            raise ReceiptScanError(f"Receipt scan failed: {e}")

        result = parse_scan_response(text)
        logger.info(
            "receipt_scanned",
            scan_id=str(result.scan_id),
            confidence=result.confidence_score,
            item_count=len(result.items),
        )
        return result
