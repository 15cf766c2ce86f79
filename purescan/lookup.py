"""
Lookup/provisioning client for the product resolution endpoint.

GET {base_url}/lookupProduct?barcode=<digits> either returns the existing
product or provisions a placeholder keyed by the barcode. Both answers are the
same success shape for the caller.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel, ConfigDict, ValidationError

from purescan.checksum import InvalidBarcodeError, is_valid
from purescan.config import Config
from purescan.models import Product

logger = logging.getLogger(__name__)

STATUS_EXISTING = "existing"
STATUS_NEW = "new"
STATUS_NOT_FOUND = "not_found"


class LookupFailedError(Exception):
    """The lookup did not produce a product; the user may retry"""


class ProductNotFoundError(LookupFailedError):
    """Legacy endpoint answered not_found instead of provisioning"""


class LookupInProgressError(LookupFailedError):
    """Another lookup is already in flight"""


class LookupCancelledError(LookupFailedError):
    """The in-flight lookup was cancelled by the user"""


class LookupResponse(BaseModel):
    """Body of a 200 answer from /lookupProduct"""
    model_config = ConfigDict(extra='allow')

    status: Optional[str] = None
    id: Optional[str] = None
    message: Optional[str] = None

    def fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


@dataclass
class Resolution:
    """Outcome of a successful lookup"""
    status: str
    product_id: str
    record: Product

    @property
    def is_new(self) -> bool:
        return self.status == STATUS_NEW


class LookupClient:
    """
    Resolves validated barcodes against the lookup endpoint.

    At most one request is in flight per client; there is no automatic retry.
    """

    def __init__(self, base_url: str = None, timeout: float = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or Config.LOOKUP_URL).rstrip('/')
        self.timeout = timeout if timeout is not None else Config.LOOKUP_TIMEOUT
        self.session = session or requests.Session()
        self._in_flight = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def busy(self) -> bool:
        return self._in_flight.locked()

    def cancel(self):
        """Discard the result of the in-flight lookup, if any"""
        if self.busy:
            logger.info("Cancelling in-flight lookup")
            self._cancelled.set()

    def resolve(self, barcode: str) -> Resolution:
        """
        Look up a product by barcode, provisioning it when unknown

        Args:
            barcode: validated 13-digit EAN-13 string

        Returns:
            Resolution with status "existing" or "new"
        """
        if not barcode:
            raise InvalidBarcodeError("Missing barcode")
        if not is_valid(barcode):
            raise InvalidBarcodeError(f"Not a valid EAN-13 barcode: {barcode}")

        if not self._in_flight.acquire(blocking=False):
            raise LookupInProgressError("A lookup is already in progress")

        try:
            self._cancelled.clear()
            logger.info(f"Looking up barcode: {barcode}")
            response = self._get(barcode)
            if self._cancelled.is_set():
                raise LookupCancelledError(f"Lookup for {barcode} cancelled")
            return self._parse(barcode, response)
        finally:
            self._cancelled.clear()
            self._in_flight.release()

    def _get(self, barcode: str) -> requests.Response:
        url = f"{self.base_url}/lookupProduct"
        try:
            return self.session.get(url, params={'barcode': barcode}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Lookup request failed for {barcode}: {e}")
            raise LookupFailedError(f"Lookup request failed: {e}") from e

    def _parse(self, barcode: str, response: requests.Response) -> Resolution:
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code != 200:
            error = body.get('error') if isinstance(body, dict) else None
            message = error or f"HTTP {response.status_code}"
            logger.error(f"Lookup for {barcode} failed: {message}")
            raise LookupFailedError(message)

        if not isinstance(body, dict):
            raise LookupFailedError("Malformed lookup response")

        try:
            parsed = LookupResponse.model_validate(body)
        except ValidationError as e:
            raise LookupFailedError(f"Malformed lookup response: {e}") from e

        if parsed.status == STATUS_NOT_FOUND:
            raise ProductNotFoundError(parsed.message or f"Product {barcode} not found")

        # legacy shape: {id, ...fields} without a status means the product exists
        status = parsed.status or STATUS_EXISTING
        if status not in (STATUS_EXISTING, STATUS_NEW) or not parsed.id:
            raise LookupFailedError(f"Unexpected lookup response status: {parsed.status}")

        fields = parsed.fields()
        fields.setdefault('barcode', barcode)
        try:
            record = Product.from_dict(fields, product_id=parsed.id)
        except (ValueError, TypeError) as e:
            logger.error(f"Lookup for {barcode} returned a bad product record: {e}")
            raise LookupFailedError(f"Malformed product record: {e}") from e

        logger.info(f"Resolved {barcode} -> {record.id} ({status})")
        return Resolution(status=status, product_id=record.id, record=record)
