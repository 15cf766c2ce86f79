"""
Reference handler for GET /lookupProduct?barcode=<digits>

Returns the existing product for a barcode, or provisions a placeholder keyed
by the barcode so repeated lookups of an unknown code converge on one record.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from purescan.lookup import STATUS_EXISTING, STATUS_NEW
from purescan.models import Product
from purescan.store import DocumentStore, StoreError

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "New product"


def _jsonable(product: Product) -> Dict[str, Any]:
    body = product.to_dict()
    if body.get('updatedAt') is not None:
        body['updatedAt'] = body['updatedAt'].isoformat()
    return body


def lookup_product(store: DocumentStore, barcode: Optional[str]) -> Tuple[int, Dict[str, Any]]:
    """
    Resolve or provision a product

    Returns:
        (http_status, json_body)
    """
    if not barcode:
        return 400, {'error': 'Missing barcode'}

    try:
        product = store.find_product_by_barcode(barcode)
        if product is not None:
            return 200, {'status': STATUS_EXISTING, **_jsonable(product)}

        placeholder = Product(id=barcode, barcode=barcode, name=PLACEHOLDER_NAME, is_new=True)
        product, created = store.create_product_if_absent(placeholder)
    except StoreError as e:
        logger.error(f"Lookup for {barcode} failed: {e}")
        return 500, {'error': str(e)}

    if created:
        logger.info(f"Provisioned placeholder product for {barcode}")
    # a racing create already made the placeholder; same answer either way
    return 200, {'status': STATUS_NEW if product.is_new else STATUS_EXISTING, **_jsonable(product)}
