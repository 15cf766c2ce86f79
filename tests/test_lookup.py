#!/usr/bin/env python3
"""
Tests for the lookup/provisioning client
"""

from unittest.mock import Mock

import pytest
import requests

from purescan.checksum import InvalidBarcodeError
from purescan.lookup import (
    LookupCancelledError,
    LookupClient,
    LookupFailedError,
    LookupInProgressError,
    ProductNotFoundError,
)
from purescan.lookup_service import lookup_product
from purescan.store import InMemoryStore

BARCODE = "4006381333931"


def http_response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


class ServiceSession:
    """requests.Session stand-in that routes to the reference lookup handler"""

    def __init__(self, store):
        self.store = store
        self.calls = 0

    def get(self, url, params=None, timeout=None):
        self.calls += 1
        status, body = lookup_product(self.store, (params or {}).get('barcode'))
        return http_response(status, body)


class TestLookupClient:
    """Test cases for LookupClient"""

    def setup_method(self):
        self.session = Mock()
        self.client = LookupClient(base_url="https://lookup.test/", timeout=3, session=self.session)

    def test_existing_product(self):
        self.session.get.return_value = http_response(200, {
            'status': 'existing', 'id': 'p-1', 'barcode': BARCODE, 'name': 'Oat Bar',
            'brand': 'Acme', 'safetyScore': 91.5, 'safetyColor': 'green',
        })

        resolution = self.client.resolve(BARCODE)

        assert resolution.status == 'existing'
        assert resolution.product_id == 'p-1'
        assert resolution.record.name == 'Oat Bar'
        assert resolution.record.safety_score == 91.5
        assert not resolution.is_new
        self.session.get.assert_called_once_with(
            "https://lookup.test/lookupProduct", params={'barcode': BARCODE}, timeout=3)

    def test_new_placeholder(self):
        self.session.get.return_value = http_response(200, {
            'status': 'new', 'id': BARCODE, 'barcode': BARCODE, 'name': 'New product', 'isNew': True,
        })

        resolution = self.client.resolve(BARCODE)

        assert resolution.is_new
        assert resolution.record.is_new
        assert resolution.record.safety_score is None
        assert resolution.record.safety_color is None

    def test_legacy_body_without_status_is_existing(self):
        self.session.get.return_value = http_response(200, {'id': 'doc-9', 'barcode': BARCODE, 'name': 'Soap'})

        resolution = self.client.resolve(BARCODE)

        assert resolution.status == 'existing'
        assert resolution.product_id == 'doc-9'

    def test_legacy_not_found(self):
        self.session.get.return_value = http_response(200, {
            'status': 'not_found', 'message': 'Product not yet in database'})

        with pytest.raises(ProductNotFoundError, match='not yet in database'):
            self.client.resolve(BARCODE)

    @pytest.mark.parametrize("status, body, message", [
        (400, {'error': 'Missing barcode'}, 'Missing barcode'),
        (500, {'error': 'boom'}, 'boom'),
        (502, None, 'HTTP 502'),
    ])
    def test_http_errors(self, status, body, message):
        self.session.get.return_value = http_response(status, body)

        with pytest.raises(LookupFailedError, match=message):
            self.client.resolve(BARCODE)

    def test_malformed_success_body(self):
        self.session.get.return_value = http_response(200, None)

        with pytest.raises(LookupFailedError):
            self.client.resolve(BARCODE)

    @pytest.mark.parametrize("fields", [
        {'safetyColor': 'orange'},
        {'safetyScore': 'very safe'},
    ])
    def test_bad_product_fields_are_lookup_failures(self, fields):
        self.session.get.return_value = http_response(200, {'status': 'existing', 'id': 'p-1', **fields})

        with pytest.raises(LookupFailedError, match="Malformed product record"):
            self.client.resolve(BARCODE)
        assert not self.client.busy

    def test_network_error(self):
        self.session.get.side_effect = requests.ConnectionError("unreachable")

        with pytest.raises(LookupFailedError):
            self.client.resolve(BARCODE)
        assert not self.client.busy

    @pytest.mark.parametrize("barcode", ["", None, "123456789012", "4006381333932"])
    def test_invalid_barcode_is_never_sent(self, barcode):
        with pytest.raises(InvalidBarcodeError):
            self.client.resolve(barcode)
        self.session.get.assert_not_called()

    def test_one_request_in_flight(self):
        def get(url, params=None, timeout=None):
            with pytest.raises(LookupInProgressError):
                self.client.resolve(BARCODE)
            return http_response(200, {'status': 'existing', 'id': 'p-1', 'name': 'Oat Bar'})

        self.session.get.side_effect = get

        assert self.client.resolve(BARCODE).product_id == 'p-1'
        assert self.session.get.call_count == 1

    def test_cancel_discards_result(self):
        def get(url, params=None, timeout=None):
            self.client.cancel()
            return http_response(200, {'status': 'existing', 'id': 'p-1', 'name': 'Oat Bar'})

        self.session.get.side_effect = get

        with pytest.raises(LookupCancelledError):
            self.client.resolve(BARCODE)
        assert not self.client.busy

    def test_cancel_without_request_is_noop(self):
        self.client.cancel()
        self.session.get.return_value = http_response(200, {'status': 'existing', 'id': 'p-1', 'name': 'Oat Bar'})

        assert self.client.resolve(BARCODE).product_id == 'p-1'


class TestLookupAgainstService:
    """Client and reference handler together"""

    def setup_method(self):
        self.store = InMemoryStore()
        self.session = ServiceSession(self.store)
        self.client = LookupClient(base_url="https://lookup.test", session=self.session)

    def test_unknown_barcode_provisions_placeholder(self):
        resolution = self.client.resolve("0000000000017")

        assert resolution.status == 'new'
        assert resolution.product_id == "0000000000017"
        assert resolution.record.name == "New product"
        assert resolution.record.is_new

        stored = self.store.get_product("0000000000017")
        assert stored.is_new
        assert stored.safety_score is None
        assert stored.safety_color is None

    def test_repeated_lookup_creates_one_record(self):
        first = self.client.resolve("0000000000017")
        second = self.client.resolve("0000000000017")

        assert first.product_id == second.product_id
        assert second.status in ('new', 'existing')
        assert len(self.store._products) == 1
