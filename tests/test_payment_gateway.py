# tests/test_payment_gateway.py
"""Stripe client over a mocked requests session."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
import requests
from unittest.mock import MagicMock, patch
from app.exceptions import UpstreamPaymentError, ValidationError
from app.services.payment_gateway import StripeGateway, get_payment_gateway


def make_gateway(status_code=200, payload=None, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        resp = MagicMock()
        resp.status_code = status_code
        resp.json.return_value = payload or {}
        session.request.return_value = resp
    return StripeGateway("sk_test_123", "https://stripe.test/v1/", timeout=5, session=session), session


class TestCreateIntent:
    def test_sends_minor_units(self):
        gateway, session = make_gateway(payload={
            "id": "pi_1", "status": "requires_payment_method", "client_secret": "pi_1_secret",
            "amount": 12550, "currency": "inr",
        })
        intent = gateway.create_intent(125.5, "inr", metadata={"spaceId": "PS-1", "note": None})

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("POST", "https://stripe.test/v1/payment_intents")
        assert kwargs["data"]["amount"] == 12550
        assert kwargs["data"]["metadata[spaceId]"] == "PS-1"
        assert kwargs["data"]["metadata[note]"] == ""
        assert kwargs["auth"] == ("sk_test_123", "")
        assert intent.client_secret == "pi_1_secret"

    def test_non_positive_amount(self):
        gateway, session = make_gateway()
        with pytest.raises(ValidationError):
            gateway.create_intent(0, "inr")
        session.request.assert_not_called()


class TestRetrieveIntent:
    def test_status_parsed(self):
        gateway, _ = make_gateway(payload={"id": "pi_1", "status": "succeeded", "amount": 10000})
        intent = gateway.retrieve_intent("pi_1")
        assert intent.status == "succeeded"
        assert intent.amount == 10000

    def test_gateway_error_message(self):
        gateway, _ = make_gateway(status_code=404, payload={"error": {"message": "No such payment_intent"}})
        with pytest.raises(UpstreamPaymentError) as exc:
            gateway.retrieve_intent("pi_missing")
        assert exc.value.upstream_status == 404
        assert "No such payment_intent" in exc.value.message

    def test_transport_failure(self):
        gateway, _ = make_gateway(error=requests.exceptions.ConnectTimeout("timed out"))
        with pytest.raises(UpstreamPaymentError):
            gateway.retrieve_intent("pi_1")

    def test_missing_id(self):
        gateway, _ = make_gateway()
        with pytest.raises(ValidationError):
            gateway.retrieve_intent("")


class TestDependency:
    def test_unconfigured(self):
        with patch("app.services.payment_gateway.settings") as mock_settings:
            mock_settings.STRIPE_SECRET_KEY = None
            with pytest.raises(UpstreamPaymentError):
                get_payment_gateway()
