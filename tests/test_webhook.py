"""Tests for webhook authenticity checks and callback parsing."""

import hashlib
import hmac
import json

import pytest

from tasklynk.errors import ErrorCode, WebhookSignatureError
from tasklynk.payments import PaymentOutcome
from tasklynk.payments.webhook import (
    parse_mpesa_callback,
    parse_paystack_event,
    verify_paystack_signature,
    verify_shared_secret,
)


def stk_callback(result_code=0, desc="The service request is processed successfully.", items=None):
    callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": "ws_CO_191220191020363925",
        "ResultCode": result_code,
        "ResultDesc": desc,
    }
    if items is not None:
        callback["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": callback}}


SUCCESS_ITEMS = [
    {"Name": "Amount", "Value": 1300.00},
    {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
    {"Name": "TransactionDate", "Value": 20191219102115},
    {"Name": "PhoneNumber", "Value": 254712345678},
]


class TestSharedSecret:
    def test_match(self):
        verify_shared_secret("whsec_1", "whsec_1")

    @pytest.mark.parametrize("provided", [None, "", "whsec_2"])
    def test_mismatch(self, provided):
        with pytest.raises(WebhookSignatureError) as exc_info:
            verify_shared_secret(provided, "whsec_1")
        assert exc_info.value.code == ErrorCode.INVALID_SIGNATURE

    def test_unconfigured_secret_rejects_everything(self):
        with pytest.raises(WebhookSignatureError, match="not configured"):
            verify_shared_secret("anything", None)


class TestPaystackSignature:
    BODY = json.dumps({"event": "charge.success", "data": {"reference": "ref_1"}}).encode()

    def sign(self, body, secret="sk_test_1"):
        return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()

    def test_valid(self):
        verify_paystack_signature(self.BODY, self.sign(self.BODY), "sk_test_1")

    def test_uppercase_hex_accepted(self):
        verify_paystack_signature(self.BODY, self.sign(self.BODY).upper(), "sk_test_1")

    def test_tampered_body(self):
        signature = self.sign(self.BODY)
        with pytest.raises(WebhookSignatureError):
            verify_paystack_signature(self.BODY + b" ", signature, "sk_test_1")

    def test_wrong_secret(self):
        with pytest.raises(WebhookSignatureError):
            verify_paystack_signature(self.BODY, self.sign(self.BODY, "other"), "sk_test_1")

    def test_missing_signature(self):
        with pytest.raises(WebhookSignatureError):
            verify_paystack_signature(self.BODY, None, "sk_test_1")


class TestParseMpesaCallback:
    def test_success(self):
        payload = parse_mpesa_callback(stk_callback(items=SUCCESS_ITEMS))

        assert payload.provider_reference == "ws_CO_191220191020363925"
        assert payload.outcome == PaymentOutcome.CONFIRMED
        assert payload.receipt_id == "NLJ7RT61SV"

    def test_success_without_metadata(self):
        payload = parse_mpesa_callback(stk_callback())

        assert payload.outcome == PaymentOutcome.CONFIRMED
        assert payload.receipt_id is None

    def test_cancelled(self):
        payload = parse_mpesa_callback(stk_callback(1032, "Request cancelled by user"))

        assert payload.outcome == PaymentOutcome.FAILED
        assert payload.receipt_id is None
        assert payload.detail == "1032: Request cancelled by user"

    def test_string_result_code(self):
        assert parse_mpesa_callback(stk_callback("0")).outcome == PaymentOutcome.CONFIRMED

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"Body": {}},
            {"Body": {"stkCallback": {"ResultCode": 0}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1"}}},
            [],
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(ValueError):
            parse_mpesa_callback(data)


class TestParsePaystackEvent:
    def test_charge_success(self):
        payload = parse_paystack_event(
            {
                "event": "charge.success",
                "data": {"reference": "ref_1", "id": 302961, "gateway_response": "Successful"},
            }
        )

        assert payload.provider_reference == "ref_1"
        assert payload.outcome == PaymentOutcome.CONFIRMED
        assert payload.receipt_id == "302961"
        assert payload.detail == "Successful"

    def test_charge_failed_has_no_receipt(self):
        payload = parse_paystack_event(
            {"event": "charge.failed", "data": {"reference": "ref_1", "id": 302961}}
        )

        assert payload.outcome == PaymentOutcome.FAILED
        assert payload.receipt_id is None

    def test_unrelated_event_ignored(self):
        assert parse_paystack_event({"event": "transfer.success", "data": {}}) is None

    def test_missing_reference(self):
        with pytest.raises(ValueError):
            parse_paystack_event({"event": "charge.success", "data": {}})

    def test_non_object_payload(self):
        with pytest.raises(ValueError):
            parse_paystack_event(["charge.success"])
