from unittest import mock

import pytest
import requests

from ebook_reader.errors import InvalidCodeFormat, InvalidPhoneFormat, ProviderError
from ebook_reader.services.otp_service import OtpVerifier

PHONE = "+15551234567"


def _response(status_code, payload=None):
    resp = mock.Mock(spec=requests.Response)
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.json.return_value = payload or {}
    return resp


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def verifier(session):
    return OtpVerifier(
        "AC123",
        "secret",
        "VA456",
        base_url="https://verify.example.test/v2",
        timeout=(1, 2),
        session=session,
    )


@pytest.mark.parametrize("code", ["12345", "12a456", "abcdef", "1234567", "", "123456\n", "١٢٣٤٥٦"])
def test_bad_code_rejected_before_provider_call(verifier, session, code):
    with pytest.raises(InvalidCodeFormat):
        verifier.check(PHONE, code)
    session.request.assert_not_called()


@pytest.mark.parametrize("phone", ["5551234567", "+05551234567", "+1 555 123", "+1234567890123456", "+1٥٥٥١٢٣٤٥٦٧"])
def test_bad_phone_rejected(verifier, session, phone):
    with pytest.raises(InvalidPhoneFormat):
        verifier.send(phone)
    with pytest.raises(InvalidPhoneFormat):
        verifier.check(phone, "123456")
    session.request.assert_not_called()


def test_send_starts_sms_verification(verifier, session):
    session.request.return_value = _response(201, {"status": "pending"})

    assert verifier.send(PHONE) == "pending"

    session.request.assert_called_once_with(
        "POST",
        "https://verify.example.test/v2/Services/VA456/Verifications",
        data={"To": PHONE, "Channel": "sms"},
        timeout=(1, 2),
    )


def test_send_failure_is_provider_error(verifier, session):
    session.request.return_value = _response(400, {"message": "bad"})

    with pytest.raises(ProviderError):
        verifier.send(PHONE)


def test_check_approved(verifier, session):
    session.request.return_value = _response(200, {"status": "approved"})

    assert verifier.check(PHONE, "123456") is True
    args, kwargs = session.request.call_args
    assert args[1].endswith("/Services/VA456/VerificationCheck")
    assert kwargs["data"] == {"To": PHONE, "Code": "123456"}


def test_check_pending_is_denied(verifier, session):
    session.request.return_value = _response(200, {"status": "pending"})

    assert verifier.check(PHONE, "123456") is False


def test_check_without_pending_verification_is_denied(verifier, session):
    session.request.return_value = _response(404)

    assert verifier.check(PHONE, "123456") is False


def test_check_upstream_failure(verifier, session):
    session.request.return_value = _response(500)

    with pytest.raises(ProviderError):
        verifier.check(PHONE, "123456")


def test_transport_error_is_provider_error(verifier, session):
    session.request.side_effect = requests.ConnectionError("down")

    with pytest.raises(ProviderError):
        verifier.send(PHONE)


def test_unconfigured_verifier_fails_without_network(session):
    verifier = OtpVerifier("", "", "", session=session)

    with pytest.raises(ProviderError):
        verifier.send(PHONE)
    assert verifier.check_configuration() is False
    session.request.assert_not_called()


def test_check_configuration(verifier, session):
    session.request.return_value = _response(200, {"friendly_name": "Reader"})
    assert verifier.check_configuration() is True

    session.request.return_value = _response(401)
    assert verifier.check_configuration() is False
