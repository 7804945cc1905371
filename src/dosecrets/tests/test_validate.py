import mock
import pytest
import requests

from dosecrets.validate import TokenValidator, Validity

URL = "https://api.digitalocean.com/v2/account"


@pytest.fixture
def session():
    return mock.Mock()


@pytest.fixture
def validator(session):
    return TokenValidator(URL, timeout=3.0, session=session)


def test_valid_token(validator, session):
    session.get.return_value = mock.Mock(status_code=200)
    assert validator.validate("dop_v1_abcdef") is Validity.VALID
    session.get.assert_called_once_with(
        URL,
        headers={
            "Content-Type": "application/json",
            "Authorization": "Bearer dop_v1_abcdef",
        },
        timeout=3.0,
    )
    assert validator.last_error == ""


@pytest.mark.parametrize("status", [401, 403, 404])
def test_rejected_token_is_invalid(validator, session, status):
    session.get.return_value = mock.Mock(status_code=status)
    assert validator.validate("dop_v1_abcdef") is Validity.INVALID
    assert validator.last_error == "HTTP {}".format(status)


def test_server_errors_are_network_errors(validator, session):
    session.get.return_value = mock.Mock(status_code=503)
    assert validator.validate("dop_v1_abcdef") is Validity.NETWORK_ERROR
    assert validator.last_error == "HTTP 503"


def test_timeout_is_a_network_error(validator, session):
    session.get.side_effect = requests.Timeout()
    assert validator.validate("dop_v1_abcdef") is Validity.NETWORK_ERROR
    assert validator.last_error == "no response within 3.0s"


def test_connection_failure_is_a_network_error(validator, session):
    session.get.side_effect = requests.ConnectionError("unreachable")
    assert validator.validate("dop_v1_abcdef") is Validity.NETWORK_ERROR
    assert validator.last_error == "ConnectionError"


def test_outcomes_are_traced_distinctly_without_the_token(
    validator, session, output
):
    output.enable_debug = True
    session.get.return_value = mock.Mock(status_code=401)
    validator.validate("dop_v1_abcdef")
    session.get.return_value = None
    session.get.side_effect = requests.Timeout()
    validator.validate("dop_v1_abcdef")
    traces = output.backend.errors
    assert "DEBUG: Token rejected: HTTP 401" in traces
    assert "DEBUG: Token validation timed out" in traces
    assert "dop_..." in traces
    assert "dop_v1_abcdef" not in traces
    assert output.backend.output == ""


def test_default_session_and_timeout():
    validator = TokenValidator(URL)
    assert isinstance(validator.session, requests.Session)
    assert validator.timeout == 5.0
