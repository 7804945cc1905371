import enum

import requests

from dosecrets import output
from dosecrets._output import redact


class Validity(enum.Enum):
    VALID = "valid"
    INVALID = "invalid"
    NETWORK_ERROR = "network error"


class TokenValidator(object):
    """Check an API token by reading the account it belongs to."""

    def __init__(self, url: str, timeout: float = 5.0, session=None):
        self.url = url
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self.last_error = ""

    def validate(self, token: str) -> Validity:
        output.annotate(
            "Validating token starting with {} against {}".format(
                redact(token), self.url
            ),
            debug=True,
        )
        try:
            resp = self.session.get(
                self.url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": "Bearer {}".format(token),
                },
                timeout=self.timeout,
            )
        except requests.Timeout:
            self.last_error = "no response within {}s".format(self.timeout)
            output.annotate("Token validation timed out", debug=True)
            return Validity.NETWORK_ERROR
        except requests.RequestException as e:
            self.last_error = e.__class__.__name__
            output.annotate(
                "Token validation failed to connect: {}".format(
                    e.__class__.__name__
                ),
                debug=True,
            )
            return Validity.NETWORK_ERROR

        if 200 <= resp.status_code < 300:
            self.last_error = ""
            output.annotate("Token validated successfully", debug=True)
            return Validity.VALID
        self.last_error = "HTTP {}".format(resp.status_code)
        if resp.status_code >= 500:
            output.annotate(
                "API unavailable: HTTP {}".format(resp.status_code), debug=True
            )
            return Validity.NETWORK_ERROR
        output.annotate(
            "Token rejected: HTTP {}".format(resp.status_code), debug=True
        )
        return Validity.INVALID
