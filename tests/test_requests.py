import pytest
import requests

from skuscout.contexts.scraping.errors import CatalogError, ErrorKind
from skuscout.contexts.scraping.requests import CatalogFetcher, describe_http_outcome

URL = "https://retail.example.com/s?k=111"


def _response(status_code, body="", url=URL):
    response = requests.Response()
    response.status_code = status_code
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    response.url = url
    return response


class FakeSession:
    """Returns a scripted response (or raises a scripted exception) for every GET."""

    def __init__(self, outcome):
        self.outcome = outcome
        self.headers = {}
        self.max_redirects = None
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _fetcher(classifier, outcome):
    return CatalogFetcher(classifier, headers={"User-Agent": "test"}, timeout=7, max_redirects=3, session=FakeSession(outcome))


def test_clean_response_returns_body(classifier):
    fetcher = _fetcher(classifier, _response(200, "<html>results</html>"))

    assert fetcher.get(URL) == "<html>results</html>"
    assert fetcher.session.calls == [(URL, {"timeout": 7})]
    assert fetcher.session.headers == {"User-Agent": "test"}
    assert fetcher.session.max_redirects == 3


@pytest.mark.parametrize(
    "outcome, kind, status_code",
    [
        (_response(429), ErrorKind.RATE_LIMITED, 429),
        (_response(503, "Service Unavailable"), ErrorKind.SERVICE_UNAVAILABLE, 503),
        (_response(404), ErrorKind.NOT_FOUND, 404),
        (_response(200, "Enter the characters you see below"), ErrorKind.CHALLENGE, 200),
        (requests.exceptions.ReadTimeout("read timed out"), ErrorKind.NETWORK, None),
        (requests.exceptions.ConnectionError("connection refused"), ErrorKind.NETWORK, None),
        (requests.exceptions.SSLError("bad handshake"), ErrorKind.UNKNOWN, None),
    ],
)
def test_failures_raise_classified_errors(classifier, outcome, kind, status_code):
    fetcher = _fetcher(classifier, outcome)

    with pytest.raises(CatalogError) as excinfo:
        fetcher.get(URL)

    assert excinfo.value.kind == kind
    assert excinfo.value.status_code == status_code
    assert URL in str(excinfo.value)


def test_describe_prefers_response_attached_to_exception():
    error = requests.exceptions.HTTPError("server error", response=_response(503, "down"))

    outcome = describe_http_outcome(exception=error)

    assert outcome.status_code == 503
    assert outcome.body == "down"
    assert outcome.transport_error is None


def test_describe_with_nothing():
    outcome = describe_http_outcome()
    assert outcome.status_code is None
    assert outcome.message == "no response"


def test_from_config_applies_http_settings(fetch_config):
    fetcher = CatalogFetcher.from_config(fetch_config)

    assert fetcher.timeout == 30
    assert fetcher.session.max_redirects == 5
    assert fetcher.session.headers["Accept-Language"] == "en-US,en;q=0.9"
