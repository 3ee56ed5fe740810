"""HTTP helpers shared by the catalog collaborators."""

from typing import Optional

import requests
from loguru import logger
from omegaconf import DictConfig, OmegaConf

from skuscout.contexts.scraping.errors import ErrorClassifier, OutcomeDescriptor


def describe_http_outcome(
    response: Optional[requests.Response] = None,
    exception: Optional[requests.RequestException] = None,
) -> OutcomeDescriptor:
    """
    Reduce a requests response or exception to an OutcomeDescriptor.

    Transport failures are identified by exception class name
    (``ConnectionError``, ``ReadTimeout``, ...), which is what the classifier's
    ``network_errors`` list contains.
    """
    if response is None and exception is not None:
        response = getattr(exception, "response", None)

    if response is not None:  # We received a response object.
        return OutcomeDescriptor(
            status_code=response.status_code,
            body=response.text,
            message=f"HTTP {response.status_code} from {response.url}",
        )

    elif exception is not None:  # No response, but we did receive an exception.
        return OutcomeDescriptor(transport_error=type(exception).__name__, message=str(exception))

    else:
        # We received nothing. We know nothing about the request.
        return OutcomeDescriptor(message="no response")


class CatalogFetcher:
    """
    Performs single GET requests and raises a CatalogError for anything that
    does not classify as a clean response.

    Retrying is the caller's job: it owns the retry policy and pacing.

    Args:
        classifier: ErrorClassifier applied to every outcome
        headers: Browser-like request headers
        timeout: Per-request timeout in seconds
        max_redirects: Redirect limit for the session
        session: Optional pre-built requests.Session
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        headers: Optional[dict] = None,
        timeout: float = 30,
        max_redirects: int = 5,
        session: Optional[requests.Session] = None,
    ):
        self.classifier = classifier
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.max_redirects = max_redirects
        if headers:
            self.session.headers.update(headers)

    @classmethod
    def from_config(cls, config: DictConfig, classifier: Optional[ErrorClassifier] = None):
        return cls(
            classifier=classifier or ErrorClassifier.from_config(config),
            headers=OmegaConf.to_container(config.http.headers),
            timeout=config.http.timeout,
            max_redirects=config.http.max_redirects,
        )

    def get(self, url: str, **kwargs) -> str:
        """
        Fetch ``url`` and return the response body.

        Raises:
            CatalogError: If the outcome classifies as any ErrorKind
        """
        try:
            response = self.session.get(url, timeout=self.timeout, **kwargs)
            outcome = describe_http_outcome(response=response)
        except requests.RequestException as e:
            outcome = describe_http_outcome(exception=e)

        kind = self.classifier.classify(outcome)
        if kind is not None:
            logger.debug(f"GET {url} classified as {kind.value}")
            raise self.classifier.to_error(kind, outcome, context=url)

        return outcome.body or ""
