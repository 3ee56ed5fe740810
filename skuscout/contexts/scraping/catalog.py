"""
Catalog collaborators consumed by the worker loop.

The worker only depends on the two protocols below. ``HTTPCatalog`` is the
production implementation (requests transport + BeautifulSoup parsing); tests
substitute in-memory fakes.

Both collaborators report classified failures by raising ``CatalogError``.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol
from urllib.parse import quote_plus

from loguru import logger
from omegaconf import DictConfig

from skuscout.contexts.scraping.errors import CatalogError, ErrorKind
from skuscout.contexts.scraping.parsers import is_not_found_page, parse_product_page, parse_search_results
from skuscout.contexts.scraping.requests import CatalogFetcher


@dataclass
class Candidate:
    external_id: str
    locator: Optional[str] = None


@dataclass
class SearchResult:
    """
    Candidates found for one code, in result-page order.

    ``exhausted`` is True when the result page held no more usable candidates
    than those returned.
    """

    candidates: List[Candidate] = field(default_factory=list)
    exhausted: bool = True

    @property
    def is_empty(self) -> bool:
        return not self.candidates


@dataclass
class ProductDetails:
    brand: Optional[str] = None
    rating_value: Optional[float] = None
    review_count: Optional[int] = None
    rank_value: Optional[int] = None
    extracted_code: Optional[str] = None
    title: Optional[str] = None


class SearchClient(Protocol):
    def search(self, code: str) -> SearchResult:
        ...


class ProductExtractor(Protocol):
    def extract_product(self, external_id: str) -> ProductDetails:
        ...


class HTTPCatalog:
    """
    Search and product extraction against the public retail site.

    Args:
        fetcher: CatalogFetcher performing single classified GET requests
        selectors: Contents of selectors.yaml
        urls: ``urls`` section of fetch.yaml (search/product templates)
        max_candidates: Maximum candidates returned per search
    """

    def __init__(self, fetcher: CatalogFetcher, selectors: DictConfig, urls: DictConfig, max_candidates: int = 3):
        self.fetcher = fetcher
        self.selectors = selectors
        self.urls = urls
        self.max_candidates = max_candidates

    @classmethod
    def from_config(cls, fetch_config: DictConfig, selectors: DictConfig, fetcher: Optional[CatalogFetcher] = None):
        fetcher = fetcher or CatalogFetcher.from_config(fetch_config)
        return cls(fetcher, selectors, fetch_config.urls, max_candidates=fetch_config.worker.max_candidates)

    def product_url(self, external_id: str) -> str:
        return self.urls.product.format(external_id=quote_plus(external_id))

    def search(self, code: str) -> SearchResult:
        url = self.urls.search.format(query=quote_plus(code))
        html = self.fetcher.get(url)
        found = parse_search_results(html, self.selectors.search, limit=self.max_candidates + 1)

        candidates = [Candidate(external_id=ext_id, locator=self.product_url(ext_id)) for ext_id in found]
        exhausted = len(candidates) <= self.max_candidates
        candidates = candidates[: self.max_candidates]
        logger.debug(f"Search '{code}' returned {len(candidates)} candidates")
        return SearchResult(candidates=candidates, exhausted=exhausted)

    def extract_product(self, external_id: str) -> ProductDetails:
        url = self.product_url(external_id)
        html = self.fetcher.get(url)
        if is_not_found_page(html, self.selectors.product):
            raise CatalogError(ErrorKind.NOT_FOUND, f"{url}: product page not found")
        return ProductDetails(**parse_product_page(html, self.selectors.product))
