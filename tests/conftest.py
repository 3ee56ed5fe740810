import random
from pathlib import Path

import pytest
from omegaconf import OmegaConf

from skuscout.contexts.jobs.models import JobStatus, WorkItem
from skuscout.contexts.jobs.registry import JobRegistry
from skuscout.contexts.jobs.results import ResultStore
from skuscout.contexts.jobs.work_items import WorkItemStore
from skuscout.contexts.scraping.catalog import Candidate, ProductDetails, SearchResult
from skuscout.contexts.scraping.delays import DelayPolicy, DelayRange
from skuscout.contexts.scraping.errors import CatalogError, ErrorClassifier
from skuscout.contexts.scraping.worker import WorkerLoop, WorkerSettings
from skuscout.contexts.storage.config import StoreConfig
from skuscout.contexts.storage.filesystem import FileStateStore

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


class RecordingSleep:
    """Stands in for time.sleep; remembers every requested interval."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class FakeCatalog:
    """
    Scripted search/extract collaborator.

    ``searches`` maps a code to a list of responses returned in turn; each
    response is a list of external ids, a SearchResult or a CatalogError to
    raise. The last response repeats once the list is used up. ``products``
    works the same way per external id with ProductDetails / CatalogError.
    """

    def __init__(self, searches=None, products=None):
        self.searches = {k: list(v) for k, v in (searches or {}).items()}
        self.products = {k: list(v) for k, v in (products or {}).items()}
        self.search_calls = []
        self.product_calls = []

    @staticmethod
    def _next(responses):
        return responses.pop(0) if len(responses) > 1 else responses[0]

    def search(self, code):
        self.search_calls.append(code)
        responses = self.searches.get(code)
        if not responses:
            return SearchResult(candidates=[], exhausted=True)
        response = self._next(responses)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, SearchResult):
            return response
        return SearchResult(candidates=[Candidate(external_id=ext_id) for ext_id in response], exhausted=True)

    def extract_product(self, external_id):
        self.product_calls.append(external_id)
        responses = self.products.get(external_id)
        if not responses:
            return ProductDetails()
        response = self._next(responses)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fetch_config():
    return OmegaConf.load(CONFIG_DIR / "fetch.yaml")


@pytest.fixture
def selectors_config():
    return OmegaConf.load(CONFIG_DIR / "selectors.yaml")


@pytest.fixture
def store(tmp_path):
    return FileStateStore.from_config(StoreConfig(backend="file", root=tmp_path / "storage"), ensure_exists=True)


@pytest.fixture
def work_items(store):
    return WorkItemStore(store)


@pytest.fixture
def results(store):
    return ResultStore(store)


@pytest.fixture
def registry(store, work_items):
    return JobRegistry(store, work_items)


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def exports_dir(tmp_path):
    return tmp_path / "exports"


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def classifier(fetch_config):
    return ErrorClassifier.from_config(fetch_config, rng=random.Random(7))


@pytest.fixture
def delays(recording_sleep):
    # Zero-width step delays: only retry backoff and cooldowns reach the sleep
    zero = DelayRange(min=0.0, max=0.0)
    return DelayPolicy(
        {"search_to_product": zero, "product_to_product": zero, "item_to_item": zero},
        rng=random.Random(3),
        sleep=recording_sleep,
    )


def make_items(*codes, brand="Acme"):
    return [WorkItem(row_id=index + 2, code=code, brand=brand) for index, code in enumerate(codes)]


@pytest.fixture
def running_job(registry, work_items):
    """Create a RUNNING job from a list of codes."""

    def _create(*codes, brand="Acme"):
        job = registry.create(total_items=len(codes), job_id=None)
        work_items.create_all(job.job_id, make_items(*codes, brand=brand))
        return registry.transition(job.job_id, JobStatus.RUNNING)

    return _create


@pytest.fixture
def make_worker(registry, work_items, results, classifier, delays, log_dir):
    def _make(job_id, catalog, on_complete=None, **settings):
        return WorkerLoop(
            job_id,
            registry=registry,
            work_items=work_items,
            results=results,
            search_client=catalog,
            product_extractor=catalog,
            classifier=classifier,
            delays=delays,
            settings=WorkerSettings(**settings),
            on_complete=on_complete,
            log_dir=log_dir,
        )

    return _make


def catalog_error(kind, message="scripted failure", status_code=None):
    return CatalogError(kind, message, status_code=status_code)
