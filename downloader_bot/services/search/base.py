# downloader_bot/services/search/base.py

from abc import ABC, abstractmethod

from ..media_data import SearchOutcome


class SearchBackend(ABC):
    """
    Abstract base class for search backends: catalogs that turn a free-text
    query into the URL of a downloadable resource.
    """

    backend_id: str = ""
    display_name: str = ""

    @abstractmethod
    async def search(self, query: str, max_results: int = 1) -> SearchOutcome:
        """
        Look up `query` and return the best candidate.

        A query with no usable result returns SearchOutcome(found=False);
        only transport faults raise (UpstreamError).
        """
