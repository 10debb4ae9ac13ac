# downloader_bot/services/providers/base.py

from abc import ABC, abstractmethod

from ..media_data import DownloadedFile, Metadata


class SourceAdapter(ABC):
    """
    Abstract base class for all providers: components that can both describe
    and directly download media from a family of hosts.
    """

    adapter_id: str = ""
    hosts: tuple[str, ...] = ()

    @abstractmethod
    async def get_metadata(self, url: str) -> Metadata:
        """
        Fetch descriptive metadata for a canonical URL.

        Raises:
            NotFound: The resource is missing, private or region locked.
            UpstreamError: Any other failure.
        """

    @abstractmethod
    async def download(
        self, url: str, *, audio_only: bool, output_dir: str
    ) -> DownloadedFile:
        """
        Download the media into `output_dir` and return where it landed.

        Raises:
            DownloadFailed: The tool failed or no output file could be found.
        """
