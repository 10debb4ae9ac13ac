# downloader_bot/services/registry.py

from __future__ import annotations

from typing import Iterable

from ..config import logger
from .canonical import normalize_host
from .providers.base import SourceAdapter
from .search.base import SearchBackend
from .subproviders.base import IndirectionAdapter


class AdapterRegistry:
    """
    Maps hosts to providers and subproviders, and ids to search backends.

    The maps are built once at startup. Construction fails with ValueError if
    any host is claimed twice, any variant is unnamed, or a subprovider points
    at a search backend that is not registered.
    """

    def __init__(
        self,
        *,
        universal: SourceAdapter,
        providers: Iterable[SourceAdapter] = (),
        subproviders: Iterable[IndirectionAdapter] = (),
        search_backends: Iterable[SearchBackend] = (),
    ) -> None:
        self.universal = universal
        self._providers_by_id: dict[str, SourceAdapter] = {}
        self._providers_by_host: dict[str, SourceAdapter] = {}
        self._subproviders_by_host: dict[str, IndirectionAdapter] = {}
        self._search_backends: dict[str, SearchBackend] = {}

        for backend in search_backends:
            if not backend.backend_id:
                raise ValueError(f"Search backend {type(backend).__name__} has no id.")
            if backend.backend_id in self._search_backends:
                raise ValueError(f"Duplicate search backend id '{backend.backend_id}'.")
            self._search_backends[backend.backend_id] = backend

        for provider in (universal, *providers):
            self._register_provider(provider)

        for subprovider in subproviders:
            self._register_subprovider(subprovider)

        logger.info(
            f"[REGISTRY] {len(self._providers_by_id)} provider(s), "
            f"{len(self._subproviders_by_host)} subprovider host(s), "
            f"{len(self._search_backends)} search backend(s)."
        )

    def _register_provider(self, provider: SourceAdapter) -> None:
        if not provider.adapter_id:
            raise ValueError(f"Provider {type(provider).__name__} has no adapter id.")
        existing = self._providers_by_id.get(provider.adapter_id)
        if existing is provider:
            return
        if existing is not None:
            raise ValueError(f"Duplicate provider id '{provider.adapter_id}'.")
        self._providers_by_id[provider.adapter_id] = provider
        for host in provider.hosts:
            self._claim_host(normalize_host(host), provider.adapter_id)
            self._providers_by_host[normalize_host(host)] = provider

    def _register_subprovider(self, subprovider: IndirectionAdapter) -> None:
        if not subprovider.adapter_id or not subprovider.hosts:
            raise ValueError(
                f"Subprovider {type(subprovider).__name__} needs an id and at least one host."
            )
        if subprovider.search_backend_id not in self._search_backends:
            raise ValueError(
                f"Subprovider '{subprovider.adapter_id}' searches on unknown backend "
                f"'{subprovider.search_backend_id}'."
            )
        for host in subprovider.hosts:
            self._claim_host(normalize_host(host), subprovider.adapter_id)
            self._subproviders_by_host[normalize_host(host)] = subprovider

    def _claim_host(self, host: str, adapter_id: str) -> None:
        owner = self._providers_by_host.get(host) or self._subproviders_by_host.get(host)
        if owner is not None:
            raise ValueError(
                f"Host '{host}' is claimed by both '{owner.adapter_id}' and '{adapter_id}'."
            )

    def subprovider_for(self, host: str) -> IndirectionAdapter | None:
        return self._subproviders_by_host.get(normalize_host(host))

    def provider_for(self, host: str) -> SourceAdapter:
        """The dedicated provider for `host`, or the universal one."""
        provider = self._providers_by_host.get(normalize_host(host))
        if provider is None:
            logger.info(f"[REGISTRY] No dedicated provider for '{host}', using {self.universal.adapter_id}.")
            return self.universal
        return provider

    def provider_by_id(self, adapter_id: str) -> SourceAdapter | None:
        return self._providers_by_id.get(adapter_id)

    def search_backend(self, backend_id: str) -> SearchBackend | None:
        return self._search_backends.get(backend_id)
