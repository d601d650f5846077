"""
Service container.

Everything a request needs (registry snapshot holder, executor, LLM client,
caches and the pipeline) is built once at startup and stored on
app.state.services. Tests build the same container with fakes.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from geoquery.config import Settings
from geoquery.layers.registry import LayerRegistry, RegistryHolder, build_layer_registry, read_manifest
from geoquery.nl_processing.intent_parser import IntentParser
from geoquery.nl_processing.llm_client import LLMClient, create_llm_client
from geoquery.query.pipeline import QueryPipeline
from geoquery.storage.cache import QueryCache
from geoquery.storage.executor import DuckDBExecutor

logger = logging.getLogger(__name__)


@dataclass
class QueryServices:
    """Long-lived collaborators shared by all requests"""
    settings: Settings
    registry_holder: RegistryHolder
    executor: DuckDBExecutor
    llm_client: LLMClient
    parse_cache: QueryCache
    result_cache: QueryCache
    pipeline: QueryPipeline

    @property
    def manifest_path(self) -> Path:
        return Path(self.settings.manifest_path)

    def reload_registry(self) -> LayerRegistry:
        """
        Rebuild the registry from the manifest and the live tables and swap it in.

        Cached results were computed against the old snapshot, so the result
        cache is cleared. Parsed queries stay valid; they are re-grounded on use.
        """
        registry = build_layer_registry(self.manifest_path, describe=self.executor.describe)
        self.registry_holder.swap(registry)
        self.result_cache.clear()
        return registry

    def cache_stats(self):
        return {
            "parse": self.parse_cache.stats(),
            "query": self.result_cache.stats(),
        }


def build_services(
    settings: Settings,
    executor: Optional[DuckDBExecutor] = None,
    llm_client: Optional[LLMClient] = None,
    registry: Optional[LayerRegistry] = None,
) -> QueryServices:
    """
    Wire the service graph.

    Args:
        settings: Application settings
        executor: Executor to use; a DuckDBExecutor on settings.database_path by default
        llm_client: LLM client; chosen from settings.llm_provider by default
        registry: Initial registry snapshot; built from the manifest by default

    Returns:
        QueryServices
    """
    executor = executor or DuckDBExecutor(settings.database_path)
    llm_client = llm_client or create_llm_client(settings)

    if registry is None:
        registry = build_layer_registry(Path(settings.manifest_path), describe=executor.describe)
    holder = RegistryHolder(registry)

    parse_cache = QueryCache(settings.parse_cache_size, settings.parse_cache_ttl_seconds, name="parse cache")
    result_cache = QueryCache(settings.result_cache_size, settings.result_cache_ttl_seconds, name="result cache")

    pipeline = QueryPipeline(
        registry_holder=holder,
        executor=executor,
        result_cache=result_cache,
        parse_cache=parse_cache,
        intent_parser=IntentParser(llm_client),
    )

    return QueryServices(
        settings=settings,
        registry_holder=holder,
        executor=executor,
        llm_client=llm_client,
        parse_cache=parse_cache,
        result_cache=result_cache,
        pipeline=pipeline,
    )


def load_data(settings: Settings, executor: DuckDBExecutor) -> None:
    """Open the database and load every layer listed in the manifest."""
    executor.connect()
    manifest = read_manifest(Path(settings.manifest_path))
    loaded = executor.load_from_manifest(manifest, Path(settings.data_dir))
    logger.info(f"Loaded {len(loaded)} layer(s) into DuckDB: {loaded}")
