"""
Healer Runtime
==============
Process-scoped resources: the fix cache (embedding engine + index
connection) and the HTTP clients of every collaborator.

Acquired once per process (FastAPI lifespan or the CLI's ``async with``)
and released on every exit path, including failure. Sessions share the
runtime but each gets its own dispatcher and orchestrator.
"""
import logging
from typing import Optional

from healer.agents.orchestrator import HealingOrchestrator
from healer.agents.tool_dispatcher import ToolDispatcher
from healer.core.config import MAX_ITERATIONS, RESULTS_DIR
from healer.executor.request_executor import RequestExecutor
from healer.llm.client import Policy, PolicyClient
from healer.services.collection_service import CollectionService
from healer.services.docs_search import DocsSearchService
from healer.services.fix_cache import FixCache, build_fix_cache

logger = logging.getLogger(__name__)


class HealerRuntime:
    """
    Usage:
        async with HealerRuntime() as runtime:
            result = await runtime.build_orchestrator().run(goal)
    """

    def __init__(
        self,
        fix_cache: Optional[FixCache] = None,
        policy: Optional[Policy] = None,
        collection_service: Optional[CollectionService] = None,
        executor: Optional[RequestExecutor] = None,
        docs_search: Optional[DocsSearchService] = None,
        max_iterations: int = MAX_ITERATIONS,
        results_dir: str = RESULTS_DIR,
    ) -> None:
        self.fix_cache = fix_cache or build_fix_cache()
        self.policy = policy or PolicyClient()
        self.collection_service = collection_service or CollectionService()
        self.executor = executor or RequestExecutor()
        self.docs_search = docs_search or DocsSearchService()
        self.max_iterations = max_iterations
        self.results_dir = results_dir

    def build_dispatcher(self) -> ToolDispatcher:
        return ToolDispatcher(self.collection_service, self.executor, self.docs_search, self.fix_cache)

    def build_orchestrator(self) -> HealingOrchestrator:
        """Fresh orchestrator and dispatcher for one session."""
        return HealingOrchestrator(
            self.policy,
            self.build_dispatcher(),
            max_iterations=self.max_iterations,
            results_dir=self.results_dir,
        )

    async def close(self) -> None:
        """Release every resource; one failing close never blocks the rest."""
        for name in ("policy", "collection_service", "executor", "docs_search"):
            closer = getattr(getattr(self, name), "close", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.warning("Failed to close %s: %s", name, e)
        try:
            self.fix_cache.close()
        except Exception as e:
            logger.warning("Failed to close fix cache: %s", e)
        logger.info("Healer runtime closed")

    async def __aenter__(self) -> "HealerRuntime":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
