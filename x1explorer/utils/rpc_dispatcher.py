"""Multi-endpoint JSON-RPC dispatcher with failover and response caching.

This module provides the single entry point every explorer component uses
to talk to an X1 node:
- Ring-order failover across a static pool of endpoints
- Rotation starts from the endpoint that last succeeded
- Bounded per-attempt timeout
- Endpoint-specific auth headers
- Optional response caching by tier
- Per-endpoint metrics tracking
"""

import asyncio
import itertools
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
import orjson
import structlog
from aiohttp import ClientTimeout

from ..config.settings import Settings
from .cache import CacheDuration, ResponseCache, TierLike
from .endpoints import Endpoint, EndpointRegistry
from .errors import AllEndpointsFailedError, RPCError

logger = structlog.get_logger(__name__)

# Failures that advance the ring instead of propagating
TRANSIENT_ERRORS = (
    RPCError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ValueError,  # undecodable body (orjson.JSONDecodeError)
)


@dataclass
class EndpointMetrics:
    """Attempt counters for one endpoint, as seen by the dispatcher."""
    endpoint: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeouts: int = 0
    total_latency_ms: float = 0.0
    last_success_time: Optional[float] = None
    last_failure_time: Optional[float] = None
    last_error: Optional[str] = None

    @property
    def success_rate(self) -> float:
        return self.successful_requests / self.total_requests if self.total_requests else 0.0

    @property
    def avg_latency_ms(self) -> float:
        # Latency is only recorded for answered attempts
        if not self.successful_requests:
            return 0.0
        return self.total_latency_ms / self.successful_requests

    def to_dict(self) -> Dict[str, Any]:
        snapshot = {
            key: getattr(self, key)
            for key in ("endpoint", "total_requests", "successful_requests", "failed_requests", "timeouts")
        }
        snapshot.update(
            success_rate=round(self.success_rate, 3),
            avg_latency_ms=round(self.avg_latency_ms, 2),
            last_error=self.last_error,
        )
        return snapshot


class RPCDispatcher:
    """Issues logical RPC calls against a pool of endpoints.

    Each call tries every endpoint at most once, strictly one after the
    other, starting from the endpoint that last succeeded for any call. A
    failed attempt always moves on to the next endpoint in ring order, so a
    dead endpoint can never pin the rotation.

    The last-success index, like the cache, is plain instance state. That
    is safe because all calls run on one event loop; sharing an instance
    across threads would need a lock around it.

    Args:
        registry: Endpoints to rotate over
        cache: Response cache consulted when a cache key is given
        request_timeout: Seconds allowed per endpoint attempt (default: 5)
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        cache: Optional[ResponseCache] = None,
        request_timeout: float = 5.0,
    ):
        self.registry = registry
        self.cache = cache if cache is not None else ResponseCache()
        self.request_timeout = request_timeout

        self.metrics: Dict[str, EndpointMetrics] = {
            endpoint.url: EndpointMetrics(endpoint=endpoint.url)
            for endpoint in registry
        }

        self.session: Optional[aiohttp.ClientSession] = None
        self._owns_session = False
        self._last_success_index = 0
        self._request_ids = itertools.count(1)

        logger.info(
            "rpc_dispatcher_initialized",
            endpoints_count=len(registry),
            request_timeout=request_timeout,
        )

    @classmethod
    def from_settings(cls, settings: Settings, cache: Optional[ResponseCache] = None) -> "RPCDispatcher":
        return cls(
            registry=EndpointRegistry.from_settings(settings),
            cache=cache if cache is not None else ResponseCache.from_settings(settings),
            request_timeout=settings.request_timeout,
        )

    async def __aenter__(self):
        """Open the HTTP session."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close the session if this dispatcher opened it."""
        await self.close()

    async def start(self, session: Optional[aiohttp.ClientSession] = None):
        """Open (or adopt) the HTTP session."""
        if self.session is not None:
            return
        if session is not None:
            self.session = session
            self._owns_session = False
        else:
            self.session = aiohttp.ClientSession(timeout=ClientTimeout(total=self.request_timeout))
            self._owns_session = True
        logger.info("rpc_dispatcher_started")

    async def close(self):
        """Close the HTTP session if this dispatcher opened it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
        logger.info("rpc_dispatcher_closed")

    @property
    def last_success_index(self) -> int:
        """Index of the endpoint the next call will try first."""
        return self._last_success_index

    @property
    def last_success_endpoint(self) -> Endpoint:
        return self.registry[self._last_success_index]

    async def call(
        self,
        method: str,
        params: Optional[List[Any]] = None,
        cache_key: Optional[str] = None,
        tier: TierLike = CacheDuration.SHORT,
    ) -> Any:
        """Make one logical JSON-RPC call with failover.

        Args:
            method: RPC method name
            params: Method parameters
            cache_key: If given, serve from and populate the response cache
            tier: Cache tier used when populating

        Returns:
            The `result` member of the JSON-RPC response

        Raises:
            AllEndpointsFailedError: If every endpoint failed for this call
        """
        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("rpc_cache_hit", method=method, cache_key=cache_key)
                return cached

        params = params or []
        last_error: Optional[BaseException] = None
        attempts = 0

        for index in self.registry.ring(self._last_success_index):
            endpoint = self.registry[index]
            attempts += 1
            try:
                result = await self._attempt(endpoint, method, params)
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(
                    "endpoint_attempt_failed",
                    method=method,
                    endpoint=endpoint.url,
                    attempt=attempts,
                    error=str(e) or type(e).__name__,
                )
                continue

            self._last_success_index = index
            if cache_key is not None:
                self.cache.set(cache_key, result, tier)
            return result

        logger.error("all_endpoints_failed", method=method, attempts=attempts, error=str(last_error))
        raise AllEndpointsFailedError(method, attempts, last_error) from last_error

    async def _attempt(self, endpoint: Endpoint, method: str, params: List[Any]) -> Any:
        """Single timed request to one endpoint, recorded in its metrics."""
        metrics = self.metrics[endpoint.url]
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }

        start_time = time.time()
        metrics.total_requests += 1

        try:
            data = await asyncio.wait_for(self._send(endpoint, payload), timeout=self.request_timeout)
            if not isinstance(data, dict):
                raise RPCError("Malformed JSON-RPC response", endpoint=endpoint.url)

            error = data.get("error")
            if error:
                if isinstance(error, dict):
                    raise RPCError(str(error.get("message", "unknown error")), code=error.get("code"), endpoint=endpoint.url)
                raise RPCError(str(error), endpoint=endpoint.url)
            if "result" not in data:
                raise RPCError("Response has neither result nor error", endpoint=endpoint.url)

        except TRANSIENT_ERRORS as e:
            metrics.failed_requests += 1
            metrics.last_failure_time = time.time()
            metrics.last_error = str(e) or type(e).__name__
            if isinstance(e, asyncio.TimeoutError):
                metrics.timeouts += 1
            raise

        metrics.successful_requests += 1
        metrics.total_latency_ms += (time.time() - start_time) * 1000
        metrics.last_success_time = time.time()
        return data["result"]

    async def _send(self, endpoint: Endpoint, payload: Dict[str, Any]) -> Any:
        """POST one JSON-RPC body and decode the reply."""
        if self.session is None:
            await self.start()

        async with self.session.post(
            endpoint.url,
            data=orjson.dumps(payload),
            headers=endpoint.headers(),
        ) as response:
            response.raise_for_status()
            return orjson.loads(await response.read())

    async def probe_endpoints(self) -> List[Dict[str, Any]]:
        """Query getSlot on every endpoint individually.

        Bypasses rotation and cache and never changes the last-success
        pointer; meant for status pages and debugging.
        """
        results = []
        for endpoint in self.registry:
            start_time = time.time()
            try:
                slot = await self._attempt(endpoint, "getSlot", [])
                results.append({
                    "url": endpoint.url,
                    "ok": True,
                    "slot": slot,
                    "latency_ms": round((time.time() - start_time) * 1000, 2),
                })
            except TRANSIENT_ERRORS as e:
                results.append({
                    "url": endpoint.url,
                    "ok": False,
                    "error": str(e) or type(e).__name__,
                    "latency_ms": round((time.time() - start_time) * 1000, 2),
                })
        logger.info("endpoints_probed", healthy=sum(1 for r in results if r["ok"]), total=len(results))
        return results

    def get_metrics(self) -> Dict[str, Any]:
        """Per-endpoint counters, pool totals and cache statistics."""
        per_endpoint = list(self.metrics.values())
        attempted = sum(m.total_requests for m in per_endpoint)
        answered = sum(m.successful_requests for m in per_endpoint)

        return {
            "endpoints": {m.endpoint: m.to_dict() for m in per_endpoint},
            "overall": {
                "total_endpoints": len(self.registry),
                "preferred_endpoint": self.last_success_endpoint.url,
                "total_requests": attempted,
                "successful_requests": answered,
                "failed_requests": sum(m.failed_requests for m in per_endpoint),
                "overall_success_rate": round(answered / attempted, 3) if attempted else 0.0,
            },
            "cache": self.cache.get_statistics(),
        }
