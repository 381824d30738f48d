"""Leaf components of the explorer data layer."""

from .cache import CacheDuration, ResponseCache
from .dedup import CallDeduplicator
from .endpoints import Endpoint, EndpointRegistry
from .errors import AllEndpointsFailedError, DecodeError, RPCError, X1ExplorerError
from .rpc_client import X1RpcClient
from .rpc_dispatcher import RPCDispatcher
from .transaction_classifier import Category, classify

__all__ = [
    'CacheDuration',
    'ResponseCache',
    'CallDeduplicator',
    'Endpoint',
    'EndpointRegistry',
    'AllEndpointsFailedError',
    'DecodeError',
    'RPCError',
    'X1ExplorerError',
    'X1RpcClient',
    'RPCDispatcher',
    'Category',
    'classify',
]
