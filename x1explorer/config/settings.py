#!/usr/bin/env python3
"""
Explorer Settings for x1explorer
================================
Single source of truth for endpoints, timeouts and cache policy.
Every value can be overridden from the environment (or a .env file).

Usage:
    from x1explorer.config.settings import get_settings
    settings = get_settings()

    endpoints = settings.endpoints
    ttl = settings.tier_ttls['medium']

Components never read the shared instance on their own; the host passes a
Settings object into the constructors so tests can build isolated ones.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

import structlog
from dotenv import load_dotenv

logger = structlog.get_logger(__name__)

DEFAULT_ENDPOINTS = [
    'https://rpc.mainnet.x1.xyz',
    'https://nexus.fortiblox.com/rpc',
    'https://rpc.owlnet.dev/',
    'https://rpc.x1galaxy.io/',
]


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(',') if item.strip()]


def _env_auth(name: str) -> Dict[str, Dict[str, str]]:
    """Parse {url: {header: value}} from a JSON environment variable."""
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("auth_config_invalid", variable=name, error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("auth_config_invalid", variable=name, error="expected object")
        return {}
    return {
        str(url): {str(k): str(v) for k, v in headers.items()}
        for url, headers in data.items()
        if isinstance(headers, dict)
    }


@dataclass
class Settings:
    """
    Explorer configuration with environment variable overrides.
    get_instance() keeps one shared default for the entry point.
    """

    # RPC endpoints, tried in ring order
    endpoints: List[str] = field(default_factory=lambda: _env_list('X1_RPC_ENDPOINTS', DEFAULT_ENDPOINTS))
    auth_headers: Dict[str, Dict[str, str]] = field(default_factory=lambda: _env_auth('X1_RPC_AUTH'))

    # Per-attempt timeout in seconds
    request_timeout: float = field(default_factory=lambda: float(os.getenv('X1_RPC_TIMEOUT', 5.0)))

    # Response cache
    cache_max_entries: int = field(default_factory=lambda: int(os.getenv('X1_CACHE_MAX_ENTRIES', 50)))
    cache_evict_batch: int = field(default_factory=lambda: int(os.getenv('X1_CACHE_EVICT_BATCH', 10)))
    tier_ttls: Dict[str, float] = field(default_factory=lambda: {
        'short': float(os.getenv('X1_CACHE_TTL_SHORT', 3.0)),
        'medium': float(os.getenv('X1_CACHE_TTL_MEDIUM', 45.0)),
        'long': float(os.getenv('X1_CACHE_TTL_LONG', 600.0)),
    })

    # Call deduplication window in milliseconds
    dedup_delay_ms: int = field(default_factory=lambda: int(os.getenv('X1_DEDUP_DELAY_MS', 100)))

    # Identity directory
    identity_refresh_interval: float = field(default_factory=lambda: float(os.getenv('X1_IDENTITY_REFRESH_SECS', 300)))

    # Chain constants
    slot_time_seconds: float = field(default_factory=lambda: float(os.getenv('X1_SLOT_TIME_SECS', 0.4)))
    snapshot_sample_count: int = field(default_factory=lambda: int(os.getenv('X1_SNAPSHOT_SAMPLES', 30)))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO'))
    log_format: str = field(default_factory=lambda: os.getenv('LOG_FORMAT', 'json'))

    _instance: ClassVar[Optional['Settings']] = None

    def __post_init__(self):
        if not self.endpoints:
            raise ValueError("At least one RPC endpoint must be configured")
        if self.cache_evict_batch < 1:
            raise ValueError("cache_evict_batch must be positive")

    @classmethod
    def get_instance(cls) -> 'Settings':
        """Get the shared Settings, loading .env on first use."""
        if cls._instance is None:
            load_dotenv()
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset shared instance (useful for testing)."""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary, without header values."""
        return {
            'endpoints': self.endpoints,
            'authenticated_endpoints': sorted(self.auth_headers),
            'request_timeout': self.request_timeout,
            'cache_max_entries': self.cache_max_entries,
            'cache_evict_batch': self.cache_evict_batch,
            'tier_ttls': dict(self.tier_ttls),
            'dedup_delay_ms': self.dedup_delay_ms,
            'identity_refresh_interval': self.identity_refresh_interval,
            'slot_time_seconds': self.slot_time_seconds,
            'snapshot_sample_count': self.snapshot_sample_count,
        }


def get_settings() -> Settings:
    """Get the shared explorer settings."""
    return Settings.get_instance()
