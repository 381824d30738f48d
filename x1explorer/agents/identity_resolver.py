"""Validator identity resolution.

Maps validator vote/identity keys to a display name, icon and website.
Lookups try, in order:
1. The live directory built from on-chain validator-info accounts
2. A static table of well-known validators
3. A label synthesized from the key itself

so resolve() always answers, even with no network access.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

import structlog

from ..utils.dedup import CallDeduplicator
from ..utils.errors import DecodeError, X1ExplorerError
from ..utils.rpc_client import X1RpcClient
from ..utils.rpc_models import decode_validator_identity

logger = structlog.get_logger(__name__)

REFRESH_KEY = "identity-directory"

ICON_X1_LABS = "🔷"
ICON_DEFAULT = "🔹"
ICON_UNKNOWN = "⚪"


@dataclass(frozen=True)
class IdentityRecord:
    subject_key: str
    name: str
    icon: str
    website: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _known(key: str, name: str, icon: str, website: Optional[str]) -> IdentityRecord:
    return IdentityRecord(subject_key=key, name=name, icon=icon, website=website)


_X1 = "https://x1.xyz"

# Well-known validators from the official X1 explorer
KNOWN_VALIDATORS: Dict[str, IdentityRecord] = {
    r.subject_key: r for r in [
        _known('Gv5kyHCneaRKNJPgyPreoiYnBVBm2XYqt981zYykcSSU', 'X1 Labs: (node9)', ICON_X1_LABS, _X1),
        _known('8gv2Vx7Go1hUAD2TQx2HEwn8JEb9FqtguutTMQ43wT2o', 'X1 Labs: (node5)', ICON_X1_LABS, _X1),
        _known('8LWKkcxFz4kWWExAVLfUAFLvoKVrWnqRawH1T7gHHeNg', 'X1 Labs: (node8)', ICON_X1_LABS, _X1),
        _known('4V2QkkWce8bwTzvvwPiNRNQ4W433ZsGQi9aWU12Q8uBF', 'X1 Labs: (node2)', ICON_X1_LABS, _X1),
        _known('CkMwg4TM6jaSC5rJALQjvLc51XFY5pJ1H9f1Tmu5Qdxs', 'X1 Labs: (node3)', ICON_X1_LABS, _X1),
        _known('7J5wJaH55ZYjCCmCMt7Gb3QL6FGFmjz5U8b6NcbzfoTy', 'X1 Labs: (node4)', ICON_X1_LABS, _X1),
        _known('5Rzytnub9yGTFHqSmauFLsAbdXFbehMwPBLiuEgKajUN', 'X1 Labs: (node1)', ICON_X1_LABS, _X1),
        _known('73RKDYK431DFw3bJXBN9ztk5UbdkWYyWCTTm7JLM7YUr', 'X1 Labs: (node6)', ICON_X1_LABS, _X1),
        _known('7ufaUVtQKzGu5tpFtii9Cg8kR4jcpjQSXwsF3oVPSMZA', 'X1 Labs: (node0)', ICON_X1_LABS, _X1),
        _known('B9xaPxcm3qKe15EiK4j6Am5eGp3Mxkzaci6Ywbs4it7Q', 'X1 Labs: (node11)', ICON_X1_LABS, _X1),
        _known('EXDQt1T1eQ4NjttSdxn1eNS3EkHDrmZ3ZrgZmMSbfYiy', 'X1 Labs: (node10)', ICON_X1_LABS, _X1),
        _known('4Y9fnKcTJ3Kxj6744HZX8ubd89DPKibyKckGnPWGkfU3', 'X1 Labs: (node7)', ICON_X1_LABS, _X1),
        _known('4B71UaqycZcA5yEBhGtESLzBwxsvVAYW4gL52jPNBH6c', "Tang's X1 node", '🌟', 'https://x.com/tangyujie2002'),
        _known('9Vhw2cWoHvustkMgj7jWTktduKXgFGZ5TSfoDeh6fig9', 'xen_artist', '🎨', 'https://x1.wiki'),
        _known('FTPty3gAuWC6akZVtMAGmaaE4neChW7dhTUJBnmrq6A4', 'Evmoon', '🌙', 'https://x.com/Evmoon_EVM'),
        _known('GA32o6A25KCGk2LpuvHomUevHX4yfNWXPzf67PfFtSPt', 'MEMO', '📝', 'https://memo.rip'),
        _known('9fkZtALVvBcUfY6ed6U16VXoYrcDyzij31yawXMW4WnG', 'doge', '🐕', None),
        _known('C9vopxShhVpf3PdsS11kABAKHRkVMavVnjgEd7rxSqCb', 'cypax2', ICON_DEFAULT, None),
        _known('2sUYt9TgC2GT48eLbL3w5dpFJNxZtN3kKc9KWX267GPh', 'Marask X1 Legion', '⚔️', 'https://x.com/marek_kogut'),
        _known('7JJBWFY2vkvu3yv7XZdZMv2QVtxiSng2ozJZTFRLJfby', 'iBand_Africa_2', '🌍', None),
        _known('puHudX7M8twvJ37dkKbn4wwPPUXbQMJC27RnGzp9U9F', 'iBand_Africa_3', '🌍', None),
        _known('FBJ6MvuuRFrN3V4DPqfKE8yrQE95PZydcD99mZdhRipg', 'X1 LFC', '⚽', 'https://x.com/X1_lfc'),
        _known('2MGKPVFxVhKUC6vjLXhtu9iDktBjkihVJGwZfS4mTUqk', 'Dantey', '🎭', 'https://x.com/marcinogebala'),
        _known('gMUQXTPSzjqniZQAeJwGKQxYhXHtdjPkqF5wBpheFSa', 'X1 Sheikh', '👑', 'https://x.com/KGNloverr'),
        _known('4yyo9aRZsNnbN7EUTzRrirRYqd2C1YJkkKj6bYbSHZPE', 'XEN.PUB #1', '🔥', 'https://xen.pub'),
        _known('A8k84GEGB8tmUfNsfgYg8KVxpZFeiBV5zFm68onkwbmo', "Miq Leo's", '🦁', 'https://x1val.online'),
        _known('2ErUnfWf29PYctJWE5gLQ5xE7TbGUZ1aRC89L3jbTbTA', 'Fortiblox', '🏰', 'https://fortiblox.com'),
        _known('5NfpgFCwrYzcgJkda9bRJvccycLUo3dvVQsVAK2W43Um', 'OWL', '🦉', 'https://owlnet.dev'),
        _known('CgvwC1L4y1nBwQxXjHNSNd7kXLMvqDNBDo2iiLVhQHor', 'trexx', '🌲', 'https://trexx.ing'),
        _known('6aMdLuTbJcnqAXtfTjZPy5MpNUqiakzGmPy6LLw4Bszc', 'SolanaFM', '📻', 'https://solana.fm'),
        _known('BXqTjwdSWUV7P2dJiALp4xdXwCPDJfYFgNuZqYJXYD2r', 'BlockLogic', '🧱', None),
        _known('7SzXqLGDfHHKZ8XJvJ5K8SLDv4QLXJJ7sCZPWxCBuTD9', 'X1Galaxy', '🌌', 'https://x1galaxy.io'),
    ]
}


def synthesize_identity(subject_key: str) -> IdentityRecord:
    """Deterministic short label for an unknown key."""
    return IdentityRecord(
        subject_key=subject_key,
        name=f"{subject_key[:6]}...{subject_key[-4:]}",
        icon=ICON_UNKNOWN,
        website=None,
    )


class IdentityResolver:
    """Resolves validator keys against a periodically refreshed directory.

    Lifecycle is explicit: the host calls initialize() for the first load
    and start() for the background refresh loop; nothing happens at
    construction time.

    Args:
        client: Typed RPC client used for the directory scan
        deduplicator: Coalesces concurrent refreshes into one scan
        refresh_interval: Seconds a loaded directory stays fresh (default: 300)
        static_table: Fallback entries (default: KNOWN_VALIDATORS)
    """

    def __init__(
        self,
        client: X1RpcClient,
        deduplicator: CallDeduplicator,
        refresh_interval: float = 300.0,
        static_table: Optional[Dict[str, IdentityRecord]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.deduplicator = deduplicator
        self.refresh_interval = refresh_interval
        self.static_table = KNOWN_VALIDATORS if static_table is None else static_table
        self._clock = clock

        self._directory: Dict[str, IdentityRecord] = {}
        self._last_refresh: Optional[float] = None
        self._refresh_task: Optional[asyncio.Task] = None

    async def initialize(self):
        """First directory load; failures leave the static table in charge."""
        await self.refresh_directory(force=True)

    async def start(self):
        """Start the background refresh loop."""
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self.refresh_loop())

    async def close(self):
        """Stop the background refresh loop."""
        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

    async def refresh_loop(self):
        """Background task that periodically refreshes the directory."""
        logger.info("identity_refresh_loop_started", interval=self.refresh_interval)

        while True:
            try:
                await asyncio.sleep(self.refresh_interval)
                await self.refresh_directory()
            except asyncio.CancelledError:
                logger.info("identity_refresh_loop_cancelled")
                break
            except Exception as e:
                logger.error("identity_refresh_loop_error", error=str(e))

    def is_fresh(self) -> bool:
        if not self._directory or self._last_refresh is None:
            return False
        return self._clock() - self._last_refresh < self.refresh_interval

    async def refresh_directory(self, force: bool = False) -> None:
        """Reload the directory unless the current one is still fresh.

        Concurrent callers share one scan. A failed or empty scan keeps the
        previous directory.
        """
        if not force and self.is_fresh():
            return
        await self.deduplicator.dedupe(REFRESH_KEY, self._load_directory)

    async def full_refresh(self) -> None:
        """Discard the directory and rebuild it from scratch."""
        self._directory = {}
        self._last_refresh = None
        await self.refresh_directory(force=True)

    async def _load_directory(self) -> None:
        try:
            accounts = await self.client.get_validator_info_accounts()
        except X1ExplorerError as e:
            logger.warning("identity_directory_refresh_failed", error=str(e))
            return

        directory: Dict[str, IdentityRecord] = {}
        skipped = 0
        for account in accounts:
            try:
                identity = decode_validator_identity(account)
            except DecodeError as e:
                skipped += 1
                logger.debug("validator_info_skipped", error=str(e))
                continue
            directory[identity.subject_key] = IdentityRecord(
                subject_key=identity.subject_key,
                name=identity.name,
                icon=ICON_X1_LABS if "X1 Labs" in identity.name else ICON_DEFAULT,
                website=identity.website,
            )

        if not directory:
            logger.warning("identity_directory_empty", accounts=len(accounts), skipped=skipped)
            return

        self._directory = directory
        self._last_refresh = self._clock()
        logger.info("identity_directory_refreshed", entries=len(directory), skipped=skipped)

    def resolve(self, subject_key: str, alt_key: Optional[str] = None) -> IdentityRecord:
        """Name, icon and website for a key; never raises.

        Args:
            subject_key: Primary key (vote account)
            alt_key: Secondary key (node identity), checked after subject_key
                at each tier
        """
        for table in (self._directory, self.static_table):
            record = table.get(subject_key)
            if record is None and alt_key:
                record = table.get(alt_key)
            if record is not None:
                return record
        return synthesize_identity(subject_key)

    def get_directory(self) -> Dict[str, IdentityRecord]:
        """Copy of the live directory."""
        return dict(self._directory)
