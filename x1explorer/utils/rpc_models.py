"""Typed views of the JSON-RPC results the explorer consumes.

Every decode_* function takes the raw `result` member returned by the
dispatcher and either returns a model or raises DecodeError. Consumers
decide whether a DecodeError skips one record or fails the whole batch.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import DecodeError

LAMPORTS_PER_X1 = 1_000_000_000


class RpcModel(BaseModel):
    """Base: camelCase wire names, snake_case attributes, unknown fields ignored."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class EpochInfo(RpcModel):
    epoch: int
    slot_index: int
    slots_in_epoch: int
    absolute_slot: int
    block_height: Optional[int] = None
    transaction_count: Optional[int] = None

    @property
    def slots_remaining(self) -> int:
        return self.slots_in_epoch - self.slot_index


class PerformanceSample(RpcModel):
    slot: int = 0
    num_transactions: int
    num_slots: int = 0
    sample_period_secs: int
    num_non_vote_transactions: Optional[int] = None

    @property
    def tps(self) -> float:
        if self.sample_period_secs <= 0:
            return 0.0
        return self.num_transactions / self.sample_period_secs


class Supply(RpcModel):
    total: int
    circulating: int
    non_circulating: int


class VoteAccount(RpcModel):
    vote_pubkey: str
    node_pubkey: str
    activated_stake: int = 0
    commission: int = 0
    last_vote: int = 0
    root_slot: Optional[int] = None
    epoch_credits: List[List[int]] = Field(default_factory=list)
    epoch_vote_account: bool = True


class VoteAccounts(RpcModel):
    current: List[VoteAccount] = Field(default_factory=list)
    delinquent: List[VoteAccount] = Field(default_factory=list)

    @property
    def total_stake(self) -> int:
        return sum(v.activated_stake for v in self.current) + sum(v.activated_stake for v in self.delinquent)


class ClusterNode(RpcModel):
    pubkey: str
    gossip: Optional[str] = None
    tpu: Optional[str] = None
    rpc: Optional[str] = None
    version: Optional[str] = None
    feature_set: Optional[int] = None


class BlockProduction(RpcModel):
    by_identity: Dict[str, Tuple[int, int]] = Field(default_factory=dict)
    first_slot: Optional[int] = None
    last_slot: Optional[int] = None

    def skip_rate(self, identity: str) -> Optional[float]:
        """Percentage of leader slots skipped by identity, None if unknown."""
        entry = self.by_identity.get(identity)
        if entry is None:
            return None
        leader_slots, produced = entry
        if leader_slots <= 0:
            return 0.0
        return (leader_slots - produced) / leader_slots * 100

    def totals(self) -> Tuple[int, int]:
        """(leader slots, produced blocks) over every identity."""
        leader = sum(v[0] for v in self.by_identity.values())
        produced = sum(v[1] for v in self.by_identity.values())
        return leader, produced


class NodeVersion(RpcModel):
    solana_core: Optional[str] = Field(default=None, alias="solana-core")
    version: Optional[str] = None
    feature_set: Optional[int] = None

    @property
    def label(self) -> str:
        return self.solana_core or self.version or "unknown"


class SignatureInfo(RpcModel):
    signature: str
    slot: int
    err: Optional[Any] = None
    memo: Optional[str] = None
    block_time: Optional[int] = None
    confirmation_status: Optional[str] = None


class TokenHolder(RpcModel):
    address: str
    owner: str
    amount: int
    decimals: int

    @property
    def balance(self) -> float:
        return self.amount / (10 ** self.decimals)


@dataclass
class ValidatorIdentity:
    """Name published by a validator in its on-chain config account."""
    subject_key: str
    name: str
    website: Optional[str] = None


@dataclass
class DecodedTransaction:
    """Program-level view of one transaction, tolerant of both encodings."""
    signature: Optional[str]
    account_keys: List[Optional[str]] = field(default_factory=list)
    program_ids: List[str] = field(default_factory=list)
    instruction_count: int = 0
    fee_lamports: int = 0
    failed: bool = False


@dataclass
class DecodedBlock:
    slot: int
    blockhash: Optional[str]
    previous_blockhash: Optional[str]
    parent_slot: Optional[int]
    block_time: Optional[int]
    block_height: Optional[int]
    transactions: List[Any] = field(default_factory=list)


def _validate(model: type, raw: Any, what: str):
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise DecodeError(what, str(e.errors()[:1])) from e


def _unwrap_value(raw: Any, what: str) -> Any:
    """Results shaped {context, value} carry the payload under value."""
    if not isinstance(raw, dict) or "value" not in raw:
        raise DecodeError(what, "missing value")
    return raw["value"]


def decode_int(raw: Any, what: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise DecodeError(what, f"expected integer, got {type(raw).__name__}")
    return raw


def decode_epoch_info(raw: Any) -> EpochInfo:
    return _validate(EpochInfo, raw, "epoch info")


def decode_performance_samples(raw: Any) -> List[PerformanceSample]:
    if not isinstance(raw, list):
        raise DecodeError("performance samples", "expected list")
    return [_validate(PerformanceSample, item, "performance sample") for item in raw]


def decode_supply(raw: Any) -> Supply:
    return _validate(Supply, _unwrap_value(raw, "supply"), "supply")


def decode_vote_accounts(raw: Any) -> VoteAccounts:
    return _validate(VoteAccounts, raw, "vote accounts")


def decode_cluster_nodes(raw: Any) -> List[ClusterNode]:
    if not isinstance(raw, list):
        raise DecodeError("cluster nodes", "expected list")
    return [_validate(ClusterNode, item, "cluster node") for item in raw]


def decode_block_production(raw: Any) -> BlockProduction:
    value = _unwrap_value(raw, "block production")
    if not isinstance(value, dict):
        raise DecodeError("block production", "value is not an object")
    slot_range = value.get("range") or {}
    return _validate(
        BlockProduction,
        {
            "byIdentity": value.get("byIdentity") or {},
            "firstSlot": slot_range.get("firstSlot"),
            "lastSlot": slot_range.get("lastSlot"),
        },
        "block production",
    )


def decode_version(raw: Any) -> NodeVersion:
    return _validate(NodeVersion, raw, "version")


def decode_signatures(raw: Any) -> List[SignatureInfo]:
    if not isinstance(raw, list):
        raise DecodeError("signatures", "expected list")
    return [_validate(SignatureInfo, item, "signature") for item in raw]


def decode_balance(raw: Any) -> int:
    value = _unwrap_value(raw, "balance") if isinstance(raw, dict) else raw
    return decode_int(value, "balance")


def decode_validator_identity(account: Any) -> ValidatorIdentity:
    """Parse one jsonParsed Config-program account into a validator identity.

    The validator's identity key is the second entry of `keys`; the
    published name lives in `configData`.
    """
    try:
        info = account["account"]["data"]["parsed"]["info"]
        keys = info["keys"]
        config_data = info["configData"]
        subject_key = keys[1]["pubkey"]
        name = config_data["name"]
    except (KeyError, IndexError, TypeError) as e:
        raise DecodeError("validator info account", repr(e)) from e

    if not isinstance(subject_key, str) or not isinstance(name, str) or not name.strip():
        raise DecodeError("validator info account", "empty key or name")

    website = config_data.get("website") or None
    return ValidatorIdentity(subject_key=subject_key, name=name.strip(), website=website)


def decode_token_holder(account: Any) -> TokenHolder:
    """Parse one jsonParsed token account from a token-program scan."""
    try:
        info = account["account"]["data"]["parsed"]["info"]
        token_amount = info["tokenAmount"]
        raw = {
            "address": account["pubkey"],
            "owner": info["owner"],
            "amount": int(token_amount["amount"]),
            "decimals": int(token_amount.get("decimals", 9)),
        }
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError("token account", repr(e)) from e
    return _validate(TokenHolder, raw, "token account")


def decode_block(slot: int, raw: Any) -> DecodedBlock:
    if not isinstance(raw, dict):
        raise DecodeError("block", f"slot {slot} returned {type(raw).__name__}")
    transactions = raw.get("transactions") or []
    if not isinstance(transactions, list):
        raise DecodeError("block", f"slot {slot} transactions is not a list")
    return DecodedBlock(
        slot=slot,
        blockhash=raw.get("blockhash"),
        previous_blockhash=raw.get("previousBlockhash"),
        parent_slot=raw.get("parentSlot"),
        block_time=raw.get("blockTime"),
        block_height=raw.get("blockHeight"),
        transactions=transactions,
    )


def _account_key(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict) and isinstance(entry.get("pubkey"), str):
        return entry["pubkey"]
    return None


def decode_transaction(raw: Any) -> DecodedTransaction:
    """Resolve the program invoked by each instruction.

    Handles `json` encoding (programIdIndex into accountKeys) and
    `jsonParsed` encoding (programId on the instruction). Instructions whose
    program cannot be resolved are skipped.
    """
    if not isinstance(raw, dict):
        raise DecodeError("transaction", f"expected object, got {type(raw).__name__}")

    tx = raw.get("transaction")
    if not isinstance(tx, dict):
        raise DecodeError("transaction", "missing transaction body")
    message = tx.get("message")
    if not isinstance(message, dict):
        raise DecodeError("transaction", "missing message")

    # Unresolvable keys stay as None so programIdIndex positions line up
    account_keys = [_account_key(e) for e in message.get("accountKeys") or []]

    instructions = message.get("instructions") or []
    program_ids: List[str] = []
    for ix in instructions:
        if not isinstance(ix, dict):
            continue
        program_id = ix.get("programId")
        if program_id is None:
            index = ix.get("programIdIndex")
            if isinstance(index, int) and 0 <= index < len(account_keys):
                program_id = account_keys[index]
        if isinstance(program_id, str):
            program_ids.append(program_id)

    signatures = tx.get("signatures") or []
    meta = raw.get("meta") if isinstance(raw.get("meta"), dict) else {}

    return DecodedTransaction(
        signature=signatures[0] if signatures else None,
        account_keys=account_keys,
        program_ids=program_ids,
        instruction_count=len(instructions) if isinstance(instructions, list) else 0,
        fee_lamports=meta.get("fee") or 0,
        failed=meta.get("err") is not None,
    )
