"""
Transaction Classifier for X1 blocks

Assigns every transaction to exactly one category by the programs its
instructions invoke:
- vote: any instruction targets the vote program
- transfer: otherwise, any instruction targets the system program
- program: otherwise, at least one instruction
- other: no instructions at all
"""

from enum import Enum
from typing import Any, Union

import structlog

from .errors import DecodeError
from .rpc_client import SYSTEM_PROGRAM, TOKEN_PROGRAM, VOTE_PROGRAM
from .rpc_models import DecodedTransaction, decode_transaction

logger = structlog.get_logger(__name__)


class Category(Enum):
    VOTE = "vote"
    TRANSFER = "transfer"
    PROGRAM = "program"
    OTHER = "other"


def classify(transaction: Union[DecodedTransaction, Any]) -> Category:
    """
    Classify one transaction.

    Votes win over transfers: a transaction that both votes and moves
    value is a vote.

    Args:
        transaction: DecodedTransaction, or a raw RPC transaction object

    Returns:
        Exactly one Category; undecodable transactions are OTHER
    """
    if not isinstance(transaction, DecodedTransaction):
        try:
            transaction = decode_transaction(transaction)
        except DecodeError as e:
            logger.debug("transaction_undecodable", error=str(e))
            return Category.OTHER

    if VOTE_PROGRAM in transaction.program_ids:
        return Category.VOTE
    if SYSTEM_PROGRAM in transaction.program_ids:
        return Category.TRANSFER
    if transaction.instruction_count > 0:
        return Category.PROGRAM
    return Category.OTHER


def invokes_token_program(transaction: DecodedTransaction) -> bool:
    """True if any instruction targets the SPL token program."""
    return TOKEN_PROGRAM in transaction.program_ids
