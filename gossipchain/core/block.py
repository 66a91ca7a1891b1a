"""
Block structure, canonical hashing and JSON codec
"""

import hashlib
import json
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence

GENESIS_PREVIOUS_HASH = "genesis"
GENESIS_DATA = "genesis!"
GENESIS_NONCE = 2836
GENESIS_HASH = "0000f816a87f806bb0073dcf026a64fb40c946b5abee2573702828694d5b4c43"

BLOCK_FIELDS = ("id", "hash", "previous_hash", "timestamp", "data", "nonce")


class BlockDecodeError(ValueError):
    """Raised when a block cannot be built from untrusted input"""
    pass


def calculate_hash(id: int, timestamp: int, previous_hash: str, data: str, nonce: int) -> bytes:
    """SHA-256 over the canonical serialization of the block fields

    The serialization is compact JSON with sorted keys. Every peer must
    produce byte-identical input here, so neither the key order nor the
    separators may change.
    """
    payload = json.dumps(
        {
            "id": id,
            "previous_hash": previous_hash,
            "data": data,
            "timestamp": timestamp,
            "nonce": nonce,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).digest()


@dataclass(frozen=True)
class Block:
    """A block of the ledger. Immutable once constructed."""
    id: int
    hash: str
    previous_hash: str
    timestamp: int
    data: str
    nonce: int

    def calculate_hash(self) -> str:
        """Recompute the hex hash from the block content"""
        return calculate_hash(
            self.id, self.timestamp, self.previous_hash, self.data, self.nonce
        ).hex()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> 'Block':
        """Create a block from a decoded JSON object

        Raises:
            BlockDecodeError: if a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise BlockDecodeError(f"Block must be a JSON object, got {type(data).__name__}")

        missing = [name for name in BLOCK_FIELDS if name not in data]
        if missing:
            raise BlockDecodeError(f"Block is missing fields: {', '.join(missing)}")

        for name in ("id", "timestamp", "nonce"):
            value = data[name]
            # bool is an int subclass but never a valid field value
            if not isinstance(value, int) or isinstance(value, bool):
                raise BlockDecodeError(f"Block field {name} must be an integer")
        for name in ("id", "nonce"):
            if data[name] < 0:
                raise BlockDecodeError(f"Block field {name} cannot be negative")
        for name in ("hash", "previous_hash", "data"):
            if not isinstance(data[name], str):
                raise BlockDecodeError(f"Block field {name} must be a string")
            try:
                data[name].encode("utf-8")
            except UnicodeEncodeError:
                raise BlockDecodeError(f"Block field {name} is not valid UTF-8 text") from None

        return cls(**{name: data[name] for name in BLOCK_FIELDS})

    def __str__(self) -> str:
        return f"Block #{self.id} ({self.hash[:16]}...)"


def create_genesis_block(timestamp: Optional[int] = None) -> Block:
    """Create the hard-coded genesis block

    The genesis block is never mined nor checked against a predecessor, so
    its timestamp is informational only.
    """
    return Block(
        id=0,
        hash=GENESIS_HASH,
        previous_hash=GENESIS_PREVIOUS_HASH,
        timestamp=int(time.time()) if timestamp is None else timestamp,
        data=GENESIS_DATA,
        nonce=GENESIS_NONCE,
    )


def chain_to_list(chain: Sequence[Block]) -> List[Dict[str, Any]]:
    return [block.to_dict() for block in chain]


def chain_from_list(data: Any) -> List[Block]:
    """Decode a JSON array of blocks"""
    if not isinstance(data, list):
        raise BlockDecodeError(f"Chain must be a JSON array, got {type(data).__name__}")
    return [Block.from_dict(item) for item in data]
