"""
Chain synchronization messages exchanged over the gossip topic

All payloads are UTF-8 JSON. Four shapes travel on the topic:

- ChainRequest  {"from_peer_id": str}
- ChainResponse {"receiver": str, "chain": [Block, ...]}
- a bare chain  [Block, ...]
- a bare block  {id, hash, previous_hash, timestamp, data, nonce}
"""

import json
from dataclasses import dataclass
from typing import Any, List, Union

from ..core.block import Block, BlockDecodeError, chain_from_list, chain_to_list

CHAIN_TOPIC = "chains"


class MessageDecodeError(ValueError):
    """Raised when a payload received from a peer cannot be decoded"""
    pass


@dataclass
class ChainRequest:
    from_peer_id: str

    def to_dict(self):
        return {"from_peer_id": self.from_peer_id}


@dataclass
class ChainResponse:
    receiver: str
    chain: List[Block]

    def to_dict(self):
        return {"receiver": self.receiver, "chain": chain_to_list(self.chain)}


ChainMessage = Union[ChainRequest, ChainResponse, List[Block], Block]


def encode_message(message: ChainMessage) -> bytes:
    """Serialize a message for publication on the chain topic"""
    if isinstance(message, (ChainRequest, ChainResponse, Block)):
        payload: Any = message.to_dict()
    else:
        payload = chain_to_list(message)
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def decode_message(data: bytes) -> ChainMessage:
    """Decode a payload received on the chain topic

    Raises:
        MessageDecodeError: for anything that is not one of the four shapes
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (ValueError, RecursionError) as e:
        # ValueError covers bad UTF-8, bad JSON and over-long integer literals
        raise MessageDecodeError(f"Payload is not UTF-8 JSON: {e}") from e

    try:
        if isinstance(payload, list):
            return chain_from_list(payload)

        if not isinstance(payload, dict):
            raise MessageDecodeError(f"Unexpected payload type {type(payload).__name__}")

        if "receiver" in payload:
            receiver = payload["receiver"]
            blocks = payload.get("chain", payload.get("blocks"))
            if not isinstance(receiver, str) or blocks is None:
                raise MessageDecodeError("Malformed chain response")
            return ChainResponse(receiver=receiver, chain=chain_from_list(blocks))

        if "from_peer_id" in payload:
            if not isinstance(payload["from_peer_id"], str):
                raise MessageDecodeError("Malformed chain request")
            return ChainRequest(from_peer_id=payload["from_peer_id"])

        return Block.from_dict(payload)

    except BlockDecodeError as e:
        raise MessageDecodeError(str(e)) from e
