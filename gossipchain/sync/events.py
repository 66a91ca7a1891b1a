"""
Events consumed by the chain synchronization loop
"""

from dataclasses import dataclass
from typing import Union

from ..core.block import Block
from ..network.gossip_protocol import ChainResponse
from ..network.transport import NetworkEvent


@dataclass
class InitEvent:
    """Fires once, shortly after start"""


@dataclass
class InputEvent:
    line: str


@dataclass
class LocalChainResponseEvent:
    """A response to a peer's chain request, ready to be published"""
    response: ChainResponse


@dataclass
class BlockMinedEvent:
    block: Block


# network events (GossipMessage, PeerEvent) are dispatched as they come
Event = Union[InitEvent, InputEvent, LocalChainResponseEvent, BlockMinedEvent, NetworkEvent]
