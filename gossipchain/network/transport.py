"""
Interface the synchronization layer needs from the network
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Union


@dataclass
class GossipMessage:
    """A payload published by a peer on a topic we subscribe to"""
    source: str
    topic: str
    data: bytes


class PeerEventType(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class PeerEvent:
    type: PeerEventType
    peer_id: str


NetworkEvent = Union[GossipMessage, PeerEvent]


class GossipTransport(ABC):
    """Publish/subscribe substrate between peers

    Inbound traffic is delivered on the events queue. Messages published by
    the local peer are never delivered back to it.
    """

    def __init__(self, peer_id: str):
        self.peer_id = peer_id
        self.topics = set()
        self.events: asyncio.Queue = asyncio.Queue()

    def subscribe(self, topic: str):
        self.topics.add(topic)

    @abstractmethod
    async def start(self):
        """Start accepting traffic"""

    @abstractmethod
    async def stop(self):
        """Stop accepting traffic"""

    @abstractmethod
    async def publish(self, topic: str, data: bytes):
        """Send data to every connected peer subscribed to topic"""

    @abstractmethod
    def list_peers(self) -> List[str]:
        """Connected peer ids, the most recently seen last"""
