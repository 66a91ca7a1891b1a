"""
In-process gossip hub, used to run several nodes inside one event loop
"""

import logging
from typing import Dict, List

from .transport import GossipMessage, GossipTransport, PeerEvent, PeerEventType

logger = logging.getLogger(__name__)


class MemoryHub:
    """Delivers published payloads to every other attached transport"""

    def __init__(self):
        self.transports: Dict[str, 'MemoryTransport'] = {}

    def attach(self, transport: 'MemoryTransport'):
        for other in self.transports.values():
            other.events.put_nowait(PeerEvent(PeerEventType.CONNECTED, transport.peer_id))
            transport.events.put_nowait(PeerEvent(PeerEventType.CONNECTED, other.peer_id))
        self.transports[transport.peer_id] = transport

    def detach(self, transport: 'MemoryTransport'):
        self.transports.pop(transport.peer_id, None)
        for other in self.transports.values():
            other.events.put_nowait(PeerEvent(PeerEventType.DISCONNECTED, transport.peer_id))

    def deliver(self, source: str, topic: str, data: bytes):
        for peer_id, transport in self.transports.items():
            if peer_id == source or topic not in transport.topics:
                continue
            transport.events.put_nowait(GossipMessage(source=source, topic=topic, data=data))


class MemoryTransport(GossipTransport):

    def __init__(self, peer_id: str, hub: MemoryHub):
        super().__init__(peer_id)
        self.hub = hub
        self.published: List[GossipMessage] = []

    async def start(self):
        self.hub.attach(self)

    async def stop(self):
        self.hub.detach(self)

    async def publish(self, topic: str, data: bytes):
        self.published.append(GossipMessage(source=self.peer_id, topic=topic, data=data))
        self.hub.deliver(self.peer_id, topic, data)

    def list_peers(self) -> List[str]:
        # hub keeps attach order, so the newest peer comes last
        return [peer_id for peer_id in self.hub.transports if peer_id != self.peer_id]
