"""
TCP gossip transport

Each message travels on its own connection as one JSON line:

    {"type": "hello" | "publish", "peer_id": ..., "listen": "host:port",
     "topic": ..., "data": <hex payload>}

A "hello" registers the sender as a connected peer and is answered once
with our own hello. Peers are known from the bootstrap list or from the
hellos and publishes they send us; there is no discovery beyond that.
"""

import asyncio
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .transport import GossipMessage, GossipTransport, PeerEvent, PeerEventType
from ..config.settings import parse_peer_address, ConfigError

logger = logging.getLogger(__name__)

MAX_MESSAGE_SIZE = 16 * 1024 * 1024
CONNECT_TIMEOUT = 5


@dataclass
class PeerInfo:
    peer_id: str
    host: str
    port: int


class P2PNetwork(GossipTransport):
    """Gossip transport over plain asyncio TCP streams"""

    def __init__(
        self,
        peer_id: str,
        host: str = "0.0.0.0",
        port: int = 0,
        advertise_host: str = "127.0.0.1",
        bootstrap_peers: Sequence[Tuple[str, int]] = ()
    ):
        super().__init__(peer_id)
        self.host = host
        self.port = port
        self.advertise_host = advertise_host
        self.bootstrap_peers = list(bootstrap_peers)
        self.peers: "OrderedDict[str, PeerInfo]" = OrderedDict()
        self.server: Optional[asyncio.AbstractServer] = None
        self.is_running = False

    @property
    def listen_address(self) -> str:
        return f"{self.advertise_host}:{self.port}"

    async def start(self):
        if self.is_running:
            return

        self.server = await asyncio.start_server(
            self.handle_connection,
            self.host,
            self.port,
            limit=MAX_MESSAGE_SIZE
        )
        # port 0 binds an ephemeral port, advertise the real one
        self.port = self.server.sockets[0].getsockname()[1]
        self.is_running = True
        logger.info(f"P2P network listening on {self.host}:{self.port}")

        for host, port in self.bootstrap_peers:
            await self._send(host, port, self._envelope("hello"))

    async def stop(self):
        if not self.is_running:
            return

        self.is_running = False
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        logger.info(f"P2P network stopped on {self.host}:{self.port}")

    def list_peers(self) -> List[str]:
        return list(self.peers)

    async def publish(self, topic: str, data: bytes):
        if not self.is_running:
            return

        envelope = self._envelope("publish", topic=topic, data=data.hex())
        peers = list(self.peers.values())
        results = await asyncio.gather(
            *(self._send(peer.host, peer.port, envelope) for peer in peers)
        )

        for peer, sent in zip(peers, results):
            if not sent:
                self._remove_peer(peer.peer_id)

    def _envelope(self, kind: str, **fields) -> Dict:
        envelope = {
            "type": kind,
            "peer_id": self.peer_id,
            "listen": self.listen_address,
        }
        envelope.update(fields)
        return envelope

    async def _send(self, host: str, port: int, envelope: Dict) -> bool:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), CONNECT_TIMEOUT
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to connect to {host}:{port} - {e}")
            return False

        try:
            writer.write(json.dumps(envelope).encode("utf-8") + b"\n")
            await writer.drain()
            return True
        except OSError as e:
            logger.error(f"Failed to send to {host}:{port} - {e}")
            return False
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    def _register_peer(self, peer_id: str, listen: str) -> bool:
        """Record peer as most recently seen. Returns True if it is new."""
        host, port = parse_peer_address(listen)
        is_new = peer_id not in self.peers
        self.peers[peer_id] = PeerInfo(peer_id, host, port)
        self.peers.move_to_end(peer_id)
        if is_new:
            logger.info(f"New peer: {peer_id} at {host}:{port}")
            self.events.put_nowait(PeerEvent(PeerEventType.CONNECTED, peer_id))
        return is_new

    def _remove_peer(self, peer_id: str):
        if self.peers.pop(peer_id, None) is not None:
            logger.info(f"Peer removed: {peer_id}")
            self.events.put_nowait(PeerEvent(PeerEventType.DISCONNECTED, peer_id))

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Read one envelope and dispatch it"""
        try:
            line = await reader.readline()
            if line:
                await self.handle_envelope(line)
        except (OSError, ValueError) as e:
            # ValueError covers lines over the stream limit
            logger.warning(f"Error reading from connection: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def handle_envelope(self, line: bytes):
        if not self.is_running:
            return

        try:
            envelope = json.loads(line.decode("utf-8"))
            kind = envelope["type"]
            peer_id = envelope["peer_id"]
            listen = envelope["listen"]
            if not isinstance(peer_id, str) or not isinstance(listen, str):
                raise ValueError("peer_id and listen must be strings")
            # peer ids are echoed back in chain responses
            peer_id.encode("utf-8")
        except (ValueError, KeyError, TypeError, RecursionError) as e:
            logger.warning(f"Dropping malformed envelope: {e}")
            return

        if peer_id == self.peer_id:
            return

        try:
            is_new = self._register_peer(peer_id, listen)
        except ConfigError as e:
            logger.warning(f"Dropping envelope with bad listen address: {e}")
            return

        if kind == "hello":
            if is_new:
                peer = self.peers[peer_id]
                await self._send(peer.host, peer.port, self._envelope("hello"))
            return

        if kind != "publish":
            logger.warning(f"Dropping envelope of unknown type {kind!r} from {peer_id}")
            return

        topic = envelope.get("topic")
        if topic not in self.topics:
            return

        try:
            data = bytes.fromhex(envelope.get("data", ""))
        except (ValueError, TypeError) as e:
            logger.warning(f"Dropping message with bad hex payload from {peer_id}: {e}")
            return

        self.events.put_nowait(GossipMessage(source=peer_id, topic=topic, data=data))
