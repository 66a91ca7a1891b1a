"""
Chain synchronization state machine

A node reacts to one event at a time. Events come from independent sources
(startup timer, user input, locally prepared chain responses, finished
mining jobs and the gossip transport) and whichever source is ready first
is served first. All changes to the local chain happen inside
handle_event, on the event loop, so no locking is needed.
"""

import asyncio
import json
from typing import Callable, Dict, Optional, Sequence

from .events import Event, InitEvent, InputEvent, LocalChainResponseEvent, BlockMinedEvent
from .fork_resolver import ChainSelectionError
from ..cli.commands import CommandType, UnknownCommandError, parse_command
from ..config.logging_config import get_component_logger
from ..config.settings import NodeConfig
from ..core.block import Block, chain_to_list
from ..core.block_validator import BlockValidator
from ..core.blockchain import Blockchain
from ..core.miner import Miner, MiningCancelled
from ..network.gossip_protocol import (
    CHAIN_TOPIC,
    ChainMessage,
    ChainRequest,
    ChainResponse,
    MessageDecodeError,
    decode_message,
    encode_message,
)
from ..network.transport import GossipMessage, GossipTransport


class ChainSyncNode:
    """Drives the local ledger and the gossip transport"""

    def __init__(
        self,
        transport: GossipTransport,
        config: Optional[NodeConfig] = None,
        blockchain: Optional[Blockchain] = None,
        miner: Optional[Miner] = None,
        output: Callable[[str], None] = print
    ):
        self.config = config or NodeConfig()
        self.transport = transport
        self.peer_id = transport.peer_id
        self.blockchain = blockchain or Blockchain(BlockValidator(self.config.difficulty_prefix))
        self.miner = miner or Miner(self.config.difficulty_prefix, self.config.progress_interval)
        self.output = output
        self.logger = get_component_logger("sync", node_id=self.peer_id)

        self.init_queue: asyncio.Queue = asyncio.Queue()
        self.input_queue: asyncio.Queue = asyncio.Queue()
        self.response_queue: asyncio.Queue = asyncio.Queue()
        self.mined_queue: asyncio.Queue = asyncio.Queue()
        self._sources: Dict[str, asyncio.Queue] = {
            "init": self.init_queue,
            "input": self.input_queue,
            "response": self.response_queue,
            "mined": self.mined_queue,
            "network": transport.events,
        }

        self._tasks = set()
        self._stopped = asyncio.Event()

        transport.subscribe(CHAIN_TOPIC)

    # ----------------------
    # Event loop
    # ----------------------
    async def run(self):
        """Serve events until stop() is called"""
        await self.transport.start()
        self.logger.info(f"Peer Id: {self.peer_id}")
        self._spawn(self._startup_timer())

        getters: Dict[str, asyncio.Future] = {}
        stop_waiter = asyncio.ensure_future(self._stopped.wait())
        try:
            while not self._stopped.is_set():
                for name, queue in self._sources.items():
                    if name not in getters:
                        getters[name] = asyncio.ensure_future(queue.get())

                done, _ = await asyncio.wait(
                    list(getters.values()) + [stop_waiter],
                    return_when=asyncio.FIRST_COMPLETED
                )

                for name, getter in list(getters.items()):
                    if getter in done:
                        del getters[name]
                        await self.handle_event(getter.result())
        finally:
            stop_waiter.cancel()
            for getter in getters.values():
                getter.cancel()
            for task in list(self._tasks):
                task.cancel()
            self.miner.stop()
            await self.transport.stop()
            self.logger.info("Node stopped")

    def stop(self):
        self._stopped.set()

    def submit_input(self, line: str):
        """Queue a line typed by the user"""
        self.input_queue.put_nowait(InputEvent(line))

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _startup_timer(self):
        await asyncio.sleep(self.config.init_delay)
        self.logger.info("sending init event")
        self.init_queue.put_nowait(InitEvent())

    # ----------------------
    # Dispatch
    # ----------------------
    async def handle_event(self, event: Event):
        if isinstance(event, InitEvent):
            await self.handle_init()
        elif isinstance(event, InputEvent):
            await self.handle_input(event.line)
        elif isinstance(event, LocalChainResponseEvent):
            await self.publish(event.response)
        elif isinstance(event, BlockMinedEvent):
            await self.handle_mined_block(event.block)
        elif isinstance(event, GossipMessage):
            await self.handle_gossip(event)
        else:
            self.logger.info(f"Unhandled network event: {event}")

    async def handle_init(self):
        peers = self.transport.list_peers()

        self.blockchain.genesis()
        self.logger.info(f"connected nodes: {len(peers)}")

        if peers:
            request = ChainRequest(from_peer_id=peers[-1])
            self.logger.info(f"requesting chain from {request.from_peer_id}")
            await self.publish(request)

    async def handle_input(self, line: str):
        try:
            command = parse_command(line)
        except UnknownCommandError as e:
            self.logger.error(str(e))
            return

        if command.type == CommandType.LIST_PEERS:
            self.print_peers()
        elif command.type == CommandType.LIST_CHAIN:
            self.print_chain()
        elif command.type == CommandType.CREATE_BLOCK:
            await self.create_block(command.payload)

    async def handle_gossip(self, message: GossipMessage):
        if message.topic != CHAIN_TOPIC:
            self.logger.info(f"Ignoring message on topic {message.topic} from {message.source}")
            return

        try:
            payload = decode_message(message.data)
        except MessageDecodeError as e:
            self.logger.warning(f"Dropping malformed message from {message.source}: {e}")
            return

        await self.handle_chain_message(payload, message.source)

    async def handle_chain_message(self, payload: ChainMessage, source: str):
        if isinstance(payload, ChainResponse):
            if payload.receiver == self.peer_id:
                self.logger.info(f"Response from {source}: {len(payload.chain)} blocks")
                self.sync_chain(payload.chain)

        elif isinstance(payload, ChainRequest):
            if payload.from_peer_id == self.peer_id:
                self.logger.info(f"sending local chain to {source}")
                response = ChainResponse(receiver=source, chain=list(self.blockchain.chain))
                self.response_queue.put_nowait(LocalChainResponseEvent(response))

        elif isinstance(payload, list):
            self.logger.info(f"received chain of {len(payload)} blocks from {source}")
            self.sync_chain(payload)

        else:
            self.logger.info(f"received new block {payload.id} from {source}")
            self.blockchain.try_add_block(payload)

    def sync_chain(self, remote: Sequence[Block]) -> bool:
        """Run fork resolution against a peer's chain"""
        try:
            return self.blockchain.sync_with(remote)
        except ChainSelectionError as e:
            self.logger.critical(f"{e}; keeping local chain of {len(self.blockchain)} blocks")
            if self.config.halt_on_invalid_chains:
                raise
            return False

    # ----------------------
    # Commands
    # ----------------------
    def print_peers(self):
        self.output("Discovered Peers:")
        for peer_id in self.transport.list_peers():
            self.output(peer_id)

    def print_chain(self):
        self.output("Local Blockchain:")
        self.output(json.dumps(chain_to_list(self.blockchain.chain), indent=2, ensure_ascii=False))

    async def create_block(self, data: str):
        latest_block = self.blockchain.get_latest_block()
        if latest_block is None:
            self.logger.error("cannot create a block before the genesis block is seeded")
            return

        if self.config.mine_in_background:
            self._spawn(self._mine_in_background(latest_block, data))
        else:
            # blocks the whole loop until a nonce is found
            block = self.miner.mine(latest_block, data)
            await self.handle_mined_block(block)

    async def _mine_in_background(self, latest_block: Block, data: str):
        try:
            block = await self.miner.mine_async(latest_block, data)
        except MiningCancelled as e:
            self.logger.info(str(e))
            return
        self.mined_queue.put_nowait(BlockMinedEvent(block))

    async def handle_mined_block(self, block: Block):
        if self.blockchain.try_add_block(block):
            self.logger.info("broadcasting new block")
            await self.publish(list(self.blockchain.chain))
        else:
            self.logger.warning(f"mined block {block.id} no longer extends the local chain")

    async def publish(self, message: ChainMessage):
        await self.transport.publish(CHAIN_TOPIC, encode_message(message))
