import pytest

from gossipchain.config.settings import NodeConfig
from gossipchain.core.block import create_genesis_block
from gossipchain.core.block_validator import BlockValidator
from gossipchain.core.miner import new_block
from gossipchain.network.memory import MemoryHub, MemoryTransport
from gossipchain.sync.chain_sync import ChainSyncNode

# one leading zero byte, about 256 attempts per block
TEST_PREFIX = "0"


@pytest.fixture
def validator():
    return BlockValidator(TEST_PREFIX)


@pytest.fixture
def genesis():
    return create_genesis_block(timestamp=1700000000)


@pytest.fixture
def mine_chain(genesis):
    """Factory building a valid chain of the requested length, genesis included"""
    def _mine(length, label="block", base=None):
        chain = list(base) if base else [genesis]
        while len(chain) < length:
            previous = chain[-1]
            chain.append(new_block(
                previous.id + 1,
                previous.hash,
                f"{label} {previous.id + 1}",
                difficulty_prefix=TEST_PREFIX,
                timestamp=1700000000 + previous.id + 1
            ))
        return chain
    return _mine


@pytest.fixture
def node_config():
    return NodeConfig(
        difficulty_prefix=TEST_PREFIX,
        init_delay=0.01,
        mine_in_background=False
    )


@pytest.fixture
def hub():
    return MemoryHub()


@pytest.fixture
def make_node(hub, node_config):
    """Factory for nodes attached to the shared in-memory hub.

    Must be called from inside a running event loop.
    """
    created = []

    async def _make(peer_id, config=None, output=None):
        transport = MemoryTransport(peer_id, hub)
        node = ChainSyncNode(
            transport,
            config=config or node_config,
            output=output or (lambda line: None)
        )
        await transport.start()
        created.append(node)
        return node

    yield _make

    for node in created:
        node.miner.stop()


@pytest.fixture
def drain():
    """Process queued events on the given nodes until all are quiet"""
    async def _drain(*nodes):
        progressed = True
        while progressed:
            progressed = False
            for node in nodes:
                for queue in (node.transport.events, node.response_queue, node.mined_queue):
                    while not queue.empty():
                        await node.handle_event(queue.get_nowait())
                        progressed = True
    return _drain
