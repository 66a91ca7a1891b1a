import asyncio
import dataclasses
import json
import logging
import pytest

from gossipchain.config.settings import NodeConfig
from gossipchain.network.gossip_protocol import (
    CHAIN_TOPIC,
    ChainRequest,
    ChainResponse,
    decode_message,
    encode_message,
)
from gossipchain.network.transport import GossipMessage, PeerEvent, PeerEventType
from gossipchain.sync.events import BlockMinedEvent, InitEvent, InputEvent
from gossipchain.sync.fork_resolver import ChainSelectionError

TEST_PREFIX = "0"


def published(node):
    return [decode_message(message.data) for message in node.transport.published]


@pytest.mark.asyncio
async def test_init_without_peers_seeds_genesis_only(make_node):
    node = await make_node("alone")
    await node.handle_event(InitEvent())

    assert len(node.blockchain) == 1
    assert node.blockchain.chain[0].data == "genesis!"
    assert node.transport.published == []


@pytest.mark.asyncio
async def test_init_requests_chain_from_most_recent_peer(make_node):
    await make_node("first")
    await make_node("second")
    node = await make_node("third")

    await node.handle_event(InitEvent())

    assert published(node) == [ChainRequest(from_peer_id="second")]


@pytest.mark.asyncio
async def test_request_response_cycle_adopts_longer_chain(make_node, drain, mine_chain):
    serving = await make_node("serving")
    serving.blockchain.sync_with(mine_chain(4, "serving"))
    joining = await make_node("joining")

    await joining.handle_event(InitEvent())
    await drain(serving, joining)

    assert joining.blockchain.chain == serving.blockchain.chain
    responses = [m for m in published(serving) if isinstance(m, ChainResponse)]
    assert responses[0].receiver == "joining"


@pytest.mark.asyncio
async def test_request_for_another_peer_is_ignored(make_node):
    node = await make_node("me")
    message = GossipMessage("other", CHAIN_TOPIC, encode_message(ChainRequest(from_peer_id="someone-else")))

    await node.handle_event(message)

    assert node.response_queue.empty()


@pytest.mark.asyncio
async def test_response_for_another_peer_is_ignored(make_node, mine_chain):
    node = await make_node("me")
    await node.handle_event(InitEvent())
    response = ChainResponse(receiver="someone-else", chain=mine_chain(5))

    await node.handle_event(GossipMessage("other", CHAIN_TOPIC, encode_message(response)))

    assert len(node.blockchain) == 1


@pytest.mark.asyncio
async def test_create_block_appends_and_broadcasts_chain(make_node, drain):
    miner = await make_node("miner")
    watcher = await make_node("watcher")
    for node in (miner, watcher):
        await node.handle_event(InitEvent())
    await drain(miner, watcher)

    await miner.handle_event(InputEvent("create b hello world\n"))
    await drain(miner, watcher)

    assert len(miner.blockchain) == 2
    block = miner.blockchain.get_latest_block()
    assert block.data == " hello world"
    assert isinstance(published(miner)[-1], list)
    assert watcher.blockchain.chain == miner.blockchain.chain


@pytest.mark.asyncio
async def test_background_mining_posts_result_to_loop(make_node, node_config):
    config = dataclasses.replace(node_config, mine_in_background=True)
    node = await make_node("background", config=config)
    await node.handle_event(InitEvent())

    await node.handle_event(InputEvent("create b later"))
    event = await asyncio.wait_for(node.mined_queue.get(), timeout=30)
    assert isinstance(event, BlockMinedEvent)
    assert len(node.blockchain) == 1

    await node.handle_event(event)
    assert len(node.blockchain) == 2


@pytest.mark.asyncio
async def test_stale_mined_block_is_dropped(make_node, mine_chain):
    node = await make_node("stale")
    await node.handle_event(InitEvent())
    stale = node.miner.mine(node.blockchain.get_latest_block(), "stale")

    node.blockchain.sync_with(mine_chain(3, "remote"))
    await node.handle_event(BlockMinedEvent(stale))

    assert len(node.blockchain) == 3
    assert node.transport.published == []


@pytest.mark.asyncio
async def test_bare_block_message_extends_chain(make_node, mine_chain):
    node = await make_node("me")
    await node.handle_event(InitEvent())
    block = mine_chain(2)[1]

    await node.handle_event(GossipMessage("other", CHAIN_TOPIC, encode_message(block)))

    assert node.blockchain.get_latest_block() == block


@pytest.mark.asyncio
async def test_invalid_chain_broadcast_is_rejected(make_node, mine_chain):
    node = await make_node("me")
    await node.handle_event(InitEvent())
    remote = mine_chain(4, "remote")
    remote[2] = dataclasses.replace(remote[2], data="forged")

    await node.handle_event(GossipMessage("other", CHAIN_TOPIC, encode_message(remote)))

    assert len(node.blockchain) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    b"not json",
    b"\xff\xfe",
    b'{"unexpected": true}',
    b'[{"id": "x"}]',
    b"42",
    b"[" * 100000,
    b"9" * 5000,
    b'{"from_peer_id": "x", "n": ' + b"9" * 5000 + b"}",
])
async def test_malformed_messages_are_dropped(make_node, payload):
    node = await make_node("me")
    await node.handle_event(InitEvent())

    await node.handle_event(GossipMessage("other", CHAIN_TOPIC, payload))

    assert len(node.blockchain) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("as_chain", [False, True])
async def test_block_with_unencodable_text_is_dropped(make_node, as_chain):
    node = await make_node("me")
    await node.handle_event(InitEvent())
    tail = node.blockchain.get_latest_block()
    # passes the link, difficulty and id checks, only the hash recompute would see it
    forged = {
        "id": tail.id + 1,
        "hash": "00" * 32,
        "previous_hash": tail.hash,
        "timestamp": 1,
        "data": "\ud800",
        "nonce": 0,
    }
    payload = [tail.to_dict(), forged] if as_chain else forged

    await node.handle_event(GossipMessage("other", CHAIN_TOPIC, json.dumps(payload).encode()))

    assert list(node.blockchain.chain) == [tail]


@pytest.mark.asyncio
async def test_both_chains_invalid_keeps_local(make_node, mine_chain, caplog):
    node = await make_node("me")
    local = mine_chain(3, "local")
    local[1] = dataclasses.replace(local[1], data="corrupted")
    node.blockchain._blocks = list(local)
    remote = mine_chain(3, "remote")
    remote[1] = dataclasses.replace(remote[1], data="corrupted")

    with caplog.at_level(logging.CRITICAL):
        await node.handle_event(GossipMessage("other", CHAIN_TOPIC, encode_message(remote)))

    assert list(node.blockchain.chain) == local
    assert "both invalid" in caplog.text


@pytest.mark.asyncio
async def test_both_chains_invalid_can_halt(make_node, node_config, mine_chain):
    config = dataclasses.replace(node_config, halt_on_invalid_chains=True)
    node = await make_node("me", config=config)
    local = mine_chain(3, "local")
    local[1] = dataclasses.replace(local[1], data="corrupted")
    node.blockchain._blocks = list(local)
    remote = list(local)

    with pytest.raises(ChainSelectionError):
        await node.handle_event(GossipMessage("other", CHAIN_TOPIC, encode_message(remote)))


@pytest.mark.asyncio
async def test_list_commands_write_output(make_node):
    lines = []
    await make_node("peer-a")
    node = await make_node("me", output=lines.append)
    await node.handle_event(InitEvent())

    await node.handle_event(InputEvent("ls p"))
    assert lines[:2] == ["Discovered Peers:", "peer-a"]

    lines.clear()
    await node.handle_event(InputEvent("ls chain"))
    assert lines[0] == "Local Blockchain:"
    assert json.loads(lines[1])[0]["data"] == "genesis!"


@pytest.mark.asyncio
async def test_unknown_command_is_reported(make_node, caplog):
    node = await make_node("me")
    with caplog.at_level(logging.ERROR):
        await node.handle_event(InputEvent("make coffee"))
    assert "unknown command" in caplog.text


@pytest.mark.asyncio
async def test_create_block_before_genesis_is_refused(make_node):
    node = await make_node("me")
    await node.handle_event(InputEvent("create b too early"))
    assert len(node.blockchain) == 0


@pytest.mark.asyncio
async def test_peer_events_are_only_logged(make_node, caplog):
    node = await make_node("me")
    with caplog.at_level(logging.INFO):
        await node.handle_event(PeerEvent(PeerEventType.CONNECTED, "new-peer"))
    assert "Unhandled network event" in caplog.text


@pytest.mark.asyncio
async def test_running_nodes_converge(hub, node_config):
    from gossipchain.network.memory import MemoryTransport
    from gossipchain.sync.chain_sync import ChainSyncNode

    first = ChainSyncNode(MemoryTransport("first", hub), config=node_config, output=lambda line: None)
    first_task = asyncio.ensure_future(first.run())
    await asyncio.sleep(0.05)
    first.submit_input("create b from first")

    second = ChainSyncNode(MemoryTransport("second", hub), config=node_config, output=lambda line: None)
    second_task = asyncio.ensure_future(second.run())

    try:
        for _ in range(200):
            if len(second.blockchain) == 2:
                break
            await asyncio.sleep(0.05)
        assert second.blockchain.chain == first.blockchain.chain
    finally:
        first.stop()
        second.stop()
        await asyncio.wait_for(asyncio.gather(first_task, second_task), timeout=10)
