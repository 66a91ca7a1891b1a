"""
Node startup script
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from ..config.logging_config import setup_logging
from ..config.settings import ConfigError, NodeConfig, load_config, parse_peer_address
from ..network.identity import NodeIdentity
from ..network.p2p_network import P2PNetwork
from ..sync.chain_sync import ChainSyncNode
from ..sync.fork_resolver import ChainSelectionError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Proof-of-work ledger node. Commands on stdin: 'ls p', 'ls c', 'create b <data>'"
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Address to bind to"
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (0 picks a free port)"
    )
    parser.add_argument(
        "--advertise-host",
        type=str,
        help="Host announced to peers"
    )
    parser.add_argument(
        "--peer",
        action="append",
        default=[],
        metavar="HOST:PORT",
        help="Bootstrap peer, may be repeated"
    )
    parser.add_argument(
        "--difficulty-prefix",
        type=str,
        help="Binary prefix required of block hashes"
    )
    parser.add_argument(
        "--foreground-mining",
        action="store_true",
        help="Mine on the event loop, blocking it until a block is found"
    )
    parser.add_argument(
        "--halt-on-invalid-chains",
        action="store_true",
        help="Stop the node when the local and a remote chain are both invalid"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Logging level"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        help="Directory for rotating log files"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> NodeConfig:
    peers = [parse_peer_address(address) for address in args.peer]
    return load_config(
        listen_host=args.host,
        listen_port=args.port,
        advertise_host=args.advertise_host,
        bootstrap_peers=peers or None,
        difficulty_prefix=args.difficulty_prefix,
        mine_in_background=False if args.foreground_mining else None,
        halt_on_invalid_chains=True if args.halt_on_invalid_chains else None,
        log_level=args.log_level,
        log_dir=args.log_dir,
    )


async def read_input(node: ChainSyncNode):
    """Feed stdin lines to the node until EOF"""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    except (ValueError, OSError) as e:
        logger.error(f"Cannot read commands from stdin: {e}")
        return

    while True:
        line = await reader.readline()
        if not line:
            logger.info("stdin closed, no more commands will be read")
            return
        node.submit_input(line.decode("utf-8", errors="replace"))


async def run_node(config: NodeConfig) -> int:
    identity = NodeIdentity.generate()
    setup_logging(config.log_dir, config.numeric_log_level, identity.peer_id)

    transport = P2PNetwork(
        identity.peer_id,
        host=config.listen_host,
        port=config.listen_port,
        advertise_host=config.advertise_host,
        bootstrap_peers=config.bootstrap_peers
    )
    node = ChainSyncNode(transport, config=config)

    input_task = asyncio.ensure_future(read_input(node))
    input_task.add_done_callback(lambda task: _stop_on_input_error(task, node))
    try:
        await node.run()
    finally:
        input_task.cancel()

    if input_task.done() and not input_task.cancelled() and input_task.exception():
        return 1
    return 0


def _stop_on_input_error(task: asyncio.Task, node: ChainSyncNode):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.critical(f"can't read line from stdin: {error}")
        node.stop()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        parser.error(str(e))

    try:
        return asyncio.run(run_node(config))
    except KeyboardInterrupt:
        logger.info("Program terminated by user")
        return 0
    except ChainSelectionError as e:
        logger.critical(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
