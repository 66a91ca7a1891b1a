"""
Proof-of-work mining
"""

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Optional, Tuple

from .block import Block, calculate_hash
from ..config.settings import DEFAULT_DIFFICULTY_PREFIX, DEFAULT_PROGRESS_INTERVAL

logger = logging.getLogger(__name__)


class MiningCancelled(Exception):
    """Raised when a nonce search is stopped before a solution is found"""
    pass


def hash_to_binary(digest: bytes) -> str:
    """Binary expansion of a digest, one unpadded group per byte

    Byte 0 contributes "0" and byte 5 contributes "101". Peers compare
    prefixes of this exact string, so the missing padding is part of the
    difficulty rule and must be kept.
    """
    return "".join(format(byte, "b") for byte in digest)


def meets_difficulty(hex_hash: str, difficulty_prefix: str = DEFAULT_DIFFICULTY_PREFIX) -> bool:
    """Check a hex hash against the difficulty prefix"""
    try:
        digest = bytes.fromhex(hex_hash)
    except ValueError:
        return False
    return hash_to_binary(digest).startswith(difficulty_prefix)


def mine_block(
    id: int,
    timestamp: int,
    previous_hash: str,
    data: str,
    difficulty_prefix: str = DEFAULT_DIFFICULTY_PREFIX,
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    cancel_event: Optional[threading.Event] = None
) -> Tuple[int, str]:
    """Search nonces from 0 upward until the hash meets the difficulty

    Returns:
        Tuple of (nonce, hex hash)

    Raises:
        MiningCancelled: if cancel_event is set during the search
    """
    logger.info("mining block...")
    nonce = 0

    while True:
        if nonce % progress_interval == 0:
            logger.info(f"nonce: {nonce}")
            if cancel_event is not None and cancel_event.is_set():
                raise MiningCancelled(f"Mining of block {id} cancelled at nonce {nonce}")

        digest = calculate_hash(id, timestamp, previous_hash, data, nonce)
        binary_hash = hash_to_binary(digest)

        if binary_hash.startswith(difficulty_prefix):
            logger.info(
                f"mined! nonce: {nonce}, hash: {digest.hex()}, binary hash: {binary_hash}"
            )
            return nonce, digest.hex()

        nonce += 1


def new_block(
    id: int,
    previous_hash: str,
    data: str,
    difficulty_prefix: str = DEFAULT_DIFFICULTY_PREFIX,
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    cancel_event: Optional[threading.Event] = None,
    timestamp: Optional[int] = None
) -> Block:
    """Mine a block extending previous_hash with the given payload"""
    if timestamp is None:
        timestamp = int(time.time())
    nonce, block_hash = mine_block(
        id, timestamp, previous_hash, data,
        difficulty_prefix=difficulty_prefix,
        progress_interval=progress_interval,
        cancel_event=cancel_event
    )
    return Block(
        id=id,
        hash=block_hash,
        previous_hash=previous_hash,
        timestamp=timestamp,
        data=data,
        nonce=nonce,
    )


class Miner:
    """Runs nonce searches on a worker thread so the event loop stays responsive"""

    def __init__(
        self,
        difficulty_prefix: str = DEFAULT_DIFFICULTY_PREFIX,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    ):
        self.difficulty_prefix = difficulty_prefix
        self.progress_interval = progress_interval
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="miner")
        self._cancel = threading.Event()
        self.total_mined = 0

    def mine(self, previous: Block, data: str) -> Block:
        """Mine the successor of previous, blocking the caller"""
        block = new_block(
            previous.id + 1,
            previous.hash,
            data,
            difficulty_prefix=self.difficulty_prefix,
            progress_interval=self.progress_interval,
            cancel_event=self._cancel
        )
        self.total_mined += 1
        return block

    async def mine_async(self, previous: Block, data: str) -> Block:
        """Mine the successor of previous on the worker thread"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor, partial(self.mine, previous, data)
        )

    def stop(self):
        """Cancel any running search and release the worker"""
        logger.info("Stopping miner...")
        self._cancel.set()
        self.executor.shutdown(wait=False)
