"""
Ledger state: the local chain and the only operations allowed to change it
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .block import Block, create_genesis_block
from .block_validator import BlockValidator
from ..sync.fork_resolver import ForkResolver, ForkResolution

logger = logging.getLogger(__name__)


class Blockchain:
    """Owns the local chain. Extension and replacement both go through validation."""

    def __init__(self, validator: Optional[BlockValidator] = None):
        self.validator = validator or BlockValidator()
        self.fork_resolver = ForkResolver(self.validator)
        self._blocks: List[Block] = []

    @property
    def chain(self) -> Tuple[Block, ...]:
        """Read-only snapshot of the chain"""
        return tuple(self._blocks)

    def __len__(self) -> int:
        return len(self._blocks)

    def genesis(self) -> bool:
        """Seed the chain with the genesis block if it is empty"""
        if self._blocks:
            return False
        self._blocks.append(create_genesis_block())
        logger.info("Chain seeded with genesis block")
        return True

    def get_latest_block(self) -> Optional[Block]:
        if not self._blocks:
            return None
        return self._blocks[-1]

    def try_add_block(self, block: Block) -> bool:
        """Append block if it validly extends the tail, otherwise drop it"""
        latest_block = self.get_latest_block()
        if latest_block is None:
            logger.error(f"could not add block {block.id} - chain has no genesis block")
            return False

        if not self.validator.is_block_valid(block, latest_block):
            logger.error("could not add block - invalid")
            return False

        self._blocks.append(block)
        logger.info(f"Block {block.id} added to chain ({block.hash[:16]}...)")
        return True

    def choose_chain(self, local: Sequence[Block], remote: Sequence[Block]) -> ForkResolution:
        return self.fork_resolver.resolve(local, remote)

    def sync_with(self, remote: Sequence[Block]) -> bool:
        """Replace the local chain by remote if it wins fork resolution

        Returns:
            True if the chain was replaced

        Raises:
            ChainSelectionError: if both chains are invalid. The local chain
                is left untouched.
        """
        resolution = self.choose_chain(self._blocks, remote)
        if resolution.winning_chain == self._blocks:
            logger.info(f"Keeping local chain: {resolution.reason}")
            return False

        # single assignment, readers never see a partial chain
        self._blocks = resolution.winning_chain
        logger.info(f"Local chain replaced ({resolution.reason}), new length {len(self._blocks)}")
        return True
