import logging
from typing import Sequence

from .block import Block
from .miner import meets_difficulty
from ..config.settings import DEFAULT_DIFFICULTY_PREFIX

logger = logging.getLogger(__name__)


class ValidationResult:
    def __init__(self, valid: bool, reason: str = ""):
        self.valid = valid
        self.reason = reason

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        return f"ValidationResult(valid={self.valid}, reason={self.reason!r})"


class BlockValidator:
    """Checks blocks against their predecessor and whole chains pairwise"""

    def __init__(self, difficulty_prefix: str = DEFAULT_DIFFICULTY_PREFIX):
        self.difficulty_prefix = difficulty_prefix

    def validate_block(self, block: Block, previous_block: Block) -> ValidationResult:
        """Run the block checks in order, stopping at the first failure"""
        if block.previous_hash != previous_block.hash:
            logger.warning(f"block with id: {block.id} has wrong previous hash")
            return ValidationResult(False, "wrong previous hash")

        if not meets_difficulty(block.hash, self.difficulty_prefix):
            logger.warning(f"block with id: {block.id} has invalid difficulty")
            return ValidationResult(False, "invalid difficulty")

        if block.id != previous_block.id + 1:
            logger.warning(
                f"block with id: {block.id} is not the next block after the latest: {previous_block.id}"
            )
            return ValidationResult(False, "not the next block")

        if block.calculate_hash() != block.hash:
            logger.warning(f"block with id: {block.id} has invalid hash")
            return ValidationResult(False, "invalid hash")

        return ValidationResult(True)

    def is_block_valid(self, block: Block, previous_block: Block) -> bool:
        return self.validate_block(block, previous_block).valid

    def is_chain_valid(self, chain: Sequence[Block]) -> bool:
        """A chain is valid when every adjacent pair is; 0 or 1 blocks always are"""
        for i in range(1, len(chain)):
            if not self.is_block_valid(chain[i], chain[i - 1]):
                return False
        return True
