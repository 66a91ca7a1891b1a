import logging
from dataclasses import dataclass
from typing import List, Sequence

from ..core.block import Block
from ..core.block_validator import BlockValidator

logger = logging.getLogger(__name__)


class ChainSelectionError(Exception):
    """Neither the local nor the remote chain is valid"""
    pass


@dataclass
class ForkResolution:
    winning_chain: List[Block]
    reason: str
    remote_won: bool


class ForkResolver:
    """Longest valid chain wins; on equal length the local chain is kept"""

    def __init__(self, validator: BlockValidator):
        self.validator = validator

    def resolve(self, local: Sequence[Block], remote: Sequence[Block]) -> ForkResolution:
        """Choose between the local chain and a chain received from a peer

        Raises:
            ChainSelectionError: if both chains are invalid
        """
        is_local_valid = self.validator.is_chain_valid(local)
        is_remote_valid = self.validator.is_chain_valid(remote)

        if is_local_valid and is_remote_valid:
            if len(remote) > len(local):
                return ForkResolution(list(remote), "Remote chain is longer", True)
            return ForkResolution(list(local), "Local chain is at least as long", False)

        if is_local_valid:
            logger.warning(f"Rejecting invalid remote chain of length {len(remote)}")
            return ForkResolution(list(local), "Remote chain is invalid", False)

        if is_remote_valid:
            logger.warning(f"Local chain is invalid, adopting remote chain of length {len(remote)}")
            return ForkResolution(list(remote), "Local chain is invalid", True)

        raise ChainSelectionError("local and remote chains are both invalid")
