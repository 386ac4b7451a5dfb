"""Choosing between competing side-chain tips."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Protocol

from .block_index import BlockIndex
from .pool_block import ZERO_HASH
from .sidechain_config import MONERO_BLOCK_TIME

if TYPE_CHECKING:
    from .pool_block import PoolBlock

log = logging.getLogger(__name__)


class _MainChain(Protocol):
    def chainmain_height(self, prev_id: bytes) -> Optional[int]: ...

    def miner_height(self) -> int: ...


def is_longer_chain(
    block: Optional["PoolBlock"],
    candidate: Optional["PoolBlock"],
    index: BlockIndex,
    window_size: int,
    target_block_time: int,
    mainchain: _MainChain,
) -> tuple[bool, bool]:
    """Whether ``candidate`` has a longer (harder) chain than ``block``.

    Returns ``(is_longer, is_alternative)``; ``is_alternative`` is True when the
    two blocks are not on the same chain.
    """
    if candidate is None or not candidate.verified or candidate.invalid:
        return False, False

    if block is None:
        return True, True

    block_ancestor: Optional[PoolBlock] = block
    while (
        block_ancestor is not None
        and block_ancestor.sidechain_height > candidate.sidechain_height
    ):
        parent_id = block_ancestor.parent
        block_ancestor = index.get_parent(block_ancestor)
        if block_ancestor is None:
            log.debug("couldn't find ancestor %s of block %s", parent_id.hex(),
                      block.sidechain_id.hex())

    if block_ancestor is not None:
        candidate_ancestor: Optional[PoolBlock] = candidate
        while candidate_ancestor.sidechain_height > block_ancestor.sidechain_height:
            parent_id = candidate_ancestor.parent
            candidate_ancestor = index.get_parent(candidate_ancestor)
            if candidate_ancestor is None:
                log.debug("couldn't find ancestor %s of block %s", parent_id.hex(),
                          candidate.sidechain_id.hex())
                break

        while block_ancestor is not None and candidate_ancestor is not None:
            if block_ancestor.parent == candidate_ancestor.parent:
                return block.cumulative_difficulty < candidate.cumulative_difficulty, False
            block_ancestor = index.get_parent(block_ancestor)
            candidate_ancestor = index.get_parent(candidate_ancestor)

    # Different chains: compare total difficulty over the last window of blocks.
    block_total = 0
    candidate_total = 0
    old_chain: Optional[PoolBlock] = block
    new_chain: Optional[PoolBlock] = candidate
    candidate_mainchain_height = 0
    candidate_mainchain_min_height = 0
    mainchain_prev_id = ZERO_HASH

    for _ in range(window_size):
        if old_chain is None and new_chain is None:
            break
        if old_chain is not None:
            block_total += old_chain.difficulty
            old_chain = index.get_parent(old_chain)
        if new_chain is not None:
            if candidate_mainchain_min_height:
                candidate_mainchain_min_height = min(
                    candidate_mainchain_min_height, new_chain.txin_gen_height
                )
            else:
                candidate_mainchain_min_height = new_chain.txin_gen_height
            candidate_total += new_chain.difficulty
            if new_chain.prev_id != mainchain_prev_id:
                height = mainchain.chainmain_height(new_chain.prev_id)
                if height is not None:
                    mainchain_prev_id = new_chain.prev_id
                    candidate_mainchain_height = max(candidate_mainchain_height, height)
            new_chain = index.get_parent(new_chain)

    if block_total >= candidate_total:
        return False, True

    current_height = mainchain.miner_height()
    if candidate_mainchain_height + 10 < current_height:
        log.warning(
            "received a longer alternative chain but it's stale: height %d, current height %d",
            candidate_mainchain_height,
            current_height,
        )
        return False, True

    limit = window_size * 4 * target_block_time // MONERO_BLOCK_TIME
    if candidate_mainchain_min_height + limit < current_height:
        log.warning(
            "received a longer alternative chain but it's stale: min height %d, must be >= %d",
            candidate_mainchain_min_height,
            current_height - limit,
        )
        return False, True

    log.info(
        "received a longer alternative chain: height %d -> %d, cumulative difficulty %d -> %d",
        block.sidechain_height,
        candidate.sidechain_height,
        block.cumulative_difficulty,
        candidate.cumulative_difficulty,
    )
    return True, True