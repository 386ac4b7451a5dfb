"""Block depth bookkeeping and pruning of old side-chain blocks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from .block_index import UNCLE_BLOCK_DEPTH, BlockIndex
from .sidechain_config import MONERO_BLOCK_TIME

if TYPE_CHECKING:
    from .pool_block import PoolBlock

log = logging.getLogger(__name__)


def update_depths(
    block: "PoolBlock",
    index: BlockIndex,
    window_size: int,
    on_verify: Callable[["PoolBlock"], None],
) -> None:
    """Update the depth of ``block`` from its children and propagate it downwards.

    ``on_verify`` is called for every unverified block that is known to be
    verifiable: the genesis block or one deeper than twice the window.
    """
    for distance in range(1, UNCLE_BLOCK_DEPTH + 1):
        for child in index.at_height(block.sidechain_height + distance):
            if child.parent == block.sidechain_id:
                if distance != 1:
                    log.error("blocks by height are inconsistent with child's parent")
                else:
                    block.depth = max(block.depth, child.depth + 1)
            if block.sidechain_id in child.uncles:
                block.depth = max(block.depth, child.depth + distance)

    pending = [block]
    while pending:
        current = pending.pop()

        if not current.verified and (
            current.depth >= window_size * 2 or current.sidechain_height == 0
        ):
            on_verify(current)

        parent = index.get(current.parent)
        if parent is not None:
            if parent.sidechain_height + 1 != current.sidechain_height:
                log.error("side-chain height is inconsistent with the block's parent")
            if parent.depth < current.depth + 1:
                parent.depth = current.depth + 1
                pending.append(parent)

        for uncle_id in current.uncles:
            uncle = index.get(uncle_id)
            if uncle is None:
                continue
            if (
                uncle.sidechain_height >= current.sidechain_height
                or uncle.sidechain_height + UNCLE_BLOCK_DEPTH < current.sidechain_height
            ):
                log.error("side-chain height is inconsistent with the block's uncles")
            distance = current.sidechain_height - uncle.sidechain_height
            if uncle.depth < current.depth + distance:
                uncle.depth = current.depth + distance
                pending.append(uncle)


def prune_old_blocks(
    tip: "PoolBlock",
    index: BlockIndex,
    window_size: int,
    target_block_time: int,
    now: int,
    on_prune: Callable[["PoolBlock"], None],
) -> int:
    """Remove blocks far below ``tip`` from the index; return how many were removed.

    A block is removed if it is deep enough or old enough; ``on_prune`` is called
    for each removed block.
    """
    # Two PPLNS windows plus two minutes of spare blocks for lagging nodes.
    prune_distance = window_size * 2 + MONERO_BLOCK_TIME // target_block_time
    prune_delay = window_size * 4 * target_block_time

    if tip.sidechain_height < prune_distance:
        return 0

    max_height = tip.sidechain_height - prune_distance
    pruned = 0
    for height in index.heights():
        if height > max_height:
            break
        for block in index.at_height(height):
            if block.depth >= prune_distance or now >= block.local_timestamp + prune_delay:
                index.remove(block)
                on_prune(block)
                pruned += 1

    if pruned:
        log.debug("pruned %d old blocks at heights <= %d", pruned, max_height)
    return pruned