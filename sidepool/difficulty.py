"""Side-chain difficulty calculation over the PPLNS window."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .block_index import BlockIndex, SideChainError
from .pool_block import DifficultyData

if TYPE_CHECKING:
    from .pool_block import PoolBlock

log = logging.getLogger(__name__)

_MASK32 = (1 << 32) - 1
_MASK64 = (1 << 64) - 1


def _collect(tip: "PoolBlock", index: BlockIndex, window_size: int) -> list[DifficultyData]:
    data: list[DifficultyData] = []
    current = tip
    depth = 0
    while True:
        data.append(DifficultyData(current.timestamp, current.cumulative_difficulty))
        for uncle_id in current.uncles:
            uncle = index.get(uncle_id)
            if uncle is None:
                raise SideChainError(
                    f"can't find uncle block {uncle_id.hex()} at height "
                    f"{current.sidechain_height} for block {tip.sidechain_id.hex()}"
                )
            if 0 <= tip.sidechain_height - uncle.sidechain_height < window_size:
                data.append(DifficultyData(uncle.timestamp, uncle.cumulative_difficulty))

        depth += 1
        if depth >= window_size or current.sidechain_height == 0:
            return data

        parent = index.get(current.parent)
        if parent is None:
            raise SideChainError(
                f"can't find parent block {current.parent.hex()} at height "
                f"{current.sidechain_height - 1} for block {tip.sidechain_id.hex()}"
            )
        current = parent


def get_difficulty(
    tip: "PoolBlock",
    index: BlockIndex,
    window_size: int,
    target_block_time: int,
    min_difficulty: int,
) -> int:
    """Difficulty of the next block after ``tip``.

    The 10% oldest and 10% newest timestamps in the window are discarded. Raises
    SideChainError if a block in the window is unknown or the result doesn't fit in
    64 bits.
    """
    data = _collect(tip, index, window_size)

    oldest = min(d.timestamp for d in data)
    offsets = sorted((d.timestamp - oldest) & _MASK32 for d in data)

    cut_size = (len(data) + 9) // 10
    timestamp1 = oldest + offsets[cut_size - 1]
    timestamp2 = oldest + offsets[len(data) - cut_size]
    delta_t = timestamp2 - timestamp1 if timestamp2 > timestamp1 else 1

    in_range = [
        d.cumulative_difficulty
        for d in data
        if timestamp1 <= d.timestamp <= timestamp2
    ]
    delta_diff = (max(in_range) - min(in_range)) & _MASK64

    product = delta_diff * target_block_time
    if (product >> 64) >= delta_t:
        raise SideChainError(
            f"calculated difficulty is too high for block at height "
            f"{tip.sidechain_height}, id {tip.sidechain_id.hex()}"
        )

    return max(product // delta_t, min_difficulty)