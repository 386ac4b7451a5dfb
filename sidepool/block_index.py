"""Index of side-chain blocks by id and by height, with chain-walking helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from .pool_block import PoolBlock

UNCLE_BLOCK_DEPTH = 3


class SideChainError(Exception):
    """Raised when side-chain bookkeeping is inconsistent."""


class BlockIndex:
    """Blocks kept by side-chain id and by side-chain height."""

    def __init__(self) -> None:
        self._by_id: dict[bytes, PoolBlock] = {}
        self._by_height: dict[int, list[PoolBlock]] = {}

    def add(self, block: "PoolBlock") -> bool:
        """Add a block; return False if a block with its id is already present."""
        if block.sidechain_id in self._by_id:
            return False
        self._by_id[block.sidechain_id] = block
        self._by_height.setdefault(block.sidechain_height, []).append(block)
        return True

    def get(self, block_id: bytes) -> Optional["PoolBlock"]:
        """Return the block with this id, or None."""
        return self._by_id.get(block_id)

    def get_parent(self, block: Optional["PoolBlock"]) -> Optional["PoolBlock"]:
        """Return the known parent of ``block``, or None."""
        if block is None:
            return None
        return self._by_id.get(block.parent)

    def at_height(self, height: int) -> list["PoolBlock"]:
        """Return the blocks at a side-chain height, in insertion order."""
        return list(self._by_height.get(height, ()))

    def remove(self, block: "PoolBlock") -> None:
        """Remove a block from both indexes."""
        if self._by_id.get(block.sidechain_id) is not block:
            raise SideChainError(
                f"block {block.sidechain_id.hex()} is not in the index"
            )
        del self._by_id[block.sidechain_id]
        height = block.sidechain_height
        remaining = [b for b in self._by_height.get(height, ()) if b is not block]
        if remaining:
            self._by_height[height] = remaining
        else:
            self._by_height.pop(height, None)

    def heights(self) -> list[int]:
        """Return all heights that hold blocks, ascending."""
        return sorted(self._by_height)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._by_id

    def __iter__(self) -> Iterator["PoolBlock"]:
        return iter(list(self._by_id.values()))


def mined_blocks(
    start: Optional["PoolBlock"], index: BlockIndex, height: int
) -> list[bytes]:
    """Ids of blocks and uncles already mined at the heights an uncle may come from.

    Walks up to ``min(UNCLE_BLOCK_DEPTH, height + 1)`` blocks from ``start``.
    """
    result: list[bytes] = []
    current = start
    for _ in range(min(UNCLE_BLOCK_DEPTH, height + 1)):
        if current is None:
            break
        result.append(current.sidechain_id)
        result.extend(current.uncles)
        current = index.get_parent(current)
    return result


def is_same_chain(
    tip: Optional["PoolBlock"], uncle: "PoolBlock", index: BlockIndex, height: int
) -> bool:
    """Whether ``uncle`` shares a recent ancestor with the chain ending at ``tip``.

    ``height`` is the height of the block that would include the uncle.
    """
    current = tip
    while current is not None and current.sidechain_height > uncle.sidechain_height:
        current = index.get_parent(current)
    if current is None or current.sidechain_height < uncle.sidechain_height:
        return False

    other: Optional[PoolBlock] = uncle
    for _ in range(UNCLE_BLOCK_DEPTH):
        if (
            current is None
            or other is None
            or current.sidechain_height + UNCLE_BLOCK_DEPTH < height
        ):
            break
        if current.parent == other.parent:
            return True
        current = index.get_parent(current)
        other = index.get_parent(other)
    return False