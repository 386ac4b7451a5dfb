import pytest

from sidepool.block_index import BlockIndex, SideChainError
from sidepool.difficulty import get_difficulty
from sidepool.pool_block import PoolBlock

MIN_DIFF = 100000


def _chain(count, spacing, per_block, start_height=0, first_parent=bytes(32)):
    index = BlockIndex()
    blocks = []
    parent = first_parent
    for i in range(count):
        block = PoolBlock(
            sidechain_id=bytes([i + 1]) * 32,
            parent=parent,
            sidechain_height=start_height + i,
            timestamp=1000 + i * spacing,
            difficulty=per_block,
            cumulative_difficulty=per_block * (i + 1),
        )
        index.add(block)
        blocks.append(block)
        parent = block.sidechain_id
    return index, blocks


def test_genesis_gives_min_difficulty():
    index, blocks = _chain(1, 10, MIN_DIFF)
    assert get_difficulty(blocks[0], index, 2160, 10, MIN_DIFF) == MIN_DIFF


def test_steady_chain_keeps_difficulty():
    per_block = 1000000
    index, blocks = _chain(10, 10, per_block)
    assert get_difficulty(blocks[-1], index, 2160, 10, MIN_DIFF) == per_block


def test_slower_blocks_lower_difficulty():
    per_block = 1000000
    index, blocks = _chain(10, 20, per_block)
    assert get_difficulty(blocks[-1], index, 2160, 10, MIN_DIFF) == per_block // 2


def test_result_clamped_to_minimum():
    index, blocks = _chain(10, 10, 10)
    assert get_difficulty(blocks[-1], index, 2160, 10, MIN_DIFF) == MIN_DIFF


def test_window_limits_walk():
    per_block = 500000
    index, blocks = _chain(3, 10, per_block, start_height=8, first_parent=b"\xee" * 32)
    assert get_difficulty(blocks[-1], index, 3, 10, MIN_DIFF) == per_block
    with pytest.raises(SideChainError):
        get_difficulty(blocks[-1], index, 4, 10, MIN_DIFF)


def test_missing_uncle_raises():
    index, blocks = _chain(2, 10, MIN_DIFF)
    blocks[-1].uncles = [b"\x77" * 32]
    with pytest.raises(SideChainError):
        get_difficulty(blocks[-1], index, 2160, 10, MIN_DIFF)


def test_too_high_difficulty_raises():
    index = BlockIndex()
    genesis = PoolBlock(sidechain_id=b"\x01" * 32, timestamp=500, cumulative_difficulty=MIN_DIFF)
    tip = PoolBlock(
        sidechain_id=b"\x02" * 32,
        parent=genesis.sidechain_id,
        sidechain_height=1,
        timestamp=500,
        cumulative_difficulty=MIN_DIFF + (1 << 63),
    )
    index.add(genesis)
    index.add(tip)
    with pytest.raises(SideChainError):
        get_difficulty(tip, index, 2160, 10, MIN_DIFF)


def test_uncle_outside_window_is_ignored():
    per_block = 1000000
    index, blocks = _chain(10, 10, per_block)
    far_uncle = PoolBlock(
        sidechain_id=b"\x55" * 32,
        sidechain_height=0,
        timestamp=0,
        cumulative_difficulty=1,
    )
    index.add(far_uncle)
    blocks[-1].uncles = [far_uncle.sidechain_id]
    assert get_difficulty(blocks[-1], index, 5, 10, MIN_DIFF) == per_block