from sidepool.block_index import BlockIndex
from sidepool.depths import prune_old_blocks, update_depths
from sidepool.pool_block import ZERO_HASH, PoolBlock


def bid(n):
    return n.to_bytes(32, "big")


def make_chain(index, count, now=1_000_000, start=0):
    blocks = []
    parent = ZERO_HASH
    for height in range(start, start + count):
        block = PoolBlock(
            sidechain_id=bid(height + 1),
            sidechain_height=height,
            parent=parent,
            local_timestamp=now,
        )
        index.add(block)
        blocks.append(block)
        parent = block.sidechain_id
    return blocks


def test_depth_propagates_to_ancestors():
    index = BlockIndex()
    a, b, c = make_chain(index, 3)
    update_depths(c, index, 10, lambda blk: None)
    assert b.depth == c.depth + 1
    assert a.depth == b.depth + 1


def test_depth_taken_from_existing_children():
    index = BlockIndex()
    a, b, c = make_chain(index, 3)
    update_depths(c, index, 10, lambda blk: None)
    late = PoolBlock(sidechain_id=bid(99), sidechain_height=0, parent=ZERO_HASH)
    index.add(late)
    # a block whose child at height + 1 is b
    orphan_parent = PoolBlock(sidechain_id=b.parent, sidechain_height=0)
    update_depths(orphan_parent, BlockIndex(), 10, lambda blk: None)
    update_depths(a, index, 10, lambda blk: None)
    assert a.depth == b.depth + 1
    assert late.depth == 0


def test_uncle_depth_uses_height_distance():
    index = BlockIndex()
    a, b = make_chain(index, 2)
    uncle = PoolBlock(sidechain_id=bid(50), sidechain_height=1, parent=a.sidechain_id)
    index.add(uncle)
    c = PoolBlock(
        sidechain_id=bid(60),
        sidechain_height=2,
        parent=b.sidechain_id,
        uncles=[uncle.sidechain_id],
    )
    index.add(c)
    update_depths(c, index, 10, lambda blk: None)
    assert uncle.depth == c.depth + (c.sidechain_height - uncle.sidechain_height)
    assert b.depth == c.depth + 1


def test_unverified_genesis_is_sent_to_verification():
    index = BlockIndex()
    (genesis,) = make_chain(index, 1)
    calls = []
    update_depths(genesis, index, 10, calls.append)
    assert calls == [genesis]


def test_verified_genesis_is_not_sent_to_verification():
    index = BlockIndex()
    (genesis,) = make_chain(index, 1)
    genesis.verified = True
    calls = []
    update_depths(genesis, index, 10, calls.append)
    assert calls == []


def test_deep_blocks_are_sent_to_verification():
    index = BlockIndex()
    blocks = make_chain(index, 6, start=1)
    calls = []
    window = 2
    update_depths(blocks[-1], index, window, calls.append)
    assert calls
    assert all(blk.depth >= window * 2 for blk in calls)
    assert blocks[-1] not in calls


def test_prune_skips_short_chain():
    index = BlockIndex()
    blocks = make_chain(index, 3)
    update_depths(blocks[-1], index, 2, lambda blk: None)
    pruned = []
    count = prune_old_blocks(blocks[-1], index, 2, 60, 1_000_000, pruned.append)
    assert count == 0
    assert pruned == []
    assert len(index) == 3


def test_prune_removes_deep_blocks():
    index = BlockIndex()
    now = 1_000_000
    blocks = make_chain(index, 10, now=now)
    update_depths(blocks[-1], index, 2, lambda blk: None)
    pruned = []
    count = prune_old_blocks(blocks[-1], index, 2, 60, now, pruned.append)
    assert count == len(pruned)
    assert count > 0
    assert all(blk.sidechain_id not in index for blk in pruned)
    assert min(index.heights()) > max(blk.sidechain_height for blk in pruned)
    assert blocks[-1].sidechain_id in index


def test_prune_removes_old_shallow_blocks_only_after_delay():
    now = 1_000_000
    for when, expect_pruned in ((now, False), (now + 10**6, True)):
        index = BlockIndex()
        blocks = make_chain(index, 10, now=now)
        update_depths(blocks[-1], index, 2, lambda blk: None)
        stale = PoolBlock(
            sidechain_id=bid(500),
            sidechain_height=1,
            parent=bid(77),
            local_timestamp=now,
        )
        index.add(stale)
        pruned = []
        prune_old_blocks(blocks[-1], index, 2, 60, when, pruned.append)
        assert (stale in pruned) is expect_pruned
        assert (stale.sidechain_id in index) is not expect_pruned