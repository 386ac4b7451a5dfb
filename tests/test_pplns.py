import pytest

from sidepool.block_index import BlockIndex, SideChainError
from sidepool.pool_block import MinerWallet, PoolBlock
from sidepool.pplns import MinerShare, get_shares, split_reward


def _wallet(n):
    return MinerWallet(spend_public_key=bytes([n]) * 32, view_public_key=bytes([n + 100]) * 32)


def _block(n, height, parent, wallet, difficulty, uncles=()):
    return PoolBlock(
        sidechain_id=bytes([n]) * 32,
        sidechain_height=height,
        parent=parent,
        miner_wallet=wallet,
        difficulty=difficulty,
        uncles=list(uncles),
    )


def _chain(index, wallets, difficulties):
    blocks = []
    parent = bytes(32)
    for height, (wallet, diff) in enumerate(zip(wallets, difficulties)):
        block = _block(height + 1, height, parent, wallet, diff)
        index.add(block)
        blocks.append(block)
        parent = block.sidechain_id
    return blocks


def test_split_reward_small_example():
    shares = [MinerShare(1, _wallet(i)) for i in range(3)]
    assert split_reward(100, shares) == [33, 33, 34]


@pytest.mark.parametrize("reward", [0, 1, 999, 600000000000, (1 << 64) - 1])
def test_split_reward_sums_to_reward(reward):
    shares = [MinerShare(w, _wallet(i)) for i, w in enumerate([7, 100000, 3, 250000])]
    rewards = split_reward(reward, shares)
    assert sum(rewards) == reward
    assert len(rewards) == len(shares)
    assert all(r >= 0 for r in rewards)


def test_split_reward_proportional_when_exact():
    shares = [MinerShare(1, _wallet(0)), MinerShare(3, _wallet(1))]
    assert split_reward(400, shares) == [100, 300]


def test_split_reward_zero_weight():
    with pytest.raises(ValueError):
        split_reward(100, [MinerShare(0, _wallet(0))])
    with pytest.raises(ValueError):
        split_reward(100, [])


def test_single_genesis_block():
    index = BlockIndex()
    (genesis,) = _chain(index, [_wallet(1)], [100000])
    shares = get_shares(genesis, index, 2160, 20)
    assert shares == [MinerShare(100000, _wallet(1))]


def test_same_wallet_merged_and_sorted():
    index = BlockIndex()
    wallets = [_wallet(5), _wallet(2), _wallet(5), _wallet(9)]
    diffs = [100000, 200000, 300000, 400000]
    blocks = _chain(index, wallets, diffs)
    shares = get_shares(blocks[-1], index, 2160, 20)
    assert [s.wallet for s in shares] == [_wallet(2), _wallet(5), _wallet(9)]
    weights = {s.wallet.spend_public_key[0]: s.weight for s in shares}
    assert weights[5] == diffs[0] + diffs[2]
    assert sum(s.weight for s in shares) == sum(diffs)


def test_window_limits_blocks():
    index = BlockIndex()
    wallets = [_wallet(i) for i in range(5)]
    diffs = [100000, 110000, 120000, 130000, 140000]
    blocks = _chain(index, wallets, diffs)
    shares = get_shares(blocks[-1], index, 2, 20)
    assert sum(s.weight for s in shares) == diffs[3] + diffs[4]
    assert {s.wallet for s in shares} == {wallets[3], wallets[4]}


def test_uncle_weight_moves_to_includer():
    index = BlockIndex()
    genesis = _block(1, 0, bytes(32), _wallet(1), 100000)
    uncle = _block(2, 1, genesis.sidechain_id, _wallet(2), 100000)
    parent = _block(3, 1, genesis.sidechain_id, _wallet(3), 100000)
    tip = _block(4, 2, parent.sidechain_id, _wallet(4), 100000, uncles=[uncle.sidechain_id])
    for b in (genesis, uncle, parent, tip):
        index.add(b)
    shares = get_shares(tip, index, 2160, 20)
    total = sum(b.difficulty for b in (genesis, uncle, parent, tip))
    assert sum(s.weight for s in shares) == total
    by_wallet = {s.wallet: s.weight for s in shares}
    assert by_wallet[_wallet(2)] < uncle.difficulty
    assert by_wallet[_wallet(4)] > tip.difficulty
    assert by_wallet[_wallet(2)] + by_wallet[_wallet(4)] == uncle.difficulty + tip.difficulty


def test_missing_parent_raises():
    index = BlockIndex()
    orphan = _block(7, 5, bytes([9]) * 32, _wallet(1), 100000)
    index.add(orphan)
    with pytest.raises(SideChainError):
        get_shares(orphan, index, 2160, 20)


def test_missing_uncle_raises():
    index = BlockIndex()
    genesis = _block(1, 0, bytes(32), _wallet(1), 100000)
    tip = _block(2, 1, genesis.sidechain_id, _wallet(2), 100000, uncles=[bytes([8]) * 32])
    index.add(genesis)
    index.add(tip)
    with pytest.raises(SideChainError):
        get_shares(tip, index, 2160, 20)