"""Verification of a side-chain block against its parent, uncles and PPLNS payouts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .block_index import (
    UNCLE_BLOCK_DEPTH,
    BlockIndex,
    SideChainError,
    is_same_chain,
    mined_blocks,
)
from .difficulty import get_difficulty
from .pool_block import TXOUT_TO_TAGGED_KEY, ZERO_HASH
from .pplns import get_shares, split_reward

if TYPE_CHECKING:
    from .pool_block import PoolBlock
    from .sidechain_config import SideChainConfig

log = logging.getLogger(__name__)


def _reject(block: "PoolBlock", reason: str) -> None:
    log.warning(
        "block at height = %d, id = %s, mainchain height = %d %s",
        block.sidechain_height,
        block.sidechain_id.hex(),
        block.txin_gen_height,
        reason,
    )
    block.verified = True
    block.invalid = True


def _check_uncles(block: "PoolBlock", parent: "PoolBlock", index: BlockIndex) -> bool:
    """Check uncles; return False if verification must wait or the block was rejected."""
    mined = (
        mined_blocks(parent, index, block.sidechain_height) if block.uncles else []
    )
    for uncle_id in block.uncles:
        if uncle_id == ZERO_HASH:
            _reject(block, "has empty uncle hash")
            return False
        if uncle_id in mined:
            _reject(block, f"has an uncle ({uncle_id.hex()}) that's already been mined")
            return False
        uncle = index.get(uncle_id)
        if uncle is None or not uncle.verified:
            block.verified = False
            return False
        if uncle.invalid:
            block.verified = True
            block.invalid = True
            return False
        if (
            uncle.sidechain_height >= block.sidechain_height
            or uncle.sidechain_height + UNCLE_BLOCK_DEPTH < block.sidechain_height
        ):
            _reject(block, f"has an uncle at the wrong height ({uncle.sidechain_height})")
            return False
        if not is_same_chain(parent, uncle, index, block.sidechain_height):
            _reject(block, "has an uncle from a different chain")
            return False
    return True


def _check_payouts(
    block: "PoolBlock", parent: "PoolBlock", index: BlockIndex, config: "SideChainConfig"
) -> None:
    try:
        expected_diff = get_difficulty(
            parent,
            index,
            config.chain_window_size,
            config.target_block_time,
            config.min_difficulty,
        )
        shares = get_shares(block, index, config.chain_window_size, config.uncle_penalty)
    except SideChainError as exc:
        log.warning("block %s: %s", block.sidechain_id.hex(), exc)
        block.invalid = True
        return

    if expected_diff != block.difficulty:
        _reject(block, f"has wrong difficulty: got {block.difficulty}, expected {expected_diff}")
        return

    if len(shares) != len(block.outputs):
        _reject(
            block,
            f"has invalid number of outputs: got {len(block.outputs)}, expected {len(shares)}",
        )
        return

    total_reward = sum(out.reward for out in block.outputs)
    try:
        rewards = split_reward(total_reward, shares)
    except ValueError:
        _reject(block, ": split_reward failed")
        return

    for i, (out, reward, share) in enumerate(zip(block.outputs, rewards, shares)):
        if reward != out.reward:
            _reject(block, f"has invalid reward at index {i}: got {out.reward}, expected {reward}")
            return
        derived = share.wallet.get_eph_public_key(block.txkey_sec, i)
        if derived is None:
            _reject(block, f"failed to eph_public_key at index {i}")
            return
        eph_public_key, view_tag = derived
        if out.tx_type == TXOUT_TO_TAGGED_KEY and out.view_tag != view_tag:
            _reject(block, f"has an incorrect view tag at index {i}")
            return
        if eph_public_key != out.eph_public_key:
            _reject(block, f"pays out to a wrong wallet at index {i}")
            return

    block.invalid = False


def verify_block(block: "PoolBlock", index: BlockIndex, config: "SideChainConfig") -> None:
    """Set ``block.verified`` and ``block.invalid``.

    ``verified`` stays False while parent or uncle blocks are missing or unverified.
    """
    window_size = config.chain_window_size

    if block.sidechain_height == 0:
        block.invalid = (
            block.parent != ZERO_HASH
            or bool(block.uncles)
            or block.difficulty != config.min_difficulty
            or block.cumulative_difficulty != config.min_difficulty
        )
        block.verified = True
        return

    # Blocks this deep can't influence the PPLNS window; skipping them allows pruning.
    if block.depth >= window_size * 2:
        log.debug("block %s skipped verification", block.sidechain_id.hex())
        block.verified = True
        block.invalid = False
        return

    if block.parent == ZERO_HASH:
        block.verified = True
        block.invalid = True
        return

    parent = index.get(block.parent)
    if parent is None or not parent.verified:
        block.verified = False
        return

    if parent.invalid:
        block.verified = True
        block.invalid = True
        return

    expected_height = parent.sidechain_height + 1
    if block.sidechain_height != expected_height:
        log.warning(
            "block %s has wrong height: expected %d",
            block.sidechain_id.hex(),
            expected_height,
        )
        block.invalid = True
        return

    # Sorted uncles prevent counting the same uncle twice.
    for previous, current in zip(block.uncles, block.uncles[1:]):
        if not previous < current:
            _reject(block, "has invalid uncle order")
            return

    if not _check_uncles(block, parent, index):
        return

    expected_cumulative = parent.cumulative_difficulty + block.difficulty
    for uncle_id in block.uncles:
        expected_cumulative += index.get(uncle_id).difficulty

    block.verified = True

    if block.cumulative_difficulty != expected_cumulative:
        log.warning(
            "block %s has wrong cumulative difficulty: got %d, expected %d",
            block.sidechain_id.hex(),
            block.cumulative_difficulty,
            expected_cumulative,
        )
        block.invalid = True
        return

    if block.depth >= window_size:
        log.debug("block %s skipped diff/reward verification", block.sidechain_id.hex())
        block.invalid = False
        return

    _check_payouts(block, parent, index, config)