"""PPLNS share collection and proportional reward splitting."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import groupby
from typing import TYPE_CHECKING

from .block_index import BlockIndex, SideChainError

if TYPE_CHECKING:
    from .pool_block import MinerWallet, PoolBlock

log = logging.getLogger(__name__)

_MASK64 = (1 << 64) - 1


@dataclass(frozen=True)
class MinerShare:
    """Weight of one wallet in the PPLNS window."""

    weight: int
    wallet: "MinerWallet"


def split_reward(reward: int, shares: list[MinerShare]) -> list[int]:
    """Split ``reward`` between shares in proportion to their weights.

    Amounts are rounded down cumulatively so that they add up to ``reward`` exactly.
    """
    total_weight = sum(share.weight for share in shares)
    if total_weight == 0:
        raise ValueError("total weight of shares is 0")

    rewards: list[int] = []
    cumulative_weight = 0
    reward_given = 0
    for share in shares:
        cumulative_weight += share.weight
        next_value = cumulative_weight * reward // total_weight
        rewards.append(next_value - reward_given)
        reward_given = next_value
    return rewards


def _wallet_key(share: MinerShare) -> tuple[bytes, bytes]:
    return (share.wallet.spend_public_key, share.wallet.view_public_key)


def get_shares(
    tip: "PoolBlock", index: BlockIndex, window_size: int, uncle_penalty: int
) -> list[MinerShare]:
    """Collect shares of the PPLNS window ending at ``tip``, one per wallet, sorted by wallet.

    Raises SideChainError if a parent or uncle block in the window is unknown.
    """
    collected: list[MinerShare] = []
    current = tip
    depth = 0
    while True:
        weight = current.difficulty & _MASK64
        for uncle_id in current.uncles:
            uncle = index.get(uncle_id)
            if uncle is None:
                raise SideChainError(
                    f"can't find uncle block {uncle_id.hex()} at height "
                    f"{current.sidechain_height} for block {tip.sidechain_id.hex()}"
                )
            distance = tip.sidechain_height - uncle.sidechain_height
            if distance < 0 or distance >= window_size:
                continue
            uncle_difficulty = uncle.difficulty & _MASK64
            penalty = uncle_difficulty * uncle_penalty // 100
            weight += penalty
            collected.append(MinerShare(uncle_difficulty - penalty, uncle.miner_wallet))

        collected.append(MinerShare(weight, current.miner_wallet))

        depth += 1
        if depth >= window_size or current.sidechain_height == 0:
            break

        parent = index.get(current.parent)
        if parent is None:
            raise SideChainError(
                f"can't find parent block {current.parent.hex()} at height "
                f"{current.sidechain_height - 1} for block {tip.sidechain_id.hex()}"
            )
        current = parent

    collected.sort(key=_wallet_key)
    shares = [
        MinerShare(sum(share.weight for share in group), group[0].wallet)
        for group in (list(g) for _, g in groupby(collected, key=_wallet_key))
    ]
    log.debug("get_shares: %d unique wallets in PPLNS window", len(shares))
    return shares