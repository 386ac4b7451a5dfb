"""Pool blocks: a main-chain block template plus the side-chain data of a share."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

from Crypto.Hash import keccak

HASH_SIZE = 32
NONCE_SIZE = 4
EXTRA_NONCE_SIZE = 4
ZERO_HASH = bytes(HASH_SIZE)

TX_VERSION = 2
MINER_REWARD_UNLOCK_TIME = 60
TXIN_GEN = 0xFF
TXOUT_TO_KEY = 2
TXOUT_TO_TAGGED_KEY = 3
TX_EXTRA_TAG_PUBKEY = 0x01
TX_EXTRA_NONCE = 0x02
TX_EXTRA_MERGE_MINING_TAG = 0x03
HARDFORK_VIEW_TAGS_VERSION = 15

_MASK64 = (1 << 64) - 1

# Hash of the empty RingCT base part of a miner transaction.
_RCT_BASE_HASH = b"".join(
    value.to_bytes(8, "little")
    for value in (
        0x14281E7A9E7836BC,
        0x7D818F8229424636,
        0x9165D677B4F71266,
        0x8AC9BC64E0A996FF,
    )
)

KeyDerivation = Callable[[bytes, bytes, bytes, int], Optional["tuple[bytes, int]"]]


def keccak256(data: bytes) -> bytes:
    """Return the 32-byte Keccak-256 digest of ``data``."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def write_varint(value: int) -> bytes:
    """Encode a non-negative integer as a little-endian base-128 varint."""
    if value < 0:
        raise ValueError("varint value must be non-negative")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def tree_hash(hashes: list[bytes]) -> bytes:
    """Compute the Merkle tree root of transaction hashes."""
    level = [bytes(h) for h in hashes]
    count = len(level)
    if count == 0:
        raise ValueError("tree hash needs at least one hash")
    if count == 1:
        return level[0]
    if count == 2:
        return keccak256(level[0] + level[1])

    cnt = 1 << (count.bit_length() - 1)
    split = 2 * cnt - count
    level = level[:split] + [
        keccak256(level[i] + level[i + 1]) for i in range(split, count, 2)
    ]
    while len(level) > 2:
        level = [keccak256(level[i] + level[i + 1]) for i in range(0, len(level), 2)]
    return keccak256(level[0] + level[1])


@dataclass(frozen=True, order=True)
class MinerWallet:
    """A miner's public keys, with an optional one-time key derivation."""

    spend_public_key: bytes = ZERO_HASH
    view_public_key: bytes = ZERO_HASH
    key_derivation: Optional[KeyDerivation] = field(
        default=None, compare=False, repr=False
    )

    def get_eph_public_key(
        self, txkey_sec: bytes, output_index: int
    ) -> Optional[tuple[bytes, int]]:
        """Return (ephemeral public key, view tag) for an output, or None on failure."""
        if self.key_derivation is None:
            return None
        return self.key_derivation(
            self.spend_public_key, self.view_public_key, txkey_sec, output_index
        )

    def get_eph_public_key_with_view_tag(
        self, txkey_sec: bytes, output_index: int, view_tag: int
    ) -> Optional[bytes]:
        """Return the ephemeral public key if the derived view tag matches, else None."""
        result = self.get_eph_public_key(txkey_sec, output_index)
        if result is None or result[1] != view_tag:
            return None
        return result[0]


@dataclass(frozen=True)
class TxOutput:
    """One output of the miner transaction."""

    reward: int = 0
    eph_public_key: bytes = ZERO_HASH
    tx_type: int = 0
    view_tag: int = 0


@dataclass(frozen=True)
class DifficultyData:
    """Timestamp and cumulative difficulty of a block in the difficulty window."""

    timestamp: int
    cumulative_difficulty: int


def _now() -> int:
    return int(time.time())


@dataclass(eq=False)
class PoolBlock:
    """A share: Monero block template followed by side-chain data."""

    main_chain_data: bytes = b""
    main_chain_header_size: int = 0
    main_chain_miner_tx_size: int = 0
    main_chain_outputs_offset: int = 0
    main_chain_outputs_blob_size: int = 0

    major_version: int = 0
    minor_version: int = 0
    timestamp: int = 0
    prev_id: bytes = ZERO_HASH
    nonce: int = 0

    txin_gen_height: int = 0
    outputs: list[TxOutput] = field(default_factory=list)
    txkey_pub: bytes = ZERO_HASH
    extra_nonce_size: int = 0
    extra_nonce: int = 0

    # All transaction hashes, the miner transaction hash first.
    transactions: list[bytes] = field(default_factory=list)

    side_chain_data: bytes = b""
    miner_wallet: MinerWallet = field(default_factory=MinerWallet)
    txkey_sec: bytes = ZERO_HASH
    parent: bytes = ZERO_HASH
    uncles: list[bytes] = field(default_factory=list)

    sidechain_height: int = 0
    difficulty: int = 0
    cumulative_difficulty: int = 0
    sidechain_id: bytes = ZERO_HASH

    depth: int = 0
    verified: bool = False
    invalid: bool = False
    broadcasted: bool = False
    want_broadcast: bool = False

    local_timestamp: int = field(default_factory=_now)

    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def copy(self) -> "PoolBlock":
        """Return an independent copy with a fresh local timestamp."""
        with self._lock:
            return replace(
                self,
                outputs=list(self.outputs),
                transactions=list(self.transactions),
                uncles=list(self.uncles),
                local_timestamp=_now(),
            )

    def serialize_mainchain_data(
        self, nonce: int, extra_nonce: int, sidechain_hash: bytes
    ) -> None:
        """Rebuild the main-chain block template bytes and their layout offsets."""
        if not self.transactions:
            raise ValueError("block has no miner transaction slot")

        with self._lock:
            data = bytearray((self.major_version, self.minor_version))
            data += write_varint(self.timestamp)
            data += self.prev_id
            data += nonce.to_bytes(NONCE_SIZE, "little")
            header_size = len(data)

            data.append(TX_VERSION)
            data += write_varint(self.txin_gen_height + MINER_REWARD_UNLOCK_TIME)
            data.append(1)
            data.append(TXIN_GEN)
            data += write_varint(self.txin_gen_height)

            outputs_offset = len(data)
            data += write_varint(len(self.outputs))
            for output in self.outputs:
                data += write_varint(output.reward)
                data.append(output.tx_type)
                data += output.eph_public_key
                if output.tx_type == TXOUT_TO_TAGGED_KEY:
                    data.append(output.view_tag)
            outputs_blob_size = len(data) - outputs_offset

            self.extra_nonce = extra_nonce
            tx_extra = bytearray((TX_EXTRA_TAG_PUBKEY,))
            tx_extra += self.txkey_pub
            tx_extra.append(TX_EXTRA_NONCE)
            tx_extra += write_varint(self.extra_nonce_size)
            tx_extra += extra_nonce.to_bytes(EXTRA_NONCE_SIZE, "little")
            if self.extra_nonce_size > EXTRA_NONCE_SIZE:
                tx_extra += bytes(self.extra_nonce_size - EXTRA_NONCE_SIZE)
            tx_extra.append(TX_EXTRA_MERGE_MINING_TAG)
            tx_extra += write_varint(HASH_SIZE)
            tx_extra += sidechain_hash

            data += write_varint(len(tx_extra))
            data += tx_extra
            data.append(0)

            miner_tx_size = len(data) - header_size

            data += write_varint(len(self.transactions) - 1)
            for tx_hash in self.transactions[1:]:
                data += tx_hash

            self.main_chain_data = bytes(data)
            self.main_chain_header_size = header_size
            self.main_chain_miner_tx_size = miner_tx_size
            self.main_chain_outputs_offset = outputs_offset
            self.main_chain_outputs_blob_size = outputs_blob_size

    def serialize_sidechain_data(self) -> None:
        """Rebuild the side-chain data bytes."""
        with self._lock:
            data = bytearray()
            data += self.miner_wallet.spend_public_key
            data += self.miner_wallet.view_public_key
            data += self.txkey_sec
            data += self.parent
            data += write_varint(len(self.uncles))
            for uncle_id in self.uncles:
                data += uncle_id
            data += write_varint(self.sidechain_height)
            data += write_varint(self.difficulty & _MASK64)
            data += write_varint((self.difficulty >> 64) & _MASK64)
            data += write_varint(self.cumulative_difficulty & _MASK64)
            data += write_varint((self.cumulative_difficulty >> 64) & _MASK64)
            self.side_chain_data = bytes(data)

    def get_pow_hash(self, hasher: Any, height: int, seed_hash: bytes) -> Any:
        """Build the hashing blob and return what ``hasher.calculate`` returns for it.

        The miner transaction hash (index 0 of ``transactions``) is refreshed.
        """
        with self._lock:
            header_size = self.main_chain_header_size
            miner_tx_size = self.main_chain_miner_tx_size
            if (
                not header_size
                or not miner_tx_size
                or len(self.main_chain_data) < header_size + miner_tx_size
                or not self.transactions
            ):
                raise ValueError("tried to calculate PoW of uninitialized block")

            header = self.main_chain_data[:header_size]
            miner_tx = self.main_chain_data[header_size : header_size + miner_tx_size - 1]
            self.transactions[0] = keccak256(
                keccak256(miner_tx) + _RCT_BASE_HASH + ZERO_HASH
            )
            root = tree_hash(self.transactions)
            count = len(self.transactions)

        blob = header + root + write_varint(count)
        return hasher.calculate(blob, height, seed_hash)

    def get_payout(self, wallet: MinerWallet) -> int:
        """Return the reward paid to ``wallet`` by this block, or 0."""
        for index, output in enumerate(self.outputs):
            if output.tx_type == TXOUT_TO_TAGGED_KEY:
                key = wallet.get_eph_public_key_with_view_tag(
                    self.txkey_sec, index, output.view_tag
                )
            else:
                derived = wallet.get_eph_public_key(self.txkey_sec, index)
                key = derived[0] if derived is not None else None
            if key is not None and key == output.eph_public_key:
                return output.reward
        return 0

    def get_tx_type(self) -> int:
        """Output type that miner payouts use for this block's hard fork version."""
        if self.major_version < HARDFORK_VIEW_TAGS_VERSION:
            return TXOUT_TO_KEY
        return TXOUT_TO_TAGGED_KEY