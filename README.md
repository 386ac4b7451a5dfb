# sidepool

`sidepool` is a library of building blocks for a decentralised mining side-chain
that runs on top of a proof-of-work main chain. Every share a miner finds becomes
a small block on the side-chain. Recent shares form the PPLNS window, and the
main-chain block template pays every miner in that window in proportion to their
work.

The library covers the side-chain block format, PPLNS share collection and reward
splitting, difficulty adjustment, block verification, depth tracking and pruning,
fork choice, side-chain configuration, and peer address handling.

## Modules

- **`sidepool.pool_block`**
  - `PoolBlock` is a side-chain block.
    - `serialize_mainchain_data(nonce, extra_nonce, sidechain_hash)` builds the
      main-chain block template bytes and records their layout offsets.
    - `serialize_sidechain_data()` builds the side-chain data bytes.
    - `get_pow_hash(hasher, height, seed_hash)` builds the hashing blob. It passes
      the blob to `hasher.calculate(blob, height, seed_hash)` and returns what that
      call returns.
    - `get_payout(wallet)` returns the reward a wallet gets from the block.
    - `get_tx_type()` gives the output type for the block's version.
    - `copy()` returns an independent copy.
  - `MinerWallet` holds a miner's public keys and an optional one-time key
    derivation callable.
  - The module also has `TxOutput`, `DifficultyData` and the helpers
    `write_varint`, `keccak256` and `tree_hash` (the Merkle root of transaction
    hashes).
- **`sidepool.block_index`**
  - `BlockIndex` stores blocks by id and by height. Its methods are `add`, `get`,
    `get_parent`, `at_height`, `remove` and `heights`.
  - `mined_blocks` and `is_same_chain` are ancestry helpers.
  - `SideChainError` is raised when the bookkeeping is inconsistent.
- **`sidepool.pplns`**
  - `MinerShare` is one wallet's weight in the window.
  - `get_shares(tip, index, window_size, uncle_penalty)` collects the PPLNS window
    and merges the shares one entry per wallet. Uncles take a penalty.
  - `split_reward(reward, shares)` splits a reward in proportion to the weights.
    The parts always add up to exactly `reward`.
- **`sidepool.sidechain_config`**
  - `SideChainConfig` holds the side-chain parameters.
    - `from_file` loads and validates a JSON file. The file may contain comments
      and trailing commas.
    - `check` validates the ranges.
    - `consensus_string`, `consensus_id`, `consensus_id_display`, `is_default` and
      `is_mini` deal with the consensus ID.
  - `NetworkType`, `parse_relaxed_json` and `ConfigError` are also here.
- **`sidepool.difficulty`**
  - `get_difficulty` returns the difficulty of the next block. It drops the oldest
    and the newest 10% of timestamps in the window first.
- **`sidepool.verification`**
  - `verify_block(block, index, config)` checks the parent, height, uncle order
    and placement, cumulative difficulty, difficulty and every payout output.
  - It sets `block.verified` and `block.invalid`.
- **`sidepool.depths`**
  - `update_depths` propagates block depths to parents and uncles.
  - `prune_old_blocks` removes blocks far below the tip.
- **`sidepool.chain_selection`**
  - `is_longer_chain` is the fork-choice rule. It returns
    `(is_longer, is_alternative)`.
  - It needs an object with the methods `chainmain_height(prev_id)` and
    `miner_height()`.
- **`sidepool.addresses`**
  - `parse_address_list` reads `ip:port,[ipv6]:port,...` lists into `PeerAddress`
    entries.
  - `raw_ip` gives the 16-byte form of an address. An IPv4 address becomes an
    IPv4-mapped address.
  - `is_localhost` tells whether a 16-byte address is a loopback address.
  - `format_peer` formats an address and port for display.
  - `BanList` holds time-limited bans, which never apply to loopback addresses.

## Examples

Splitting a block reward between miners:

```python
from sidepool.pool_block import MinerWallet
from sidepool.pplns import MinerShare, split_reward

alice = MinerWallet(spend_public_key=bytes([1]) * 32, view_public_key=bytes([2]) * 32)
bob = MinerWallet(spend_public_key=bytes([3]) * 32, view_public_key=bytes([4]) * 32)

rewards = split_reward(600_000_000_000, [MinerShare(300000, alice), MinerShare(100000, bob)])
assert rewards == [450_000_000_000, 150_000_000_000]
```

`split_reward` raises `ValueError` when the total weight is zero.

Verifying a genesis block:

```python
from sidepool.block_index import BlockIndex
from sidepool.pool_block import PoolBlock
from sidepool.sidechain_config import SideChainConfig
from sidepool.verification import verify_block

config = SideChainConfig()
index = BlockIndex()
genesis = PoolBlock(
    sidechain_id=bytes([1]) * 32,
    difficulty=config.min_difficulty,
    cumulative_difficulty=config.min_difficulty,
)
index.add(genesis)
verify_block(genesis, index, config)
assert genesis.verified and not genesis.invalid
```

Loading a side-chain configuration:

```python
from sidepool.sidechain_config import NetworkType, SideChainConfig

config = SideChainConfig.from_file("sidechain.json", NetworkType.MAINNET)
print(config.pool_name, config.chain_window_size)
```

Recognised keys are `name`, `password`, `block_time`, `min_diff`,
`pplns_window` and `uncle_penalty`. `from_file` raises `ConfigError` in these
cases:

- the file can't be read;
- the file is not a JSON object;
- a value is outside its allowed range.

Called with no filename, `from_file` returns the defaults.

Parsing a listen-address list:

```python
from sidepool.addresses import parse_address_list

for address in parse_address_list("0.0.0.0:37889,[::]:37889"):
    print(address.is_v6, address.ip, address.port)
```

Entries with a port outside 1–65535 are skipped.

## What this package does not do

- It computes no proof-of-work hashes itself. `PoolBlock.get_pow_hash` builds the
  blob, and the caller supplies the hasher.
- It has no object that manages a whole side-chain. Storing incoming blocks,
  tracking the chain tip, filling block templates and broadcasting are left to
  the caller, who combines `BlockIndex`, `verify_block`, `update_depths`,
  `is_longer_chain` and `prune_old_blocks`.
- It has no network server or client, and no status report or command-line
  program.
- `SideChainConfig.consensus_id` knows only the default and mini side-chains.
  For any other configuration it raises `ConfigError`.

## Requirements

- Python 3.10 or later.
- `pycryptodome`, which provides Keccak hashing.

The tests use `pytest` and `pytest-asyncio`. Install them with the `test` extra.