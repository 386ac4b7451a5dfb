"""Side-chain configuration: loading, validation and the consensus ID derived from it."""

from __future__ import annotations

import enum
import json
import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional, Union

log = logging.getLogger(__name__)

MIN_DIFFICULTY = 100000
MAX_MIN_DIFFICULTY = 1000000000
MONERO_BLOCK_TIME = 120
MIN_WINDOW_SIZE = 60
MAX_WINDOW_SIZE = 2160
MAX_NAME_LENGTH = 128

DEFAULT_CONSENSUS_ID = bytes(
    (34, 175, 126, 231, 181, 11, 104, 146, 227, 153, 218, 107, 44, 108, 68, 39,
     178, 81, 4, 212, 169, 4, 142, 0, 177, 110, 157, 240, 68, 7, 249, 24)
)
MINI_CONSENSUS_ID = bytes(
    (57, 130, 201, 26, 149, 174, 199, 250, 66, 80, 189, 18, 108, 216, 194, 220,
     136, 23, 63, 24, 64, 113, 221, 44, 219, 86, 39, 163, 53, 24, 126, 196)
)

_DEFAULT_CONSENSUS_STRING = b"mainnet\0default\0\0" b"10\0" b"100000\0" b"2160\0" b"20\0"
_MINI_CONSENSUS_STRING = b"mainnet\0mini\0\0" b"10\0" b"100000\0" b"2160\0" b"20\0"

_COMMENT_RE = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r'("(?:\\.|[^"\\])*")|,(\s*[\]}])')


class ConfigError(ValueError):
    """Raised when a side-chain configuration can't be loaded or is invalid."""


class NetworkType(enum.Enum):
    """Monero network the side chain runs on."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    STAGENET = "stagenet"

    def __str__(self) -> str:
        return self.value


def parse_relaxed_json(text: str) -> Any:
    """Parse JSON that may contain comments and trailing commas."""
    stripped = _COMMENT_RE.sub(lambda m: m.group(1) or " ", text)
    cleaned = _TRAILING_COMMA_RE.sub(lambda m: m.group(1) or m.group(2), stripped)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"failed to parse JSON data: {exc}") from exc


def _as_uint64(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 1 << 64:
        return value
    return None


@dataclass(frozen=True)
class SideChainConfig:
    """Parameters that define a side chain and its consensus."""

    network_type: NetworkType = NetworkType.MAINNET
    pool_name: str = "default"
    pool_password: str = ""
    target_block_time: int = 10
    min_difficulty: int = MIN_DIFFICULTY
    chain_window_size: int = 2160
    uncle_penalty: int = 20

    @classmethod
    def from_file(
        cls,
        filename: Union[str, Path, None],
        network_type: NetworkType = NetworkType.MAINNET,
    ) -> "SideChainConfig":
        """Load a config file (defaults if no filename is given) and validate it."""
        config = cls(network_type=network_type)
        if not filename:
            log.info("using default config")
        else:
            log.info("loading config from %s", filename)
            try:
                text = Path(filename).read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigError(f"can't open {filename}") from exc
            doc = parse_relaxed_json(text)
            if not isinstance(doc, dict):
                raise ConfigError(
                    f"invalid JSON data in {filename}: top level is not an object"
                )
            updates: dict[str, Any] = {}
            for key, attr in (("name", "pool_name"), ("password", "pool_password")):
                if isinstance(doc.get(key), str):
                    updates[attr] = doc[key]
            for key, attr in (
                ("block_time", "target_block_time"),
                ("min_diff", "min_difficulty"),
                ("pplns_window", "chain_window_size"),
                ("uncle_penalty", "uncle_penalty"),
            ):
                value = _as_uint64(doc.get(key))
                if value is not None:
                    updates[attr] = value
            config = replace(config, **updates)
        config.check()
        return config

    def check(self) -> None:
        """Raise ConfigError if any parameter is out of its allowed range."""
        if not self.pool_name:
            raise ConfigError("name can't be empty")
        if len(self.pool_name) > MAX_NAME_LENGTH:
            raise ConfigError("name is too long (must be 128 characters max)")
        if len(self.pool_password) > MAX_NAME_LENGTH:
            raise ConfigError("password is too long (must be 128 characters max)")
        if not 1 <= self.target_block_time <= MONERO_BLOCK_TIME:
            raise ConfigError(
                f"block_time is invalid (must be between 1 and {MONERO_BLOCK_TIME})"
            )
        if not MIN_DIFFICULTY <= self.min_difficulty <= MAX_MIN_DIFFICULTY:
            raise ConfigError(
                f"min_diff is invalid (must be between {MIN_DIFFICULTY} "
                f"and {MAX_MIN_DIFFICULTY})"
            )
        if not MIN_WINDOW_SIZE <= self.chain_window_size <= MAX_WINDOW_SIZE:
            raise ConfigError("pplns_window is invalid (must be between 60 and 2160)")
        if not 1 <= self.uncle_penalty <= 99:
            raise ConfigError("uncle_penalty is invalid (must be between 1 and 99)")

        log.info("pool name     = %s", self.pool_name)
        log.info("block time    = %d seconds", self.target_block_time)
        log.info("min diff      = %d", self.min_difficulty)
        log.info("PPLNS window  = %d blocks", self.chain_window_size)
        log.info("uncle penalty = %d%%", self.uncle_penalty)

    def consensus_string(self) -> bytes:
        """The NUL-separated parameter string the consensus ID is derived from."""
        fields = (
            self.network_type.value,
            self.pool_name,
            self.pool_password,
            self.target_block_time,
            self.min_difficulty,
            self.chain_window_size,
            self.uncle_penalty,
        )
        return "".join(f"{value}\0" for value in fields).encode("utf-8")

    def consensus_id(self) -> bytes:
        """The 32-byte consensus ID; only the default and mini chains are known."""
        text = self.consensus_string()
        if text == _DEFAULT_CONSENSUS_STRING:
            return DEFAULT_CONSENSUS_ID
        if text == _MINI_CONSENSUS_STRING:
            return MINI_CONSENSUS_ID
        raise ConfigError("can't calculate consensus ID without RandomX library")

    def consensus_id_display(self) -> str:
        """Hex consensus ID with all but the first and last 8 characters masked."""
        text = self.consensus_id().hex()
        return text[:8] + "*" * (len(text) - 16) + text[-8:]

    def is_default(self) -> bool:
        """Whether this is the default side chain."""
        return self.consensus_string() == _DEFAULT_CONSENSUS_STRING

    def is_mini(self) -> bool:
        """Whether this is the mini side chain."""
        return self.consensus_string() == _MINI_CONSENSUS_STRING