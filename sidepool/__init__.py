"""Mining side-chain building blocks: pool blocks, PPLNS payouts, difficulty, verification, chain selection and peer addresses."""

__version__ = "0.1.0"