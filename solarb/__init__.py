"""Solana DEX pool loading, account decoding and swap quoting for Orca, Orca Whirlpools, Raydium and Raydium CLMM."""

__version__ = "0.1.0"