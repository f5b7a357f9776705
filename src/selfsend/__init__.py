"""Randomized, cancellable batch self-transfers across many EVM accounts."""
