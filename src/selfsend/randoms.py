"""Process-wide randomness.

Delays, fee jitter and amounts are deliberately non-reproducible, so the generator is a
SystemRandom (OS entropy) and exposes no seed. Components take an optional ``rng`` so
tests can substitute a scripted generator.
"""
import random

rng: random.Random = random.SystemRandom()
