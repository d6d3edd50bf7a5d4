"""Test helpers for chain_systest unit tests."""

from .fake_chain import FakeChain, FakeProcess, make_address, parse_flags

__all__ = ["FakeChain", "FakeProcess", "make_address", "parse_flags"]
