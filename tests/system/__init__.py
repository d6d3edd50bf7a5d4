"""
End-to-end tests against a local cluster of the real node binary.

Tests verify:

- Maintenance commands clean up node homes
- Genesis vesting accounts are written as requested
- Staking and unstaking move funds on a running chain
"""
