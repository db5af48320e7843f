# ChainWallet Test Suite
"""
Test suite including:
- Unit tests (hasher, transactions, ledger, storage, wallet)
- Integration tests (wallet flows, background mining)
- Invalid input and tampering tests

Run with: pytest
"""
