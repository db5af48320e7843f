# Core Cryptography Module
"""
Core hashing helpers:
- Canonical JSON rendering
- SHA-256 content hashing
- Proof of Work difficulty predicate
"""
