"""
Configuration Module

Central constants for the ChainWallet ledger core. Every value here is a
default: the classes that use them accept an override in their constructor,
which is how tests run with cheap difficulty and key-derivation settings.

Groups:
- Mining (difficulty, reward, nonce cap)
- Genesis block
- Addresses
- Secure storage (keys, format version, key derivation)
"""

# Mining
# ======
DEFAULT_DIFFICULTY = 2            # Leading hex zeros required in a block hash
MINING_REWARD = 10                # Credited to the miner on the following block
MAX_NONCE = 2 ** 32               # Attempts before sealing gives up

# Genesis Block
# =============
GENESIS_PREVIOUS_HASH = "0"
GENESIS_TX_ID = "0"
SYSTEM_ADDRESS = "system"         # Sender of genesis and reward transactions
NETWORK_ADDRESS = "network"       # Recipient of the genesis transaction

# Addresses
# =========
ADDRESS_PREFIX = "0x"
ADDRESS_HEX_LENGTH = 16

# Secure Storage
# ==============
STORAGE_KEYS = {
    'wallet': "CHAIN_WALLET_DATA",
    'version': "CHAIN_WALLET_VERSION",
    'blockchain': "CHAIN_BLOCKCHAIN_DATA",
}
STORAGE_VERSION = 1
SECRET_KEY = "super-secret-chainwallet-key"   # Demo only, never ship a fixed key
STORAGE_SALT = b"chainwallet-storage-salt-v1"
PBKDF2_ITERATIONS = 100_000
