"""
Address and txid vectors shared by the test suites.
"""

# BIP-173 / BIP-350 test vectors
MAINNET_P2WPKH = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
MAINNET_P2WSH = "bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3"
MAINNET_P2TR = "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0"
MAINNET_P2PKH = "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"
MAINNET_P2SH = "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy"

TESTNET_P2WPKH = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
TESTNET_P2WSH = "tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3q0sl5k7"
TESTNET_P2TR = "tb1pqqqqp399et2xygdj5xreqhjjvcmzhxw4aywxecjdzew6hylgvsesf3hn0c"
TESTNET_P2PKH = "n4bkvTyU1dVdzsrhWBqBw8fEMbHjJvtmJR"
TESTNET_P2SH = "2N8Z5t3GyPW1hSAEJZqQ1GUkZ9ofoGhgKPf"

TXID_A = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TXID_B = "fedcba9876543210fedcba9876543210fedcba9876543210fedcba9876543210"
