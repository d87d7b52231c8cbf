"""Generic constants for vault accounting.

These constants are protocol-agnostic and shared by every engine component.
"""

# Time constants
SECONDS_PER_YEAR = 31_557_600  # 365.25 days
SECONDS_PER_DAY = 24 * 3600

# Precision constants
WAD = 10**18  # Standard 18 decimal precision (USD values, share prices, exchange rates)
BPS = 10_000  # Basis points denominator for fee rates

# Buffer unit denominators
FLASHLOAN_BUFFER_DENOMINATOR = 10_000  # flash-loan buffer expressed in 1/10000
COLLATERAL_BUFFER_DENOMINATOR = 100_000  # collateral buffer expressed in 0.001%

# Hard cap for the collateral buffer unit (3%)
MAX_COLLATERAL_BUFFER_UNIT_CAP = 3_000

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
