"""Error taxonomy for vault operations.

Every failure surfaces synchronously as one of four families. Whatever family
is raised, the triggering operation is rolled back in full by ``Ledger.atomic``.
"""


class VaultError(Exception):
    """Base class for all vault engine errors."""

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)


# ========== VALIDATION ==========


class ValidationError(VaultError):
    """Malformed input. Raised before any state mutation."""


class UnsupportedAsset(ValidationError):
    """No position or adapter is registered for a token."""


class InvalidAddress(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class LengthMismatch(ValidationError):
    pass


class DuplicateToken(ValidationError):
    pass


class SellAmountExceedsBalance(ValidationError):
    """A rebalance sells more of a token than the vault holds."""


class InvalidBufferUnit(ValidationError):
    pass


class InvalidNewBufferUnit(ValidationError):
    pass


class InvalidSolver(ValidationError):
    pass


class InvalidFlashLoanProvider(ValidationError):
    pass


class InsufficientBalance(ValidationError):
    pass


class InvalidFee(ValidationError):
    pass


class InvalidMinPortfolioTokenHoldingAmount(ValidationError):
    pass


class InvalidInitialPortfolioAmount(ValidationError):
    pass


class AssetLimitExceeded(ValidationError):
    pass


class ZeroBalanceToken(ValidationError):
    """A token in the new basket holds no balance after the swaps."""


class PriceFeedUnavailable(ValidationError):
    """The oracle has no usable feed for a token."""


class FlashParamsRequired(ValidationError):
    """A withdrawal from a vault with debt needs flash-loan parameters."""


class InvalidPositionRange(ValidationError):
    pass


# ========== SLIPPAGE ==========


class SlippageError(VaultError):
    """Output below the caller's minimum. Aborts the whole call."""


class InsufficientOutput(SlippageError):
    pass


class MintAmountBelowMinimum(SlippageError):
    pass


class WithdrawalBelowMinimum(SlippageError):
    pass


class CollateralSaleExceedsBuffer(SlippageError):
    """More collateral was sold than the flash loan plus buffer requires."""


# ========== SOLVENCY ==========


class SolvencyError(VaultError):
    """Debt or collateral cannot be honoured. Fatal for the call."""


class FlashLoanRepaymentShortfall(SolvencyError):
    pass


class CollateralInsufficient(SolvencyError):
    pass


class RepayAmountExceedsDebt(SolvencyError):
    pass


class FlashLoanUndersized(SolvencyError):
    pass


class InsufficientRepaymentFunds(SolvencyError):
    pass


class CollateralInUse(SolvencyError):
    pass


class VaultInsolvent(SolvencyError):
    pass


# ========== POLICY ==========


class PolicyError(VaultError):
    """Access or timing policy rejected the call before any economic effect."""


class CooldownPeriodNotPassed(PolicyError):
    pass


class TokenNotWhitelisted(PolicyError):
    pass


class CallerNotAssetManager(PolicyError):
    pass


class UserNotAllowedToDeposit(PolicyError):
    pass


class ProtocolIsPaused(PolicyError):
    pass


class ProtocolEmergencyPaused(PolicyError):
    pass


class CallerNeedToMaintainMinTokenAmount(PolicyError):
    pass


class TransferNotAllowed(PolicyError):
    pass
