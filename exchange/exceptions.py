"""
Error taxonomy for the exchange and ledger engine.

Every error carries a stable ``code`` that callers can rely on and an HTTP
``status_code`` hint used by the request layer. Core services raise these;
views translate them into responses.
"""


class ExchangeError(Exception):
    """Base class for all business-rule failures raised by the core."""

    code = 'exchange_error'
    status_code = 400
    default_message = 'The exchange request could not be completed.'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self):
        """
        Serialize the error for API responses.

        Returns:
            dict: ``error`` message and stable ``code``
        """
        return {'error': self.message, 'code': self.code}


# ----------------------------------------------------------------------------
# Malformed input
# ----------------------------------------------------------------------------

class ValidationError(ExchangeError):
    code = 'validation_error'
    status_code = 400
    default_message = 'Invalid request.'


class InvalidAmount(ValidationError):
    code = 'invalid_amount'
    default_message = 'Points amount must be a positive integer.'


class AmountMismatch(ValidationError):
    code = 'amount_mismatch'
    default_message = 'Points offered do not match the required amount.'


class InvalidAction(ValidationError):
    code = 'invalid_action'
    default_message = 'Invalid action.'


# ----------------------------------------------------------------------------
# Missing or unavailable records
# ----------------------------------------------------------------------------

class NotFoundError(ExchangeError):
    code = 'not_found'
    status_code = 404
    default_message = 'Not found.'


class UserNotFound(NotFoundError):
    code = 'user_not_found'
    default_message = 'User not found.'


class ItemNotFound(NotFoundError):
    code = 'item_not_found'
    default_message = 'Product not found or not available.'


class SwapNotFound(NotFoundError):
    code = 'swap_not_found'
    default_message = 'Swap not found.'


class SwapNotPending(NotFoundError):
    code = 'swap_not_pending'
    default_message = 'Swap is no longer pending.'


class OptionNotFound(NotFoundError):
    code = 'option_not_found'
    default_message = 'Redemption option not found.'


class OptionInactive(NotFoundError):
    code = 'option_inactive'
    default_message = 'Redemption option is not active.'


class OptionExpired(NotFoundError):
    code = 'option_expired'
    default_message = 'Redemption option has expired.'


class RedemptionNotFound(NotFoundError):
    code = 'redemption_not_found'
    default_message = 'Redemption not found.'


class RedemptionExpired(NotFoundError):
    code = 'redemption_expired'
    default_message = 'This reward code has expired.'


# ----------------------------------------------------------------------------
# Caller is not allowed to act on the record
# ----------------------------------------------------------------------------

class AuthorizationError(ExchangeError):
    code = 'not_authorized'
    status_code = 403
    default_message = 'You are not allowed to perform this action.'


class NotOwner(AuthorizationError):
    code = 'not_owner'
    default_message = 'You do not own the offered item.'


class NotAuthorized(AuthorizationError):
    code = 'not_authorized'
    default_message = 'Only the target user can respond to this swap.'


# ----------------------------------------------------------------------------
# Business-rule conflicts
# ----------------------------------------------------------------------------

class ConflictError(ExchangeError):
    code = 'conflict'
    status_code = 409
    default_message = 'The request conflicts with the current state.'


class InsufficientBalance(ConflictError):
    code = 'insufficient_balance'
    default_message = 'Insufficient points balance.'


class InsufficientPoints(InsufficientBalance):
    code = 'insufficient_points'


class SoldOut(ConflictError):
    code = 'sold_out'
    default_message = 'This reward is no longer available.'


class LimitReached(ConflictError):
    code = 'limit_reached'
    default_message = 'You have reached the maximum number of redemptions for this reward.'


class DuplicatePending(ConflictError):
    code = 'duplicate_pending'
    default_message = 'An identical swap request is already pending.'


class SelfTrade(ConflictError):
    code = 'self_trade'
    default_message = 'You cannot purchase your own product.'


class SelfSwap(ConflictError):
    code = 'self_swap'
    default_message = 'You cannot swap with yourself.'


class DuplicateTransaction(ConflictError):
    code = 'already_awarded'
    default_message = 'Points already recorded for this reference.'


AlreadyAwarded = DuplicateTransaction


class RewardCodeExhausted(ConflictError):
    code = 'reward_code_exhausted'
    default_message = 'Could not generate a unique reward code.'


class RedemptionAlreadyUsed(ConflictError):
    code = 'redemption_already_used'
    default_message = 'This reward code has already been used.'


# ----------------------------------------------------------------------------
# Mid-operation catalog failure
# ----------------------------------------------------------------------------

class TransferFailure(ExchangeError):
    code = 'transfer_failed'
    status_code = 409
    default_message = 'Ownership transfer failed; no items changed hands.'


class PartialSuccess:
    """
    Non-fatal warning attached to a result when a secondary step failed.

    The primary transfer has committed; only the named secondary effect
    (for example a bonus award) is missing.
    """

    code = 'partial_success'

    def __init__(self, step, detail, reference_id=None, reference_type=None):
        self.step = step
        self.detail = detail
        self.reference_id = reference_id
        self.reference_type = reference_type

    def __repr__(self):
        return f'PartialSuccess(step={self.step!r}, detail={self.detail!r})'

    def as_dict(self):
        return {
            'code': self.code,
            'step': self.step,
            'detail': self.detail,
            'reference_id': self.reference_id,
            'reference_type': self.reference_type,
        }
