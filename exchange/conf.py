"""
Settings accessor for the exchange app.

Project settings may override any key through the ``REWEAR_EXCHANGE`` dict.
"""

from decimal import Decimal

from django.conf import settings


DEFAULTS = {
    'SELLER_BONUS_RATE': Decimal('0.10'),
    'SWAP_COMPLETION_BONUS': 25,
    'REDEMPTION_EXPIRY_DAYS': 30,
    'REWARD_CODE_MAX_ATTEMPTS': 5,
    'STRICT_BONUS': False,
    'LOCK_RETRY_ATTEMPTS': 3,
    'LOCK_RETRY_DELAY': 0.05,
    # Each rule names the reference its awards are keyed on: either a
    # 'reference_type' the caller must supply an id for, or a 'period'
    # ('once', 'daily', 'weekly') from which the reference is derived.
    'EARNING_RULES': {
        'product_upload': {'points': 10, 'description': 'Points earned for uploading a product', 'reference_type': 'item'},
        'product_sold': {'points': 50, 'description': 'Points earned for selling a product', 'reference_type': 'order'},
        'swap_completed': {'points': 25, 'description': 'Points earned for completing a swap', 'reference_type': 'swap'},
        'profile_completed': {'points': 20, 'description': 'Points earned for completing profile', 'period': 'once'},
        'first_purchase': {'points': 100, 'description': 'Welcome bonus for first purchase', 'period': 'once'},
        'referral': {'points': 200, 'description': 'Points earned for successful referral', 'reference_type': 'referral'},
        'review_written': {'points': 5, 'description': 'Points earned for writing a review', 'reference_type': 'review'},
        'daily_login': {'points': 2, 'description': 'Daily login bonus', 'period': 'daily'},
        'weekly_active': {'points': 15, 'description': 'Weekly activity bonus', 'period': 'weekly'},
    },
}


def exchange_setting(name):
    """
    Look up an exchange setting, falling back to the built-in default.

    Args:
        name: Key inside ``REWEAR_EXCHANGE``

    Returns:
        The configured value

    Raises:
        KeyError: If the name is not a known setting
    """
    if name not in DEFAULTS:
        raise KeyError(f'Unknown exchange setting: {name}')
    overrides = getattr(settings, 'REWEAR_EXCHANGE', {}) or {}
    return overrides.get(name, DEFAULTS[name])
