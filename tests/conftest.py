"""
Shared fixtures for the exchange test suite.
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from exchange.models import Item, PointsTransaction, RedemptionOption
from exchange.services import ledger

User = get_user_model()


@pytest.fixture
def api_client():
    """Return API client for testing."""
    return APIClient()


@pytest.fixture
def make_user(db):
    """Factory creating users, optionally funded through the ledger."""
    def _make_user(name, points=0, **extra):
        user = User.objects.create_user(
            email=f'{name}@test.com',
            username=name,
            password='TestPass123!',
            **extra
        )
        if points:
            ledger.award_points(user.id, points, PointsTransaction.TYPE_BONUS, 'Starting balance')
            user.refresh_from_db()
        return user
    return _make_user


@pytest.fixture
def make_item(db):
    """Factory creating active items."""
    def _make_item(owner, title='Denim Jacket', price='80.00', **extra):
        return Item.objects.create(
            owner=owner,
            title=title,
            description=f'{title} in good condition',
            price=Decimal(price),
            **extra
        )
    return _make_item


@pytest.fixture
def make_option(db):
    """Factory creating redemption options."""
    def _make_option(title='10% Off Next Purchase', points_required=100,
                     reward_type=RedemptionOption.REWARD_DISCOUNT, **extra):
        return RedemptionOption.objects.create(
            title=title,
            description=f'{title} reward',
            points_required=points_required,
            reward_type=reward_type,
            reward_value=Decimal('10.00'),
            **extra
        )
    return _make_option


@pytest.fixture
def seller(make_user):
    return make_user('seller')


@pytest.fixture
def buyer(make_user):
    return make_user('buyer', points=100)


@pytest.fixture
def auth_client(api_client):
    """Return a function attaching a JWT access token for a user to the API client."""
    def _auth_client(user):
        token = RefreshToken.for_user(user).access_token
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return api_client
    return _auth_client


@pytest.fixture
def assert_ledger_consistent():
    """Return a check that a cached balance equals the ledger sum and is never negative."""
    def _check(user):
        user.refresh_from_db()
        assert user.points_balance == ledger.ledger_sum(user.id)
        assert user.points_balance >= 0
    return _check
