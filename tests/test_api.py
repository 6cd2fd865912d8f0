"""
Integration tests for the exchange HTTP endpoints.

Tests cover:
- JWT token issuance by email
- Authentication requirements
- Points overview, earning, redemption and admin awards
- Purchases and swaps through the API
- Mapping of exchange errors to status codes and stable error codes
"""

from unittest.mock import patch

import pytest
from django.urls import reverse
from rest_framework import status

from exchange.models import Item, PointsTransaction, Swap
from exchange.services import ledger


@pytest.mark.django_db
class TestAuthentication:
    """Test token issuance and unauthenticated access."""

    def test_obtain_token_with_email(self, api_client, make_user):
        make_user('alice')

        response = api_client.post(
            reverse('token_obtain_pair'),
            {'email': 'alice@test.com', 'password': 'TestPass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
        assert 'refresh' in response.data

    def test_wrong_password(self, api_client, make_user):
        make_user('alice')

        response = api_client.post(
            reverse('token_obtain_pair'),
            {'email': 'alice@test.com', 'password': 'WrongPass!'},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.parametrize('url_name,method', [
        ('points', 'get'),
        ('points_earn', 'post'),
        ('points_redeem', 'post'),
        ('product_purchase', 'post'),
        ('swap_list_create', 'get'),
        ('swap_list_create', 'post'),
        ('admin_award_points', 'post'),
    ])
    def test_requires_authentication(self, api_client, url_name, method):
        response = getattr(api_client, method)(reverse(url_name), {}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_invalid_token(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')

        response = api_client.get(reverse('points'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestPointsEndpoints:
    """Test points overview, earning and redemption."""

    def test_points_overview(self, auth_client, make_user, make_option):
        user = make_user('alice', points=120)
        option = make_option(points_required=100)
        make_option(title='Retired', is_active=False)
        client = auth_client(user)

        response = client.get(reverse('points'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['points_balance'] == 120
        assert len(response.data['transactions']) == 1
        assert response.data['transactions'][0]['amount'] == 120
        assert [o['id'] for o in response.data['available_redemptions']] == [option.id]
        assert response.data['active_redemptions'] == []

    def test_earn_points(self, auth_client, make_user):
        user = make_user('alice')
        client = auth_client(user)

        response = client.post(
            reverse('points_earn'),
            {'action': 'review_written', 'reference_id': 9, 'reference_type': 'review'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['points_earned'] == 5
        assert response.data['new_balance'] == 5

    def test_earn_points_twice_for_same_reference(self, auth_client, make_user):
        user = make_user('alice')
        client = auth_client(user)
        payload = {'action': 'review_written', 'reference_id': 9, 'reference_type': 'review'}

        client.post(reverse('points_earn'), payload, format='json')
        response = client.post(reverse('points_earn'), payload, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'already_awarded'
        assert ledger.get_balance(user.id) == 5

    def test_earn_points_without_reference_refused(self, auth_client, make_user):
        user = make_user('alice')
        client = auth_client(user)

        for _ in range(3):
            response = client.post(reverse('points_earn'), {'action': 'referral'}, format='json')
            assert response.status_code == status.HTTP_400_BAD_REQUEST
            assert response.data['code'] == 'validation_error'

        assert ledger.get_balance(user.id) == 0

    def test_daily_action_earned_once(self, auth_client, make_user):
        user = make_user('alice')
        client = auth_client(user)

        first = client.post(reverse('points_earn'), {'action': 'daily_login'}, format='json')
        second = client.post(reverse('points_earn'), {'action': 'daily_login'}, format='json')

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.data['code'] == 'already_awarded'
        assert ledger.get_balance(user.id) == 2

    def test_earn_points_unknown_action(self, auth_client, make_user):
        client = auth_client(make_user('alice'))

        response = client.post(reverse('points_earn'), {'action': 'sneezed'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'validation_error'
        assert 'action' in response.data['details']

    def test_redeem(self, auth_client, make_user, make_option):
        user = make_user('alice', points=120)
        option = make_option(points_required=100)
        client = auth_client(user)

        response = client.post(reverse('points_redeem'), {'redemption_option_id': option.id}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['reward_code'].startswith('DISC')
        assert response.data['points_used'] == 100
        assert response.data['remaining_points'] == 20

        overview = client.get(reverse('points'))
        assert [r['reward_code'] for r in overview.data['active_redemptions']] == [response.data['reward_code']]

    def test_redeem_insufficient_points(self, auth_client, make_user, make_option):
        client = auth_client(make_user('alice', points=10))
        option = make_option(points_required=100)

        response = client.post(reverse('points_redeem'), {'redemption_option_id': option.id}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'insufficient_points'

    def test_redeem_sold_out(self, auth_client, make_user, make_option):
        client = auth_client(make_user('alice', points=300))
        option = make_option(points_required=100, total_available=1)
        client.post(reverse('points_redeem'), {'redemption_option_id': option.id}, format='json')

        response = client.post(reverse('points_redeem'), {'redemption_option_id': option.id}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'sold_out'

    def test_redeem_inactive_option(self, auth_client, make_user, make_option):
        client = auth_client(make_user('alice', points=300))
        option = make_option(is_active=False)

        response = client.post(reverse('points_redeem'), {'redemption_option_id': option.id}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'option_inactive'


@pytest.mark.django_db
class TestAdminAward:
    """Test the staff-only award endpoint."""

    def test_staff_awards_points(self, auth_client, make_user):
        staff = make_user('staff', is_staff=True)
        member = make_user('member')
        client = auth_client(staff)

        response = client.post(
            reverse('admin_award_points'),
            {'user_id': member.id, 'points': 100, 'description': 'Contest winner'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['new_balance'] == 100
        entry = PointsTransaction.objects.get(user=member)
        assert entry.transaction_type == PointsTransaction.TYPE_BONUS
        assert entry.description == 'Contest winner'

    def test_non_staff_forbidden(self, auth_client, make_user):
        member = make_user('member')
        client = auth_client(member)

        response = client.post(
            reverse('admin_award_points'),
            {'user_id': member.id, 'points': 100},
            format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert ledger.get_balance(member.id) == 0

    def test_unknown_user(self, auth_client, make_user):
        client = auth_client(make_user('staff', is_staff=True))

        response = client.post(reverse('admin_award_points'), {'user_id': 99999, 'points': 10}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'user_not_found'

    @pytest.mark.parametrize('points', [0, -10, 'lots'])
    def test_invalid_points(self, auth_client, make_user, points):
        staff = make_user('staff', is_staff=True)
        client = auth_client(staff)

        response = client.post(reverse('admin_award_points'), {'user_id': staff.id, 'points': points}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestPurchaseEndpoint:
    """Test POST /api/products/purchase/."""

    def test_purchase(self, auth_client, buyer, seller, make_item):
        item = make_item(seller, price='80.00')
        client = auth_client(buyer)

        response = client.post(
            reverse('product_purchase'),
            {'product_id': item.id, 'payment_method': 'points', 'points_used': 80},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['remaining_points'] == 20
        assert response.data['seller_bonus'] == 8
        assert response.data['warnings'] == []
        item.refresh_from_db()
        assert item.owner_id == buyer.id

    @pytest.mark.parametrize('points_used,expected_status,expected_code', [
        (70, status.HTTP_400_BAD_REQUEST, 'amount_mismatch'),
        (0, status.HTTP_400_BAD_REQUEST, 'validation_error'),
    ])
    def test_bad_amount(self, auth_client, buyer, seller, make_item, points_used, expected_status, expected_code):
        item = make_item(seller, price='80.00')
        client = auth_client(buyer)

        response = client.post(
            reverse('product_purchase'),
            {'product_id': item.id, 'points_used': points_used},
            format='json'
        )

        assert response.status_code == expected_status
        assert response.data['code'] == expected_code

    def test_insufficient_balance(self, auth_client, make_user, seller, make_item):
        client = auth_client(make_user('buyer', points=50))
        item = make_item(seller, price='80.00')

        response = client.post(reverse('product_purchase'), {'product_id': item.id, 'points_used': 80}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'insufficient_balance'
        assert 'error' in response.data

    def test_own_product(self, auth_client, buyer, make_item):
        item = make_item(buyer, price='10.00')
        client = auth_client(buyer)

        response = client.post(reverse('product_purchase'), {'product_id': item.id, 'points_used': 10}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'self_trade'

    def test_missing_product(self, auth_client, buyer):
        client = auth_client(buyer)

        response = client.post(reverse('product_purchase'), {'product_id': 777, 'points_used': 10}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'item_not_found'

    def test_unsupported_payment_method(self, auth_client, buyer, seller, make_item):
        item = make_item(seller, price='10.00')
        client = auth_client(buyer)

        response = client.post(
            reverse('product_purchase'),
            {'product_id': item.id, 'payment_method': 'card', 'points_used': 10},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_partial_success_warning_returned(self, auth_client, buyer, seller, make_item):
        from exchange.exceptions import DuplicateTransaction

        item = make_item(seller, price='80.00')
        client = auth_client(buyer)

        with patch('exchange.services.ledger.award_points', side_effect=DuplicateTransaction()):
            response = client.post(
                reverse('product_purchase'),
                {'product_id': item.id, 'points_used': 80},
                format='json'
            )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['seller_bonus'] == 0
        assert [w['step'] for w in response.data['warnings']] == ['seller_bonus']

    def test_unexpected_error_returns_500(self, auth_client, buyer, seller, make_item):
        item = make_item(seller, price='80.00')
        client = auth_client(buyer)

        with patch('exchange.services.exchange.purchase_with_points', side_effect=RuntimeError('boom')):
            response = client.post(
                reverse('product_purchase'),
                {'product_id': item.id, 'points_used': 80},
                format='json'
            )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.data == {'error': 'Internal server error', 'code': 'server_error'}

    def test_get_not_allowed(self, auth_client, buyer):
        response = auth_client(buyer).get(reverse('product_purchase'))

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED


@pytest.mark.django_db
class TestSwapEndpoints:
    """Test swap creation, listing and resolution."""

    @pytest.fixture
    def setup_swap(self, make_user, make_item):
        alice = make_user('alice')
        bob = make_user('bob')
        alice_item = make_item(alice, title='Linen Shirt', price='30.00')
        bob_item = make_item(bob, title='Leather Boots', price='55.00')
        return alice, bob, alice_item, bob_item

    def _propose(self, client, offered, requested):
        return client.post(
            reverse('swap_list_create'),
            {'offered_item_id': offered.id, 'requested_item_id': requested.id, 'message': 'Trade?'},
            format='json'
        )

    def test_create_and_list(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        client = auth_client(alice)

        response = self._propose(client, alice_item, bob_item)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'pending'
        assert response.data['target_user'] == bob.id

        listing = client.get(reverse('swap_list_create'))
        assert listing.status_code == status.HTTP_200_OK
        assert [s['id'] for s in listing.data['outgoing']] == [response.data['swap_id']]
        assert listing.data['outgoing'][0]['target_item_title'] == 'Leather Boots'
        assert listing.data['incoming'] == []

    def test_duplicate_proposal(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        client = auth_client(alice)
        self._propose(client, alice_item, bob_item)

        response = self._propose(client, alice_item, bob_item)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'duplicate_pending'

    def test_offer_item_not_owned(self, auth_client, setup_swap, make_user):
        alice, bob, alice_item, bob_item = setup_swap
        carol = make_user('carol')

        response = self._propose(auth_client(carol), alice_item, bob_item)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['code'] == 'not_owner'

    def test_self_swap(self, auth_client, setup_swap, make_item):
        alice, bob, alice_item, bob_item = setup_swap
        other = make_item(alice, title='Scarf', price='5.00')

        response = self._propose(auth_client(alice), alice_item, other)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'self_swap'

    def test_accept(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        swap_id = self._propose(auth_client(alice), alice_item, bob_item).data['swap_id']

        response = auth_client(bob).patch(
            reverse('swap_detail', kwargs={'pk': swap_id}), {'action': 'accept'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'completed'
        alice_item.refresh_from_db()
        bob_item.refresh_from_db()
        assert alice_item.owner_id == bob.id
        assert bob_item.owner_id == alice.id

    def test_requester_cannot_accept(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        client = auth_client(alice)
        swap_id = self._propose(client, alice_item, bob_item).data['swap_id']

        response = client.patch(reverse('swap_detail', kwargs={'pk': swap_id}), {'action': 'accept'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['code'] == 'not_authorized'

    def test_outsider_forbidden(self, auth_client, setup_swap, make_user):
        alice, bob, alice_item, bob_item = setup_swap
        swap_id = self._propose(auth_client(alice), alice_item, bob_item).data['swap_id']

        response = auth_client(make_user('carol')).patch(
            reverse('swap_detail', kwargs={'pk': swap_id}), {'action': 'reject'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Swap.objects.get(pk=swap_id).status == Swap.STATUS_PENDING

    def test_reject_twice(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        swap_id = self._propose(auth_client(alice), alice_item, bob_item).data['swap_id']
        client = auth_client(bob)
        url = reverse('swap_detail', kwargs={'pk': swap_id})

        first = client.patch(url, {'action': 'reject'}, format='json')
        second = client.patch(url, {'action': 'reject'}, format='json')

        assert first.status_code == second.status_code == status.HTTP_200_OK
        assert first.data['status'] == second.data['status'] == 'rejected'

    def test_accept_after_reject(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        swap_id = self._propose(auth_client(alice), alice_item, bob_item).data['swap_id']
        client = auth_client(bob)
        url = reverse('swap_detail', kwargs={'pk': swap_id})
        client.patch(url, {'action': 'reject'}, format='json')

        response = client.patch(url, {'action': 'accept'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'swap_not_pending'

    def test_transfer_failure(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        swap_id = self._propose(auth_client(alice), alice_item, bob_item).data['swap_id']
        Item.objects.filter(pk=alice_item.pk).update(status=Item.STATUS_SOLD)

        response = auth_client(bob).patch(
            reverse('swap_detail', kwargs={'pk': swap_id}), {'action': 'accept'}, format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'transfer_failed'
        assert Swap.objects.get(pk=swap_id).status == Swap.STATUS_PENDING

    def test_cancel(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        client = auth_client(alice)
        swap_id = self._propose(client, alice_item, bob_item).data['swap_id']

        response = client.patch(reverse('swap_detail', kwargs={'pk': swap_id}), {'action': 'cancel'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'cancelled'

    def test_invalid_action(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap
        swap_id = self._propose(auth_client(alice), alice_item, bob_item).data['swap_id']

        response = auth_client(bob).patch(
            reverse('swap_detail', kwargs={'pk': swap_id}), {'action': 'complete'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'validation_error'

    def test_unknown_swap(self, auth_client, setup_swap):
        alice, bob, alice_item, bob_item = setup_swap

        response = auth_client(bob).patch(reverse('swap_detail', kwargs={'pk': 4242}), {'action': 'accept'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'swap_not_found'
