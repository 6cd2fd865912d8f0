"""
HTTP endpoints for the ReWear exchange.

Views authenticate the caller, validate the request shape and hand off to
the services in exchange.services. Business-rule failures come back as
ExchangeError subclasses and are translated to their status codes here.
"""

import logging

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from .exceptions import ExchangeError, SwapNotFound
from .models import Swap
from .permissions import IsStaffUser, IsSwapParticipant
from .serializers import (
    AdminAwardSerializer,
    EarnPointsSerializer,
    EmailTokenObtainPairSerializer,
    PointsTransactionSerializer,
    PurchaseSerializer,
    RedeemSerializer,
    RedemptionOptionSerializer,
    SwapActionSerializer,
    SwapCreateSerializer,
    SwapSerializer,
    UserRedemptionSerializer,
)
from .services import exchange, ledger, redemption

User = get_user_model()
logger = logging.getLogger(__name__)


class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Issues JWT access/refresh tokens for an email and password.
    """
    serializer_class = EmailTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'token'


class ExchangeAPIView(APIView):
    """
    Base view for exchange endpoints.

    Authentication is checked by hand so unauthenticated callers get a
    consistent 401 body, and core errors are mapped to status codes in one
    place.
    """
    permission_classes = [AllowAny]  # Checked manually for consistent error bodies
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'exchange'

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0]
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip

    def unauthenticated_response(self, request):
        if not request.user or not request.user.is_authenticated:
            return Response(
                {'error': 'Authentication credentials were not provided.', 'code': 'not_authenticated'},
                status=status.HTTP_401_UNAUTHORIZED
            )
        return None

    def validation_response(self, serializer):
        return Response(
            {'error': 'Invalid request.', 'code': 'validation_error', 'details': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    def exchange_error_response(self, request, exc):
        """Translate a core error into its JSON body and status code."""
        log = logger.warning if exc.status_code >= 409 else logger.info
        log(
            f"{self.__class__.__name__} rejected: {exc.code} ({exc.message}), "
            f"User: {request.user.id}, IP: {self.get_client_ip(request)}"
        )
        return Response(exc.as_dict(), status=exc.status_code)

    def server_error_response(self, request, action):
        logger.error(
            f"Unexpected error while {action}. "
            f"User: {getattr(request.user, 'id', None)}, IP: {self.get_client_ip(request)}",
            exc_info=True
        )
        return Response(
            {'error': 'Internal server error', 'code': 'server_error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


# ============================================================================
# Points
# ============================================================================

class PointsView(ExchangeAPIView):
    """
    Points overview for the authenticated user.

    GET /api/points/
    Headers: Authorization: Bearer <access_token>

    Success response (200):
    {
        "points_balance": 120,
        "transactions": [...],           # 20 most recent, newest first
        "available_redemptions": [...],  # redeemable right now
        "active_redemptions": [...]      # unused, unexpired reward codes
    }
    """

    def get(self, request, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        try:
            balance = ledger.get_balance(request.user.id)
            transactions = ledger.get_history(request.user.id, limit=20)
            options = redemption.list_available()
            active = redemption.active_redemptions(request.user.id)
        except ExchangeError as e:
            return self.exchange_error_response(request, e)

        return Response({
            'points_balance': balance,
            'transactions': PointsTransactionSerializer(transactions, many=True).data,
            'available_redemptions': RedemptionOptionSerializer(options, many=True).data,
            'active_redemptions': UserRedemptionSerializer(active, many=True).data,
        })


class EarnPointsView(ExchangeAPIView):
    """
    Award points for a user action (product upload, referral, review, ...).

    POST /api/points/earn/
    Request body: {"action": "review_written", "reference_id": 7, "reference_type": "review"}
                  {"action": "daily_login"}   (reference derived from the current day)

    Error responses:
    - 400: Unknown action, or a missing, mistyped or unexpected reference
    - 409: Points for this reference were already awarded (code already_awarded)
    """

    def post(self, request, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        serializer = EarnPointsSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_response(serializer)
        data = serializer.validated_data

        try:
            result = ledger.award_for_action(
                request.user.id,
                data['action'],
                reference_id=data.get('reference_id'),
                reference_type=data.get('reference_type') or None,
            )
        except ExchangeError as e:
            return self.exchange_error_response(request, e)
        except Exception:
            return self.server_error_response(request, 'awarding points')

        logger.info(
            f"Points earned. User: {request.user.id}, Action: {data['action']}, "
            f"Points: {result.amount}, IP: {self.get_client_ip(request)}"
        )
        return Response(
            {
                'message': f"Earned {result.amount} points",
                'points_earned': result.amount,
                'new_balance': result.new_balance,
                'transaction_id': result.transaction_id,
            },
            status=status.HTTP_201_CREATED
        )


class RedeemPointsView(ExchangeAPIView):
    """
    Exchange points for a reward code.

    POST /api/points/redeem/
    Request body: {"redemption_option_id": 3}

    Success response (201):
    {
        "redemption_id": 12,
        "reward_code": "DISCX7K2PQlz3k9a1",
        "expires_at": "...",
        "points_used": 100,
        "remaining_points": 20
    }

    Error responses:
    - 404: Option missing, inactive or expired
    - 409: Insufficient points, sold out or per-user limit reached
    """
    throttle_scope = 'redeem'

    def post(self, request, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        serializer = RedeemSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_response(serializer)

        try:
            result = redemption.redeem(request.user.id, serializer.validated_data['redemption_option_id'])
        except ExchangeError as e:
            return self.exchange_error_response(request, e)
        except Exception:
            return self.server_error_response(request, 'redeeming points')

        return Response(
            {
                'message': 'Points redeemed successfully',
                'redemption_id': result.redemption_id,
                'reward_code': result.reward_code,
                'expires_at': result.expires_at,
                'points_used': result.points_used,
                'remaining_points': result.remaining_points,
            },
            status=status.HTTP_201_CREATED
        )


class AdminAwardPointsView(ExchangeAPIView):
    """
    Staff-only bonus award.

    POST /api/admin/award-points/
    Request body: {"user_id": 5, "points": 100, "description": "Contest winner"}
    """

    def post(self, request, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        permission = IsStaffUser()
        if not permission.has_permission(request, self):
            logger.warning(
                f"Non-staff user attempted admin points award. "
                f"User: {request.user.id}, IP: {self.get_client_ip(request)}"
            )
            return Response(
                {'error': permission.message, 'code': 'not_authorized'},
                status=status.HTTP_403_FORBIDDEN
            )

        serializer = AdminAwardSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_response(serializer)
        data = serializer.validated_data

        try:
            result = ledger.admin_award(data['user_id'], data['points'], data.get('description') or None)
        except ExchangeError as e:
            return self.exchange_error_response(request, e)
        except Exception:
            return self.server_error_response(request, 'awarding admin points')

        logger.info(
            f"Admin award. Staff: {request.user.id}, User: {data['user_id']}, "
            f"Points: {data['points']}, IP: {self.get_client_ip(request)}"
        )
        return Response(
            {
                'message': f"Awarded {data['points']} points",
                'user_id': data['user_id'],
                'new_balance': result.new_balance,
                'transaction_id': result.transaction_id,
            },
            status=status.HTTP_201_CREATED
        )


# ============================================================================
# Purchase
# ============================================================================

class PurchaseView(ExchangeAPIView):
    """
    Buy a product with points.

    POST /api/products/purchase/
    Request body: {"product_id": 4, "payment_method": "points", "points_used": 50}

    Success response (201):
    {
        "message": "Purchase completed successfully! You now own this product.",
        "order_id": 9,
        "product_id": 4,
        "points_used": 50,
        "remaining_points": 70,
        "seller_bonus": 5,
        "warnings": []
    }

    Error responses:
    - 400: Invalid or mismatched points amount
    - 404: Product not found or not available
    - 409: Own product, insufficient points or concurrent transfer
    """

    def post(self, request, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        serializer = PurchaseSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_response(serializer)
        data = serializer.validated_data

        try:
            result = exchange.purchase_with_points(
                request.user.id,
                data['product_id'],
                data['points_used'],
            )
        except ExchangeError as e:
            return self.exchange_error_response(request, e)
        except Exception:
            return self.server_error_response(request, 'processing a purchase')

        logger.info(
            f"Purchase via API. Order: {result.order_id}, Buyer: {request.user.id}, "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response(
            {
                'message': 'Purchase completed successfully! You now own this product.',
                'order_id': result.order_id,
                'product_id': result.item_id,
                'points_used': result.points_used,
                'remaining_points': result.remaining_points,
                'seller_bonus': result.seller_bonus,
                'warnings': [w.as_dict() for w in result.warnings],
            },
            status=status.HTTP_201_CREATED
        )


# ============================================================================
# Swaps
# ============================================================================

class SwapListCreateView(ExchangeAPIView):
    """
    List the caller's swaps or propose a new one.

    GET /api/swaps/
    Success response (200): {"outgoing": [...], "incoming": [...]}

    POST /api/swaps/
    Request body: {"offered_item_id": 1, "requested_item_id": 2, "message": "Trade?"}
    Success response (201): {"swap_id": 3, "status": "pending", "created_at": "..."}
    """

    def get(self, request, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        swaps = exchange.list_swaps(request.user.id)
        return Response({
            'outgoing': SwapSerializer(swaps['outgoing'], many=True).data,
            'incoming': SwapSerializer(swaps['incoming'], many=True).data,
        })

    def post(self, request, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        serializer = SwapCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_response(serializer)
        data = serializer.validated_data

        try:
            created = exchange.create_swap(
                request.user.id,
                data['offered_item_id'],
                data['requested_item_id'],
                message=data.get('message'),
            )
        except ExchangeError as e:
            return self.exchange_error_response(request, e)
        except Exception:
            return self.server_error_response(request, 'creating a swap')

        return Response(
            {
                'message': 'Swap request sent',
                'swap_id': created.swap_id,
                'status': Swap.STATUS_PENDING,
                'target_user': created.target_user_id,
                'created_at': created.created_at,
            },
            status=status.HTTP_201_CREATED
        )


class SwapDetailView(ExchangeAPIView):
    """
    Respond to or withdraw a swap.

    PATCH /api/swaps/<id>/
    Request body: {"action": "accept" | "reject" | "cancel"}

    accept and reject are reserved for the target user, cancel for the
    requester.

    Error responses:
    - 403: Caller is not allowed to perform the action
    - 404: Swap not found or no longer pending
    - 409: Ownership transfer failed; the swap is pending again
    """

    def patch(self, request, pk, *args, **kwargs):
        denied = self.unauthenticated_response(request)
        if denied:
            return denied

        serializer = SwapActionSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_response(serializer)
        action = serializer.validated_data['action']

        try:
            swap = Swap.objects.get(pk=pk)
        except Swap.DoesNotExist:
            return self.exchange_error_response(request, SwapNotFound(f'Swap {pk} does not exist.'))

        permission = IsSwapParticipant()
        if not permission.has_object_permission(request, self, swap):
            logger.warning(
                f"Non-participant attempted to {action} swap {pk}. "
                f"User: {request.user.id}, IP: {self.get_client_ip(request)}"
            )
            return Response(
                {'error': permission.message, 'code': 'not_authorized'},
                status=status.HTTP_403_FORBIDDEN
            )

        try:
            if action == 'cancel':
                resolution = exchange.cancel_swap(pk, request.user.id)
            else:
                resolution = exchange.resolve_swap(pk, request.user.id, action)
        except ExchangeError as e:
            return self.exchange_error_response(request, e)
        except Exception:
            return self.server_error_response(request, f'handling swap action {action}')

        return Response({
            'message': f'Swap {resolution.status}',
            'swap_id': resolution.swap_id,
            'status': resolution.status,
            'warnings': [w.as_dict() for w in resolution.warnings],
        })
