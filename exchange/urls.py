from django.urls import path

from .views import (
    AdminAwardPointsView,
    EarnPointsView,
    PointsView,
    PurchaseView,
    RedeemPointsView,
    SwapDetailView,
    SwapListCreateView,
)

urlpatterns = [
    # Points endpoints
    path('points/', PointsView.as_view(), name='points'),
    path('points/earn/', EarnPointsView.as_view(), name='points_earn'),
    path('points/redeem/', RedeemPointsView.as_view(), name='points_redeem'),
    path('admin/award-points/', AdminAwardPointsView.as_view(), name='admin_award_points'),

    # Exchange endpoints
    path('products/purchase/', PurchaseView.as_view(), name='product_purchase'),
    path('swaps/', SwapListCreateView.as_view(), name='swap_list_create'),
    path('swaps/<int:pk>/', SwapDetailView.as_view(), name='swap_detail'),
]
