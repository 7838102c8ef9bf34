"""
URL configuration for the bazaar project.

WebSocket routes live in ``exchange.routing``.
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenBlacklistView,
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)
from exchange.views import (
    ThreadAcknowledgeView,
    ThreadListView,
    ThreadMessagesView,
    TransactionAcceptView,
    TransactionAcknowledgeView,
    TransactionCancelView,
    TransactionConfirmView,
    TransactionDetailView,
    TransactionListCreateView,
    TransactionMessagesView,
    TransactionRejectView,
    TransactionReviewView,
    TransactionScheduleView,
    UnreadCountView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Transaction endpoints
    path('api/transactions/', TransactionListCreateView.as_view(), name='transaction_list'),
    path('api/transactions/<int:pk>/', TransactionDetailView.as_view(), name='transaction_detail'),
    path('api/transactions/<int:pk>/accept/', TransactionAcceptView.as_view(), name='transaction_accept'),
    path('api/transactions/<int:pk>/reject/', TransactionRejectView.as_view(), name='transaction_reject'),
    path('api/transactions/<int:pk>/cancel/', TransactionCancelView.as_view(), name='transaction_cancel'),
    path('api/transactions/<int:pk>/confirm/', TransactionConfirmView.as_view(), name='transaction_confirm'),
    path('api/transactions/<int:pk>/schedule/', TransactionScheduleView.as_view(), name='transaction_schedule'),
    path('api/transactions/<int:pk>/messages/', TransactionMessagesView.as_view(), name='transaction_messages'),
    path('api/transactions/<int:pk>/ack/', TransactionAcknowledgeView.as_view(), name='transaction_ack'),
    path('api/transactions/<int:pk>/reviews/', TransactionReviewView.as_view(), name='transaction_reviews'),

    # Conversation endpoints
    path('api/threads/', ThreadListView.as_view(), name='thread_list'),
    path('api/threads/<int:pk>/messages/', ThreadMessagesView.as_view(), name='thread_messages'),
    path('api/threads/<int:pk>/ack/', ThreadAcknowledgeView.as_view(), name='thread_ack'),
    path('api/unread/', UnreadCountView.as_view(), name='unread_count'),

    # JWT Authentication endpoints
    path('api/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
    path('api/token/blacklist/', TokenBlacklistView.as_view(), name='token_blacklist'),
]
