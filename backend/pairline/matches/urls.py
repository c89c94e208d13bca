# pairline/matches/urls.py
from django.urls import path
from .views import UserStatusView

urlpatterns = [
    path("users/<str:user_id>", UserStatusView.as_view()),
    path("users/<str:user_id>/", UserStatusView.as_view()),
]
