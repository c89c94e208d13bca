# pairline/config/urls.py
from django.urls import path, include

from pairline.matches.views import HealthView

urlpatterns = [
    path("api/health", HealthView.as_view()),
    path("api/health/", HealthView.as_view()),
    path("api/match/", include("pairline.matches.urls")),
]
