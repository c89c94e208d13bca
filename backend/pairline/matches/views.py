# pairline/matches/views.py
from django.utils import timezone
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny

from pairline.matches.services import get_broker


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


class HealthView(APIView):
    """
    GET /api/health
    res: { status, timestamp, onlineUsers, waitingUsers, activeCalls }
    """

    permission_classes = [AllowAny]

    def get(self, request):
        data = {"status": "ok", "timestamp": timezone.now().isoformat()}
        data.update(get_broker().snapshot())
        return ok(data)


class UserStatusView(APIView):
    """
    GET /api/match/users/<userId>
    접속 안 해있으면 USER_NOT_FOUND (404, exception handler가 envelope 만듦)
    """

    permission_classes = [AllowAny]

    def get(self, request, user_id):
        return ok(get_broker().user_status(user_id))
