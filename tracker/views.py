# tracker/views.py
from __future__ import annotations

import math

import pytz
from django.core.paginator import EmptyPage, Paginator
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .exceptions import (
    FollowError,
    RetrievalError,
    TrackerError,
    UnknownUserError,
    UserExists,
    UsernameTaken,
)
from .models import Difficulty
from .serializers import (
    ProfileSerializer,
    ProfileSummarySerializer,
    ProfileWriteSerializer,
    SolveCreateSerializer,
    SolvedRecordSerializer,
    StatsSummarySerializer,
)

MAX_PAGE_SIZE = 100


def _error(e: TrackerError) -> Response:
    """Map a service error onto an HTTP response."""
    if isinstance(e, UnknownUserError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, RetrievalError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(e, (UsernameTaken, UserExists)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, FollowError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return Response({'detail': str(e)}, status=code)


def _tz_param(request) -> str:
    """Read ?tz=, falling back to the configured default; raises ValueError if unknown."""
    tzname = request.query_params.get('tz') or services.default_tz()
    try:
        pytz.timezone(tzname)
    except pytz.UnknownTimeZoneError:
        raise ValueError('invalid tz.')
    return tzname


def _int_param(
    request,
    name: str,
    default: int | None = None,
    minimum: int = 1,
    maximum: int | None = None,
) -> int | None:
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return default
    try:
        v = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f'{name} must be an integer.')
    if v < minimum:
        raise ValueError(f'{name} must be >= {minimum}.')
    if maximum is not None and v > maximum:
        raise ValueError(f'{name} must be <= {maximum}.')
    return v


class ProfileCreateView(APIView):
    """POST /api/users (201 on create, 409 if the user_id or username is taken)."""
    def post(self, request):
        body = request.data or {}
        user_id = body.get('user_id')
        if not user_id:
            return Response({'detail': 'user_id is required.'}, status=400)

        ser = ProfileWriteSerializer(data=body)
        if not ser.is_valid():
            return Response(ser.errors, status=400)

        try:
            profile = services.create_profile(str(user_id), **ser.validated_data)
        except TrackerError as e:
            return _error(e)
        return Response(ProfileSerializer(profile).data, status=status.HTTP_201_CREATED)


class ProfileDetailView(APIView):
    """GET / PATCH /api/users/{user_id}"""
    def get(self, request, user_id: str):
        try:
            profile = services.get_profile(user_id)
        except TrackerError as e:
            return _error(e)
        data = ProfileSerializer(profile).data
        data['follow_counts'] = services.follow_counts(user_id)
        return Response(data)

    def patch(self, request, user_id: str):
        ser = ProfileWriteSerializer(data=request.data or {}, partial=True)
        if not ser.is_valid():
            return Response(ser.errors, status=400)
        try:
            profile = services.update_profile(user_id, **ser.validated_data)
        except TrackerError as e:
            return _error(e)
        return Response(ProfileSerializer(profile).data)


class PublicProfileView(APIView):
    """
    GET /api/profiles/{username}
    Public profile page: profile fields, follow counts, solved-by-difficulty
    breakdown and the most recent solves.
    """
    def get(self, request, username: str):
        try:
            profile = services.get_profile_by_username(username)
            solved = services.difficulty_breakdown(profile.user_id)
            recent = services.recent_solves(profile.user_id)
        except TrackerError as e:
            return _error(e)
        data = ProfileSerializer(profile).data
        data['follow_counts'] = services.follow_counts(profile.user_id)
        data['solved'] = solved
        data['recent'] = SolvedRecordSerializer(recent, many=True).data
        return Response(data)


class SolveCreateView(APIView):
    """
    POST /api/solves?tz=UTC (201 on first solve of a problem, 200 on a repeat solve).
    tz sets the day boundary used for the cached streak.
    """
    def post(self, request):
        try:
            tzname = _tz_param(request)
        except ValueError as e:
            return Response({'detail': str(e)}, status=400)

        ser = SolveCreateSerializer(data=request.data or {})
        if not ser.is_valid():
            return Response(ser.errors, status=400)
        data = ser.validated_data

        # No date_solved means "solved just now" (server time).
        solved_at = data.get('date_solved') or timezone.now()

        try:
            obj, created = services.record_solve(
                data['user_id'],
                number=data['number'],
                name=data['name'],
                difficulty=data['difficulty'],
                date_solved=solved_at,
                tz=tzname,
            )
        except TrackerError as e:
            return _error(e)

        return Response(
            SolvedRecordSerializer(obj).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class UserSolvesView(APIView):
    """
    GET /api/users/{user_id}/solves
      ?number=1
      &name=two sum
      &difficulty=Easy|Medium|Hard
      &page=1
      &page_size=20
    Newest solves first.
    """
    def get(self, request, user_id: str):
        difficulty = request.query_params.get('difficulty') or None
        if difficulty is not None and difficulty not in Difficulty.values:
            return Response({'detail': 'difficulty must be Easy|Medium|Hard.'}, status=400)
        try:
            number = _int_param(request, 'number')
            page = _int_param(request, 'page', 1)
            page_size = min(_int_param(request, 'page_size', 20), MAX_PAGE_SIZE)
        except ValueError as e:
            return Response({'detail': str(e)}, status=400)

        try:
            services.get_profile(user_id)
        except TrackerError as e:
            return _error(e)

        qs = services.list_solves(
            user_id,
            number=number,
            name=request.query_params.get('name') or None,
            difficulty=difficulty,
        )
        paginator = Paginator(qs, page_size)
        try:
            page_obj = paginator.page(page)
            results = list(page_obj.object_list)
        except EmptyPage:
            results = []

        return Response({
            'count': paginator.count,
            'page': page,
            'total_pages': paginator.num_pages if paginator.count else 0,
            'results': SolvedRecordSerializer(results, many=True).data,
        })


class UserStatsView(APIView):
    """
    GET /api/users/{user_id}/stats?tz=Asia/Tokyo
    Recomputed from the full solve history on every call.
    """
    def get(self, request, user_id: str):
        try:
            tzname = _tz_param(request)
        except ValueError as e:
            return Response({'detail': str(e)}, status=400)

        try:
            summary = services.recompute(user_id, tz=tzname)
            recent = services.recent_solves(user_id)
        except TrackerError as e:
            return _error(e)

        data = StatsSummarySerializer(summary).data
        data['user_id'] = user_id
        data['tz'] = tzname
        data['recent'] = SolvedRecordSerializer(recent, many=True).data
        return Response(data, status=status.HTTP_200_OK)


class UserContributionsView(APIView):
    """GET /api/users/{user_id}/contributions?tz=UTC&days=365"""
    def get(self, request, user_id: str):
        try:
            tzname = _tz_param(request)
            days = _int_param(request, 'days', 365, maximum=services.MAX_CONTRIBUTION_DAYS)
        except ValueError as e:
            return Response({'detail': str(e)}, status=400)

        try:
            counts = services.contributions(user_id, tz=tzname, days=days)
        except TrackerError as e:
            return _error(e)
        return Response({'user_id': user_id, 'tz': tzname, 'days': counts})


class LeaderboardView(APIView):
    """GET /api/leaderboard?type=problems|streak&page=1&tz=UTC"""
    def get(self, request):
        kind = request.query_params.get('type', 'problems')
        if kind not in services.LEADERBOARD_KINDS:
            return Response({'detail': 'type must be problems|streak.'}, status=400)
        try:
            page = _int_param(request, 'page', 1)
            tzname = _tz_param(request)
        except ValueError as e:
            return Response({'detail': str(e)}, status=400)

        per_page = services.leaderboard_page_size()
        try:
            rows, total = services.leaderboard(kind, page, per_page, tz=tzname)
        except TrackerError as e:
            return _error(e)

        return Response({
            'type': kind,
            'page': page,
            'total_users': total,
            'total_pages': math.ceil(total / per_page),
            'results': rows,
        })


class FollowView(APIView):
    """POST / DELETE /api/users/{user_id}/follow with body {"follower_id": ...}"""
    def _follower_id(self, request):
        return (request.data or {}).get('follower_id')

    def post(self, request, user_id: str):
        follower_id = self._follower_id(request)
        if not follower_id:
            return Response({'detail': 'follower_id is required.'}, status=400)
        try:
            created = services.follow(str(follower_id), user_id)
        except TrackerError as e:
            return _error(e)
        return Response(
            {'following': True, 'follow_counts': services.follow_counts(user_id)},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def delete(self, request, user_id: str):
        follower_id = self._follower_id(request)
        if not follower_id:
            return Response({'detail': 'follower_id is required.'}, status=400)
        if not services.unfollow(str(follower_id), user_id):
            return Response({'detail': 'not following.'}, status=404)
        return Response({'following': False, 'follow_counts': services.follow_counts(user_id)})


class FollowersView(APIView):
    """GET /api/users/{user_id}/followers"""
    def get(self, request, user_id: str):
        try:
            users = services.followers(user_id)
        except TrackerError as e:
            return _error(e)
        return Response(ProfileSummarySerializer(users, many=True).data)


class FollowingView(APIView):
    """GET /api/users/{user_id}/following"""
    def get(self, request, user_id: str):
        try:
            users = services.following(user_id)
        except TrackerError as e:
            return _error(e)
        return Response(ProfileSummarySerializer(users, many=True).data)
