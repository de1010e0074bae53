# tracker/serializers.py
import datetime as dt

from django.utils import timezone
from rest_framework import serializers

from .models import Difficulty, Profile, SolvedRecord

# Client clocks may run slightly ahead of ours.
MAX_CLOCK_SKEW = dt.timedelta(minutes=5)


class AwareDateTimeField(serializers.DateTimeField):
    """
    Datetime field that ensures tz-aware UTC datetimes.
    - Accepts ISO strings with/without timezone; if naive → assume UTC.
    - Always outputs ISO in UTC.
    """
    def to_internal_value(self, value):
        d = super().to_internal_value(value)
        if d is None:
            return None
        if timezone.is_naive(d):
            d = timezone.make_aware(d, dt.timezone.utc)
        return d.astimezone(dt.timezone.utc)

    def to_representation(self, value):
        if value is None:
            return None
        if timezone.is_naive(value):
            value = timezone.make_aware(value, dt.timezone.utc)
        return super().to_representation(value.astimezone(dt.timezone.utc))


class SolveCreateSerializer(serializers.Serializer):
    """
    Input for POST /api/solves.
    Notes:
      - Not a ModelSerializer: a repeat (user_id, number) is an update, not a
        uniqueness violation.
      - date_solved is optional; the view defaults it to server time.
        A date in the future is rejected.
    """
    user_id = serializers.CharField(max_length=64)
    number = serializers.IntegerField(min_value=1)
    name = serializers.CharField(max_length=255)
    difficulty = serializers.ChoiceField(choices=Difficulty.choices)
    date_solved = AwareDateTimeField(required=False, allow_null=True)

    def validate_date_solved(self, value):
        if value is not None and value > timezone.now() + MAX_CLOCK_SKEW:
            raise serializers.ValidationError("date_solved cannot be in the future.")
        return value


class SolvedRecordSerializer(serializers.ModelSerializer):
    date_solved = AwareDateTimeField(read_only=True)
    created_at = AwareDateTimeField(read_only=True)

    class Meta:
        model = SolvedRecord
        fields = (
            "id",
            "user_id",
            "number",
            "name",
            "difficulty",
            "date_solved",
            "times_solved",
            "leetcode_url",
            "problem_types",
            "created_at",
        )
        read_only_fields = fields


class ProfileSerializer(serializers.ModelSerializer):
    created_at = AwareDateTimeField(read_only=True)

    class Meta:
        model = Profile
        fields = (
            "user_id",
            "username",
            "bio",
            "avatar_url",
            "leetcode_handle",
            "github_handle",
            "linkedin_url",
            "current_streak",
            "longest_streak",
            "created_at",
        )
        read_only_fields = fields


class ProfileWriteSerializer(serializers.Serializer):
    """Writable profile fields; username uniqueness is checked by the service (409, not 400)."""
    username = serializers.CharField(max_length=64, required=False, allow_null=True)
    bio = serializers.CharField(required=False, allow_blank=True)
    avatar_url = serializers.URLField(max_length=255, required=False, allow_blank=True)
    leetcode_handle = serializers.CharField(max_length=64, required=False, allow_blank=True)
    github_handle = serializers.CharField(max_length=64, required=False, allow_blank=True)
    linkedin_url = serializers.URLField(max_length=255, required=False, allow_blank=True)

    def validate_username(self, v):
        if v is not None and not v.strip():
            raise serializers.ValidationError("Username cannot be empty.")
        return v.strip() if v else v


class ProfileSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = ("user_id", "username", "avatar_url")
        read_only_fields = fields


class StatsSummarySerializer(serializers.Serializer):
    total_solved = serializers.IntegerField()
    solved_today = serializers.IntegerField()
    solved_this_week = serializers.IntegerField()
    solved_this_month = serializers.IntegerField()
    current_streak = serializers.IntegerField()
    longest_streak = serializers.IntegerField()
    streak_message = serializers.CharField()
    easy_count = serializers.IntegerField()
    medium_count = serializers.IntegerField()
    hard_count = serializers.IntegerField()
    average_per_day = serializers.FloatField()
