from django.urls import path
from .views import (
    FollowersView,
    FollowingView,
    FollowView,
    LeaderboardView,
    ProfileCreateView,
    ProfileDetailView,
    PublicProfileView,
    SolveCreateView,
    UserContributionsView,
    UserSolvesView,
    UserStatsView,
)

urlpatterns = [
    path("users", ProfileCreateView.as_view(), name="profile-create"),
    path("users/<str:user_id>", ProfileDetailView.as_view(), name="profile-detail"),
    path("users/<str:user_id>/solves", UserSolvesView.as_view(), name="user-solves"),
    path("users/<str:user_id>/stats", UserStatsView.as_view(), name="user-stats"),
    path("users/<str:user_id>/contributions", UserContributionsView.as_view(), name="user-contributions"),
    path("users/<str:user_id>/follow", FollowView.as_view(), name="user-follow"),
    path("users/<str:user_id>/followers", FollowersView.as_view(), name="user-followers"),
    path("users/<str:user_id>/following", FollowingView.as_view(), name="user-following"),
    path("profiles/<str:username>", PublicProfileView.as_view(), name="public-profile"),
    path("solves", SolveCreateView.as_view(), name="solve-create"),
    path("leaderboard", LeaderboardView.as_view(), name="leaderboard"),
]
