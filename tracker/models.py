from django.db import models


class Difficulty(models.TextChoices):
    EASY = "Easy", "Easy"
    MEDIUM = "Medium", "Medium"
    HARD = "Hard", "Hard"


class Profile(models.Model):
    user_id = models.CharField(max_length=64, primary_key=True)           # Opaque id from the auth provider
    username = models.CharField(max_length=64, unique=True, null=True, blank=True)
    bio = models.TextField(blank=True, default="")
    avatar_url = models.URLField(max_length=255, blank=True, default="")
    leetcode_handle = models.CharField(max_length=64, blank=True, default="")
    github_handle = models.CharField(max_length=64, blank=True, default="")
    linkedin_url = models.URLField(max_length=255, blank=True, default="")
    current_streak = models.PositiveIntegerField(default=0)               # Cached; refreshed by services.recompute
    longest_streak = models.PositiveIntegerField(default=0)               # Cached; refreshed by services.recompute
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.username or self.user_id


class SolvedRecord(models.Model):
    user_id = models.CharField(max_length=64, db_index=True)
    number = models.PositiveIntegerField()                                # Catalog problem number
    name = models.CharField(max_length=255)
    difficulty = models.CharField(max_length=10, choices=Difficulty.choices)
    date_solved = models.DateTimeField(db_index=True)                     # Latest solve time
    times_solved = models.PositiveIntegerField(default=1)                 # Incremented on repeat solves
    leetcode_url = models.URLField(max_length=255, blank=True, default="")
    problem_types = models.JSONField(default=list, blank=True)            # Topic tag names from the catalog
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user_id", "number"],
                                    name="uq_user_problem"),
        ]
        indexes = [
            models.Index(fields=["user_id", "date_solved"], name="idx_user_solved"),
        ]
        ordering = ["-date_solved"]

    def __str__(self):
        return f"{self.user_id} - {self.number}. {self.name}"


class Follow(models.Model):
    follower = models.ForeignKey(Profile, on_delete=models.CASCADE, related_name="following_set")
    following = models.ForeignKey(Profile, on_delete=models.CASCADE, related_name="follower_set")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["follower", "following"],
                                    name="uq_follow_pair"),
        ]
