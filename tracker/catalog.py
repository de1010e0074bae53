# tracker/catalog.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import httpx
from django.conf import settings
from django.db import transaction

from .exceptions import CatalogError
from .models import SolvedRecord

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://leetcode.com/graphql"
PROBLEM_URL = "https://leetcode.com/problems/{slug}"

QUESTION_FIELDS = """
  questionId
  title
  titleSlug
  difficulty
  topicTags {
    name
    slug
  }
"""

PROBLEM_LIST_QUERY = """
query problemsetQuestionList {
  problemsetQuestionList: questionList {
    questions: data {%s}
  }
}
""" % QUESTION_FIELDS

PROBLEM_QUERY = """
query questionData($titleSlug: String!) {
  question(titleSlug: $titleSlug) {%s}
}
""" % QUESTION_FIELDS


@dataclass(frozen=True)
class CatalogProblem:
    number: int
    title: str
    slug: str
    difficulty: str
    tags: Tuple[str, ...] = ()

    @property
    def url(self) -> str:
        return PROBLEM_URL.format(slug=self.slug)


def _parse_question(q: Dict) -> Optional[CatalogProblem]:
    try:
        number = int(q["questionId"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Skipping catalog entry with bad questionId: %r", q)
        return None
    return CatalogProblem(
        number=number,
        title=q.get("title") or "",
        slug=q.get("titleSlug") or "",
        difficulty=q.get("difficulty") or "",
        tags=tuple(t["name"] for t in q.get("topicTags") or [] if t.get("name")),
    )


class CatalogClient:
    """Thin GraphQL client for the LeetCode problem catalog."""

    def __init__(self, endpoint: str | None = None, *, timeout: float = 10.0,
                 transport: httpx.BaseTransport | None = None):
        self.endpoint = endpoint or getattr(settings, "LEETCODE_GRAPHQL_URL", DEFAULT_ENDPOINT)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        self._client.close()

    def _query(self, query: str, variables: Dict | None = None) -> Dict:
        payload = {"query": query}
        if variables:
            payload["variables"] = variables
        try:
            resp = self._client.post(self.endpoint, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CatalogError(f"catalog request failed: {e}") from e
        if body.get("errors"):
            raise CatalogError(f"catalog returned errors: {body['errors']}")
        return body.get("data") or {}

    def fetch_all_problems(self) -> List[CatalogProblem]:
        data = self._query(PROBLEM_LIST_QUERY)
        try:
            questions = data["problemsetQuestionList"]["questions"]
        except (KeyError, TypeError) as e:
            raise CatalogError("unexpected catalog response shape.") from e
        problems = [p for p in map(_parse_question, questions or []) if p is not None]
        logger.info("Fetched %d problems from the catalog", len(problems))
        return problems

    def fetch_problem(self, slug: str) -> Optional[CatalogProblem]:
        data = self._query(PROBLEM_QUERY, {"titleSlug": slug})
        question = data.get("question")
        return _parse_question(question) if question else None


def sync_catalog(client: CatalogClient) -> int:
    """Fill leetcode_url and problem_types on every stored record found in the catalog."""
    by_number = {p.number: p for p in client.fetch_all_problems()}
    updated = 0
    with transaction.atomic():
        for rec in SolvedRecord.objects.all().only("id", "number"):
            problem = by_number.get(rec.number)
            if problem is None:
                continue
            rec.leetcode_url = problem.url
            rec.problem_types = list(problem.tags)
            rec.save(update_fields=["leetcode_url", "problem_types"])
            updated += 1
    logger.info("Catalog sync updated %d records", updated)
    return updated
