from __future__ import annotations

from datetime import datetime

from github import Github

from prtask_core.comments import Reply, ReviewComment

_REVIEW_THREADS_QUERY = """
query($owner: String!, $name: String!, $number: Int!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      reviewThreads(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          isResolved
          comments(first: 1) { nodes { databaseId } }
        }
      }
    }
  }
}
"""


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def _login(user) -> str:
    return getattr(user, "login", None) or ""


def fetch_thread_resolution(pr) -> dict[int, bool]:
    """Map each review thread's root comment id to its resolved flag.

    REST review comments carry no thread state, so this pages through the
    PR's reviewThreads over GraphQL. Raises GithubException on failure.
    """
    owner, name = pr.base.repo.full_name.split("/", 1)
    variables = {"owner": owner, "name": name, "number": pr.number, "cursor": None}
    resolved: dict[int, bool] = {}
    while True:
        _, data = pr.requester.graphql_query(_REVIEW_THREADS_QUERY, variables)
        threads = data["data"]["repository"]["pullRequest"]["reviewThreads"]
        for thread in threads["nodes"]:
            roots = thread["comments"]["nodes"]
            if roots and roots[0].get("databaseId") is not None:
                resolved[int(roots[0]["databaseId"])] = bool(thread["isResolved"])
        page = threads["pageInfo"]
        if not page["hasNextPage"]:
            return resolved
        variables["cursor"] = page["endCursor"]


def fetch_review_comments(pr) -> list[ReviewComment]:
    """Return the PR's review feedback as one ordered list of ReviewComments.

    Order is fixed for a given PR state: reviews by submission time then id;
    within a review its summary body first, then inline thread roots by id.
    Replies are folded into their root comment rather than listed
    separately, so they feed the root's fingerprint and prompt context.
    Each root carries GitHub's resolved flag for its thread.
    """
    resolution = fetch_thread_resolution(pr)
    raw_comments = sorted(pr.get_review_comments(), key=lambda c: c.id)
    replies: dict[int, list[Reply]] = {}
    roots_by_review: dict[int, list] = {}
    for c in raw_comments:
        parent = getattr(c, "in_reply_to_id", None)
        if parent:
            reply = Reply(author=_login(c.user), body=c.body or "", created_at=_iso(c.created_at))
            replies.setdefault(parent, []).append(reply)
        else:
            roots_by_review.setdefault(c.pull_request_review_id or 0, []).append(c)

    reviews = sorted(pr.get_reviews(), key=lambda r: (_iso(r.submitted_at), r.id))
    seen_reviews = set()
    comments: list[ReviewComment] = []
    for review in reviews:
        seen_reviews.add(review.id)
        if (review.body or "").strip():
            comments.append(
                ReviewComment(
                    id=review.id,
                    review_id=review.id,
                    author=_login(review.user),
                    body=review.body,
                    created_at=_iso(review.submitted_at),
                )
            )
        comments.extend(_to_comment(c, replies, resolution) for c in roots_by_review.get(review.id, []))

    # Inline comments whose review object was not returned still count.
    for review_id in sorted(set(roots_by_review) - seen_reviews):
        comments.extend(_to_comment(c, replies, resolution) for c in roots_by_review[review_id])
    return comments


def _to_comment(c, replies: dict[int, list[Reply]], resolution: dict[int, bool]) -> ReviewComment:
    line = c.line if c.line is not None else getattr(c, "original_line", None)
    return ReviewComment(
        id=c.id,
        review_id=c.pull_request_review_id or 0,
        author=_login(c.user),
        body=c.body or "",
        file=c.path or "",
        line=line or 0,
        thread_resolved=resolution.get(c.id, False),
        created_at=_iso(c.created_at),
        updated_at=_iso(getattr(c, "updated_at", None)),
        replies=tuple(replies.get(c.id, [])),
    )
