"""In-memory code-host connector for deterministic tests."""

from __future__ import annotations

import copy
from typing import Any

from devflow.shared.errors import ErrorKind, WorkflowError


class InMemoryGitHubConnector:
    """Pull requests, reviews, and check runs held in dictionaries.

    ``failures`` maps an operation name (``merge_pull``, ``search_pulls`` ...)
    to the exception it should raise.
    """

    def __init__(self, login: str = "me") -> None:
        self.login = login
        self.pulls: dict[tuple[str, int], dict[str, Any]] = {}
        self.reviews: dict[tuple[str, int], list[dict[str, Any]]] = {}
        self.check_runs: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.deleted_branches: list[tuple[str, str]] = []
        self.merged: list[tuple[str, int, str]] = []
        self.calls: list[str] = []
        self.failures: dict[str, BaseException] = {}

    def add_pull(
        self,
        repo: str,
        number: int,
        *,
        title: str = "",
        head: str = "",
        base: str = "staging",
        author: str | None = None,
        state: str = "open",
        mergeable: bool | None = True,
        draft: bool = False,
        requested_reviewers: list[str] | None = None,
        reviews: list[tuple[str, str]] | None = None,
        checks: list[tuple[str, str, str | None]] | None = None,
        labels: list[str] | None = None,
    ) -> dict[str, Any]:
        sha = f"sha-{repo.replace('/', '-')}-{number}"
        pull = {
            "number": number,
            "title": title or f"Pull {number}",
            "state": state,
            "merged": False,
            "draft": draft,
            "mergeable": mergeable,
            "head": {"ref": head or f"branch-{number}", "sha": sha},
            "base": {"ref": base, "repo": {"full_name": repo}},
            "user": {"login": author or self.login},
            "labels": [{"name": label} for label in (labels or [])],
            "requested_reviewers": [{"login": login} for login in (requested_reviewers or [])],
            "created_at": "2026-01-01T00:00:00Z",
            "html_url": f"https://github.com/{repo}/pull/{number}",
        }
        self.pulls[(repo, number)] = pull
        self.reviews[(repo, number)] = [
            {"user": {"login": login}, "state": state_value, "submitted_at": None}
            for login, state_value in (reviews or [])
        ]
        self.check_runs[(repo, sha)] = [
            {"name": name, "status": status, "conclusion": conclusion}
            for name, status, conclusion in (checks or [])
        ]
        return pull

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _pull(self, repo: str, number: int) -> dict[str, Any]:
        pull = self.pulls.get((repo, int(number)))
        if pull is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, f"Pull request {repo}#{number} not found")
        return pull

    def current_user(self) -> str:
        self._enter("current_user")
        return self.login

    def get_pull(self, repo: str, number: int) -> dict[str, Any]:
        self._enter("get_pull")
        return copy.deepcopy(self._pull(repo, number))

    def list_pulls(
        self, repo: str, *, state: str = "open", head: str | None = None
    ) -> list[dict[str, Any]]:
        self._enter("list_pulls")
        branch = head.split(":", 1)[-1] if head else None
        rows = []
        for (pull_repo, _number), pull in sorted(self.pulls.items()):
            if pull_repo != repo:
                continue
            if state != "all" and pull["state"] != state:
                continue
            if branch and pull["head"]["ref"] != branch:
                continue
            rows.append(copy.deepcopy(pull))
        return rows

    def list_reviews(self, repo: str, number: int) -> list[dict[str, Any]]:
        self._enter("list_reviews")
        return copy.deepcopy(self.reviews.get((repo, int(number)), []))

    def list_check_runs(self, repo: str, sha: str) -> dict[str, Any]:
        self._enter("list_check_runs")
        runs = copy.deepcopy(self.check_runs.get((repo, sha), []))
        return {"total_count": len(runs), "check_runs": runs}

    def search_pulls(self, query: str) -> dict[str, Any]:
        """Understands the qualifiers the adapters send: repo:, author:, review-requested:."""
        self._enter("search_pulls")
        qualifiers = dict(
            token.split(":", 1) for token in query.split() if ":" in token
        )
        items = []
        for (repo, number), pull in sorted(self.pulls.items()):
            if qualifiers.get("is") not in {None, "pr", "open"} or pull["state"] != "open":
                continue
            if "repo" in qualifiers and qualifiers["repo"] != repo:
                continue
            author = qualifiers.get("author")
            if author and pull["user"]["login"] != self._who(author):
                continue
            reviewer = qualifiers.get("review-requested")
            if reviewer:
                requested = {row["login"] for row in pull["requested_reviewers"]}
                if self._who(reviewer) not in requested:
                    continue
            items.append(
                {
                    "number": number,
                    "title": pull["title"],
                    "repository_url": f"https://api.github.com/repos/{repo}",
                }
            )
        return {"total_count": len(items), "items": items}

    def create_pull(self, repo: str, payload: dict[str, Any]) -> dict[str, Any]:
        self._enter("create_pull")
        number = max([num for (pull_repo, num) in self.pulls if pull_repo == repo] or [0]) + 1
        pull = self.add_pull(
            repo,
            number,
            title=str(payload.get("title", "")),
            head=str(payload.get("head", "")),
            base=str(payload.get("base", "staging")),
            draft=bool(payload.get("draft", False)),
            mergeable=None,
        )
        pull["body"] = payload.get("body", "")
        return copy.deepcopy(pull)

    def merge_pull(self, repo: str, number: int, method: str) -> dict[str, Any]:
        self._enter("merge_pull")
        pull = self._pull(repo, number)
        if pull["mergeable"] is False:
            raise WorkflowError(ErrorKind.CONFLICT, "Pull Request is not mergeable")
        pull["state"] = "closed"
        pull["merged"] = True
        self.merged.append((repo, int(number), method))
        return {"merged": True, "sha": pull["head"]["sha"], "message": "Pull Request successfully merged"}

    def delete_branch(self, repo: str, branch: str) -> None:
        self._enter("delete_branch")
        self.deleted_branches.append((repo, branch))

    def _who(self, value: str) -> str:
        return self.login if value == "@me" else value
