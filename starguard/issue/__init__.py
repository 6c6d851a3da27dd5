"""Policy violation issues."""

from starguard.issue.tracker import IssueTracker, result_hash

__all__ = ["IssueTracker", "result_hash"]
