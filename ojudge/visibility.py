"""Read-time filtering of hidden test cases.

Admins and the problem's author see every test case and every per-test result.
Everybody else only gets the entries flagged ``visible``; hidden entries are
dropped from the payload entirely rather than masked.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from ojudge.auth_token import Identity


def can_view_hidden(identity: Optional[Identity], author_id: Optional[str]) -> bool:
    if identity is None:
        return False
    if identity.is_admin:
        return True
    return author_id is not None and str(author_id) == identity.user_id


def _is_visible(entry: Any) -> bool:
    if isinstance(entry, Mapping):
        return entry.get("visible") is True
    return getattr(entry, "visible", False) is True


def _filter(entries: Optional[Iterable[Any]], identity, author_id) -> list[Any]:
    items = list(entries or [])
    if can_view_hidden(identity, author_id):
        return items
    return [entry for entry in items if _is_visible(entry)]


def filter_testcases(cases, identity: Optional[Identity], author_id: Optional[str]) -> list[Any]:
    """Problem test cases (ORM rows or dicts) the requester may see."""
    return _filter(cases, identity, author_id)


def filter_test_results(results, identity: Optional[Identity], author_id: Optional[str]) -> list[Any]:
    """Per-test results of a submission the requester may see."""
    return _filter(results, identity, author_id)


__all__ = ["can_view_hidden", "filter_test_results", "filter_testcases"]
