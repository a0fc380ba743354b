"""Tests for issue search."""

import pytest

from services.search import (
    SearchCriteria,
    parse_query,
    resolve_criteria,
    search_issues,
    to_search_result,
)


@pytest.fixture
def issues(login_bug, dark_mode_feature):
    return [login_bug, dark_mode_feature]


def ids(results):
    return [issue.id for issue in results]


class TestParseQuery:
    """Test prefix parsing."""

    def test_plain_text(self):
        assert parse_query("login") == SearchCriteria(text="login")

    def test_status_prefix(self):
        assert parse_query("status:done") == SearchCriteria(status="done")

    def test_label_prefix(self):
        assert parse_query("label:bug") == SearchCriteria(label="bug")

    def test_assignee_prefix(self):
        assert parse_query("assignee:alice") == SearchCriteria(assignee="alice")

    def test_only_first_prefix_applies(self):
        criteria = parse_query("status:done label:bug")
        assert criteria.status == "done label:bug"
        assert criteria.label == ""

    def test_empty_and_none(self):
        assert parse_query("") == SearchCriteria()
        assert parse_query(None) == SearchCriteria()


class TestResolveCriteria:
    """Test explicit filters against prefix-parsed ones."""

    def test_explicit_value_wins(self):
        criteria = resolve_criteria("status:done", status="todo")
        assert criteria.status == "todo"

    def test_prefix_used_when_no_explicit_value(self):
        criteria = resolve_criteria("label:bug", status="todo")
        assert criteria.label == "bug"
        assert criteria.status == "todo"


class TestSearchIssues:
    """Test filtering issue lists."""

    def test_text_matches_title(self, issues):
        assert ids(search_issues(issues, "login")) == ["issue_login"]

    def test_text_matches_description(self, issues):
        assert ids(search_issues(issues, "SSO")) == ["issue_login"]

    def test_text_is_case_sensitive(self, issues):
        assert ids(search_issues(issues, "LOGIN")) == []

    def test_label_filter(self, issues):
        assert ids(search_issues(issues, label="bug")) == ["issue_login"]

    def test_label_filter_is_substring(self, issues):
        assert ids(search_issues(issues, label="feat")) == ["issue_dark_mode"]

    def test_single_letter_matches_both(self, issues):
        assert ids(search_issues(issues, "e")) == ["issue_login", "issue_dark_mode"]

    def test_filters_are_anded(self, issues):
        assert ids(search_issues(issues, "bug", status="done")) == []

    def test_status_prefix(self, issues):
        assert ids(search_issues(issues, "status:backlog")) == ["issue_dark_mode"]

    def test_assignee_prefix(self, issues):
        assert ids(search_issues(issues, "assignee:alice")) == ["issue_login"]

    def test_assignee_is_exact(self, issues):
        assert ids(search_issues(issues, assignee="ali")) == []

    def test_explicit_status_overrides_prefix(self, issues):
        assert ids(search_issues(issues, "status:todo", status="backlog")) == ["issue_dark_mode"]

    def test_empty_query_returns_everything(self, issues):
        assert ids(search_issues(issues)) == ["issue_login", "issue_dark_mode"]

    def test_returns_lazy_iterator(self, issues):
        results = search_issues(issues, "login")
        assert not isinstance(results, list)
        assert next(results).id == "issue_login"


class TestSearchResult:
    """Test result projection."""

    def test_projection_fields(self, login_bug):
        login_bug.estimate = 3

        result = to_search_result(login_bug)

        assert result == {
            "type": "issue",
            "id": "issue_login",
            "title": "Fix login bug",
            "status": "todo",
            "labels": ["bug"],
            "estimate": 3,
            "workspace": "default",
        }
