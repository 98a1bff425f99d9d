"""Tests for prompt argument completers."""

from user_directory.completions import (
    DEPARTMENTS,
    complete,
    complete_department,
    complete_name,
)


class TestCompleters:
    """Test the individual completer functions."""

    def test_department_empty_prefix(self):
        assert complete_department("", {}) == DEPARTMENTS

    def test_department_prefix(self):
        assert complete_department("m", {}) == ["marketing"]
        assert complete_department("x", {}) == []

    def test_name_by_department(self):
        """Test suggestions depend on the department argument."""
        assert complete_name("", {"department": "engineering"}) == ["Alice", "Bob", "Charlie"]
        assert complete_name("", {"department": "sales"}) == ["David", "Eve", "Frank"]
        assert complete_name("I", {"department": "marketing"}) == ["Iris"]

    def test_name_without_department(self):
        assert complete_name("", {}) == ["Guest"]
        assert complete_name("", {"department": "support"}) == ["Guest"]
        assert complete_name("Z", {}) == []


class TestCompleteLookup:
    """Test completer resolution by prompt and argument."""

    def test_registered_argument(self):
        assert complete("user-greeting", "department", "e") == ["engineering"]

    def test_context_is_forwarded(self):
        assert complete("user-greeting", "name", "", {"department": "sales"}) == ["David", "Eve", "Frank"]

    def test_unregistered_argument(self):
        assert complete("user-greeting", "title", "") is None
        assert complete("generate-fake-user", "name", "") is None
