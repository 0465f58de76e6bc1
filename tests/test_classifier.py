"""
Unit tests for task classification.

Tests each category, rule precedence between adjacent rules, and fallback
behavior for malformed input.
"""

import pytest

from token_economy.core.classifier import (
    classify,
    describe_category,
    match_rule,
    recommended_tier,
    trigger_source_of,
    RULES,
)
from token_economy.core.models import ResourceTier, TaskCategory


class TestCategories:
    """Test that each category is recognized."""

    @pytest.mark.parametrize("text, meta, expected", [
        ("Read HEARTBEAT.md", {"trigger_source": "heartbeat"}, TaskCategory.HEARTBEAT),
        ("anything at all", {"trigger": "heartbeat"}, TaskCategory.HEARTBEAT),
        ("anything at all", {"triggerSource": "heartbeat"}, TaskCategory.HEARTBEAT),
        ("run the heartbeat checklist in HEARTBEAT.md", {}, TaskCategory.HEARTBEAT),
        ("read the file config.json", {}, TaskCategory.FILE_OPS),
        ("ls -la /tmp", {}, TaskCategory.FILE_OPS),
        ("show me the file contents", {}, TaskCategory.FILE_OPS),
        ("please list the directory for me", {}, TaskCategory.FILE_OPS),
        ("extract data from this JSON", {}, TaskCategory.EXTRACT),
        ("can you fetch the information about our orders", {}, TaskCategory.EXTRACT),
        ("summarize this document", {}, TaskCategory.SUMMARIZE),
        ("give me a TL;DR", {}, TaskCategory.SUMMARIZE),
        ("debug this Python code", {}, TaskCategory.CODE),
        ("implement the algorithm", {}, TaskCategory.CODE),
        ("is rust faster than java here?", {}, TaskCategory.CODE),
        ("analyze the architecture options", {}, TaskCategory.STRATEGY),
        ("what strategy should I use?", {}, TaskCategory.STRATEGY),
        ("evaluate these alternatives", {}, TaskCategory.STRATEGY),
        ("hello, how are you?", {}, TaskCategory.WRITE),
        ("tell me about quantum computing", {}, TaskCategory.WRITE),
    ])
    def test_classification(self, text, meta, expected):
        assert classify(text, meta) == expected

    def test_heartbeat_word_alone_is_not_heartbeat(self):
        """Verify the heartbeat token needs a heartbeat file reference too."""
        assert classify("my heartbeat is racing, write me a poem", {}) != TaskCategory.HEARTBEAT

    def test_file_verb_must_lead(self):
        """Verify file verbs only count at the start of the text."""
        assert classify("can you read this?", {}) == TaskCategory.WRITE

    def test_file_verb_is_whole_word(self):
        """Verify 'category' does not match the 'cat' verb."""
        assert classify("category theory for beginners", {}) == TaskCategory.WRITE

    def test_explain_is_not_a_plan(self):
        assert classify("explain how tides work", {}) == TaskCategory.WRITE


class TestPrecedence:
    """Test that each adjacent pair of rules resolves to the higher rule."""

    @pytest.mark.parametrize("text, meta, expected", [
        # heartbeat trigger over file op verb
        ("read the notes", {"trigger_source": "heartbeat"}, TaskCategory.HEARTBEAT),
        # heartbeat file over file op verb
        ("read heartbeat.md", {}, TaskCategory.HEARTBEAT),
        # file op verb over extract
        ("find and extract data from the logs", {}, TaskCategory.FILE_OPS),
        # file display over extract
        ("open the file and pull the data out", {}, TaskCategory.FILE_OPS),
        # extract over summarize
        ("extract the content and summarize it", {}, TaskCategory.EXTRACT),
        # summarize over code
        ("summarize this python script", {}, TaskCategory.SUMMARIZE),
        # code over strategy
        ("design a function for retries", {}, TaskCategory.CODE),
        # strategy over write
        ("plan a birthday party", {}, TaskCategory.STRATEGY),
    ])
    def test_adjacent_pairs(self, text, meta, expected):
        assert classify(text, meta) == expected

    def test_file_ops_beats_code(self):
        """A file-op request mentioning code stays a file operation."""
        assert classify("read the function definition", {}) == TaskCategory.FILE_OPS

    def test_rule_order(self):
        """Verify rules are declared in priority order."""
        assert [rule.category for rule in RULES] == [
            TaskCategory.HEARTBEAT,
            TaskCategory.HEARTBEAT,
            TaskCategory.FILE_OPS,
            TaskCategory.FILE_OPS,
            TaskCategory.EXTRACT,
            TaskCategory.SUMMARIZE,
            TaskCategory.CODE,
            TaskCategory.CODE,
            TaskCategory.STRATEGY,
        ]


class TestRobustness:
    """Test the classifier never fails."""

    @pytest.mark.parametrize("text", [None, 42, ["read"], {"text": "code"}, b"debug"])
    def test_non_string_defaults_to_write(self, text):
        assert classify(text, {}) == TaskCategory.WRITE

    def test_missing_meta(self):
        assert classify("debug this") == TaskCategory.CODE

    def test_malformed_meta_is_ignored(self):
        assert classify("debug this", "heartbeat") == TaskCategory.CODE

    def test_empty_text(self):
        assert classify("", {}) == TaskCategory.WRITE

    def test_deterministic(self):
        """Verify identical input yields identical output."""
        text = "read the function definition and refactor it"
        meta = {"trigger_source": "user"}
        assert classify(text, meta) == classify(text, meta)

    def test_match_rule_reports_default(self):
        assert match_rule("hello there", {}) is None
        assert match_rule("debug this", {}).name == "code_action"


class TestHelpers:
    """Test category descriptions and recommended tiers."""

    @pytest.mark.parametrize("meta, expected", [
        ({"trigger_source": "cron", "trigger": "user"}, "cron"),
        ({"triggerSource": "cron"}, "cron"),
        ({"trigger": "user"}, "user"),
        ({}, None),
        ("cron", None),
    ])
    def test_trigger_source_of(self, meta, expected):
        assert trigger_source_of(meta) == expected

    def test_every_category_has_description(self):
        for category in TaskCategory:
            assert describe_category(category) != "Unknown task type"

    @pytest.mark.parametrize("category, tier", [
        (TaskCategory.HEARTBEAT, ResourceTier.NONE),
        (TaskCategory.FILE_OPS, ResourceTier.CHEAP),
        (TaskCategory.EXTRACT, ResourceTier.CHEAP),
        (TaskCategory.SUMMARIZE, ResourceTier.CHEAP),
        (TaskCategory.WRITE, ResourceTier.MID),
        (TaskCategory.CODE, ResourceTier.MID),
        (TaskCategory.STRATEGY, ResourceTier.HIGH),
    ])
    def test_recommended_tier(self, category, tier):
        assert recommended_tier(category) == tier
