"""Tests for rule conditions."""

import pytest

from mail_automata.errors import RuleSyntaxError
from mail_automata.mail.messages import MessageData
from mail_automata.rules.conditions import (
    Condition,
    ConditionType,
    ThreadSubType,
    compile_pattern,
)


class TestCompilePattern:
    """Tests for pattern compilation."""

    @pytest.mark.parametrize(
        "pattern,target,expected",
        [
            # Labels in the address are ignored
            ("some-mailing-list@gmail.com", "some-mailing-list@gmail.com", True),
            ("some-mailing-list@gmail.com", "prefix-some-mailing-list@gmail.com", False),
            ("some-mailing-list@gmail.com", "some-mailing-list-suffix@gmail.com", False),
            ("some-mailing-list@gmail.com", "some-mailing-list+tag1@gmail.com", True),
            # Display names and <> wrapping
            ("abc@gmail.com", "<abc@gmail.com>", True),
            ("abc@gmail.com", "<abc+dd@gmail.com>", True),
            ("abc@gmail.com", "dd <abc+dd@gmail.com>", True),
            # A label in the pattern is required
            ("some-mailing-list+tag1@gmail.com", "some-mailing-list@gmail.com", False),
            ("some-mailing-list+tag1@gmail.com", "some-mailing-list+tag1@gmail.com", True),
            ("some-mailing-list+tag1@gmail.com", "some-mailing-list+tag2@gmail.com", False),
            # Exact matching
            ('"some-mailing-list@gmail.com"', "some-mailing-list@gmail.com", True),
            ('"some-mailing-list@gmail.com"', "prefix-some-mailing-list@gmail.com", False),
            ('"some-mailing-list@gmail.com"', "some-mailing-list-suffix@gmail.com", False),
            ('"some-mailing-list@gmail.com"', "some-mailing-list+tag1@gmail.com", False),
            ('"some-mailing-list+tag1@gmail.com"', "some-mailing-list@gmail.com", False),
            ('"some-mailing-list+tag1@gmail.com"', "some-mailing-list+tag1@gmail.com", True),
            ('"some-mailing-list+tag1@gmail.com"', "some-mailing-list+tag2@gmail.com", False),
            # Case-insensitive
            ("abc+Def@gmail.com", "abc+def@gmail.com", True),
            ('"abc+Def@gmail.com"', "abc+def@gmail.com", True),
            # Regex
            ("/some-.*@gmail.com/", "some-mailing-list@gmail.com", True),
            ("/some-.*@gmail.com/", "some-mailing-list+tag@gmail.com", True),
            ("/some-.*@gmail.com/", "some2-mailing-list@gmail.com", False),
        ],
    )
    def test_address_patterns(self, pattern: str, target: str, expected: bool) -> None:
        """Test address pattern matching."""
        assert (compile_pattern(pattern, True).search(target) is not None) is expected

    def test_regex_case_insensitive_flag(self) -> None:
        """Test /.../i regex."""
        pattern = compile_pattern("/feedback access request/i", False)
        assert pattern.search("Feedback access request") is not None

    def test_regex_dotall_flag(self) -> None:
        """Test /.../s regex lets dot match newlines."""
        assert compile_pattern("/abc.def/si", False).search("Abc\nDef") is not None
        assert compile_pattern("/abc.def/i", False).search("Abc\nDef") is None

    def test_regex_ignores_global_flag(self) -> None:
        """Test that the g flag is accepted and has no effect."""
        assert compile_pattern("/report/g", False).search("weekly report") is not None

    def test_text_pattern_is_literal_and_case_sensitive(self) -> None:
        """Test bare text patterns."""
        pattern = compile_pattern("a.b (c)", False)
        assert pattern.search("x a.b (c) y") is not None
        assert pattern.search("axb (c)") is None
        assert pattern.search("A.B (C)") is None

    def test_empty_pattern_raises(self) -> None:
        """Test that an empty pattern is rejected."""
        with pytest.raises(RuleSyntaxError):
            compile_pattern("", False)

    def test_invalid_regex_raises(self) -> None:
        """Test that an invalid regex is rejected."""
        with pytest.raises(RuleSyntaxError, match="Invalid pattern"):
            compile_pattern("/[unclosed/", False)


class TestConditionParsing:
    """Tests for parsing condition expressions."""

    def test_parse_leaf(self) -> None:
        """Test parsing a simple matcher."""
        condition = Condition.parse("(subject hello world)")
        assert condition.type == ConditionType.SUBJECT
        assert condition.value == "hello world"
        assert condition.children == ()

    def test_keywords_are_case_insensitive(self) -> None:
        """Test that keywords may be written in any case."""
        condition = Condition.parse("(AND (From abc@gmail.com) (THREAD IS_STARRED))")
        assert condition.type == ConditionType.AND
        assert condition.children[0].type == ConditionType.FROM
        assert condition.children[1].thread_subtype == ThreadSubType.IS_STARRED

    def test_parse_nested_multiline(self) -> None:
        """Test parsing nested operators spread over lines."""
        condition = Condition.parse(
            """(and
                 (from abc@gmail.com)
                 (or
                   (receiver ijl@gmail.com)
                   (receiver xyz@gmail.com)))"""
        )
        assert condition.type == ConditionType.AND
        assert len(condition.children) == 2
        assert condition.children[1].type == ConditionType.OR
        assert [c.value for c in condition.children[1].children] == [
            "ijl@gmail.com",
            "xyz@gmail.com",
        ]

    def test_parse_header(self) -> None:
        """Test parsing a header condition."""
        condition = Condition.parse("(header X-List mylist.gmail.com)")
        assert condition.type == ConditionType.HEADER
        assert condition.header == "X-List"
        assert condition.value == "mylist.gmail.com"

    def test_parse_thread_pattern_subtype(self) -> None:
        """Test parsing a thread condition with a pattern."""
        condition = Condition.parse("(thread first_message_subject this is IN subject)")
        assert condition.thread_subtype == ThreadSubType.FIRST_MESSAGE_SUBJECT
        assert condition.value == "this is IN subject"

    @pytest.mark.parametrize(
        "condition_str,message",
        [
            ("subject abc", "should be surrounded by ()"),
            ("(subject a) (body b)", "single expression"),
            ("(and (subject a)", "non-balanced"),
            ("(or (subject a)) (body b))", "single expression"),
            ("(made_up abc)", "Unexpected condition type"),
            ("(subject)", "should have value"),
            ("(header X-List)", "should have value"),
            ("(header)", "should name a header"),
            ("(thread is_made_up)", "Invalid 'thread' subtype"),
            ("(thread label)", "should have value"),
            ("(not)", "exactly one"),
            ("(not (subject a) (subject b))", "exactly one"),
            ("(and (from a@x.com) subject b)", "text outside of its sub-conditions"),
            ("(and (subject a) garbage)", "text outside of its sub-conditions"),
            ("(or stray (subject a))", "text outside of its sub-conditions"),
            ("(not (subject a) junk)", "text outside of its sub-conditions"),
            ("(body /[a/)", "Invalid pattern"),
        ],
    )
    def test_syntax_errors(self, condition_str: str, message: str) -> None:
        """Test malformed expressions."""
        with pytest.raises(RuleSyntaxError, match=message):
            Condition.parse(condition_str)

    def test_headers_collects_nested_names(self) -> None:
        """Test headers() walks the whole tree."""
        condition = Condition.parse(
            "(and (header X-List a) (or (header Precedence /list/i) (subject c)))"
        )
        assert condition.headers() == ["X-List", "Precedence"]
        assert Condition.parse("(subject c)").headers() == []

    @pytest.mark.parametrize(
        "condition_str",
        [
            "(subject /weekly report/i)",
            "(and (from abc@gmail.com) (not (receiver \"team@corp.com\")))",
            "(or (header X-Priority 1) (thread label work/reports) (thread is_unread))",
            "(thread first_message_subject Weekly)",
        ],
    )
    def test_to_expression_reparses(
        self, condition_str: str, sample_message: MessageData
    ) -> None:
        """Test that a serialized condition parses to an equivalent one."""
        condition = Condition.parse(condition_str)
        reparsed = Condition.parse(condition.to_expression())
        assert reparsed.to_expression() == condition.to_expression()
        assert reparsed.matches(sample_message) == condition.matches(sample_message)


class TestOperatorConditions:
    """Tests for and/or/not."""

    def test_nested_and_or(self, make_message_data) -> None:
        """Test nested and/or over several address fields."""
        message = make_message_data(
            from_="dd <abc+dd@gmail.com>",
            to="something+-random@gmail.com",
            cc="xyz+tag@gmail.com",
        )
        condition = Condition.parse(
            """(and
                 (from abc@gmail.com)
                 (or
                   (receiver ijl@gmail.com)
                   (receiver xyz@gmail.com)))"""
        )
        assert condition.matches(message) is True

    def test_not(self, make_message_data) -> None:
        """Test negation."""
        condition = Condition.parse("(not (receiver abc@gmail.com))")
        assert condition.matches(make_message_data(to="AAA BBB <abc@gmail.com>")) is False
        assert condition.matches(make_message_data(to="AAA BBB <def@gmail.com>")) is True

    def test_or_all_false(self, sample_message: MessageData) -> None:
        """Test OR with no matching child."""
        condition = Condition.parse("(or (subject nope) (body nope))")
        assert condition.matches(sample_message) is False

    def test_and_one_false(self, sample_message: MessageData) -> None:
        """Test AND with a failing child."""
        condition = Condition.parse("(and (subject Weekly) (body nope))")
        assert condition.matches(sample_message) is False

    def test_empty_operators(self, sample_message: MessageData) -> None:
        """Test that empty AND is true and empty OR is false."""
        assert Condition.parse("(and)").matches(sample_message) is True
        assert Condition.parse("(or)").matches(sample_message) is False


class TestAddressConditions:
    """Tests for address-based conditions."""

    def test_from(self, sample_message: MessageData) -> None:
        """Test from ignores the +label and display name."""
        assert Condition.parse("(from alice@example.com)").matches(sample_message) is True
        assert Condition.parse("(from bob@corp.com)").matches(sample_message) is False

    def test_multiple_to_entries(self, make_message_data) -> None:
        """Test matching one of several TO: entries."""
        message = make_message_data(
            from_="DDD EEE <def@corp.com>",
            to="AAA BBB <abc@corp.com>, DDD EEE <def@corp.com>",
        )
        condition = Condition.parse("(or (receiver abc@gmail.com) (receiver abc@corp.com))")
        assert condition.matches(message) is True

    def test_to_cc_bcc(self, make_message_data) -> None:
        """Test each recipient field separately."""
        message = make_message_data(to="a@x.com", cc="b@x.com", bcc="c@x.com")
        assert Condition.parse("(to a@x.com)").matches(message) is True
        assert Condition.parse("(to b@x.com)").matches(message) is False
        assert Condition.parse("(cc b@x.com)").matches(message) is True
        assert Condition.parse("(bcc c@x.com)").matches(message) is True

    def test_receiver_with_label(self, make_message_data) -> None:
        """Test receiver patterns carrying a label."""
        message = make_message_data(to="abc+Def@bar.com")
        assert Condition.parse("(receiver abc+Def@bar.com)").matches(message) is True
        assert Condition.parse('(receiver "abc+Def@bar.com")').matches(message) is True

    def test_sender_includes_reply_to(self, sample_message: MessageData) -> None:
        """Test sender covers from and reply-to."""
        assert Condition.parse("(sender alice@example.com)").matches(sample_message) is True
        assert Condition.parse("(sender support@example.com)").matches(sample_message) is True
        assert Condition.parse("(sender bob@corp.com)").matches(sample_message) is False

    def test_list(self, sample_message: MessageData) -> None:
        """Test the mailing list address."""
        assert Condition.parse("(list reports@corp.com)").matches(sample_message) is True
        assert Condition.parse("(list reports-admin@corp.com)").matches(sample_message) is False

    def test_receiver_includes_list(self, sample_message: MessageData) -> None:
        """Test receiver covers to, cc, bcc and the mailing list."""
        assert Condition.parse("(receiver carol@corp.com)").matches(sample_message) is True
        assert Condition.parse("(receiver team@corp.com)").matches(sample_message) is True
        assert Condition.parse("(receiver reports@corp.com)").matches(sample_message) is True

    def test_list_absent(self, make_message_data) -> None:
        """Test list conditions on a message that is not from a list."""
        message = make_message_data(to="a@x.com")
        assert Condition.parse("(list /.*/)").matches(message) is True
        assert Condition.parse("(list a@x.com)").matches(message) is False


class TestTextConditions:
    """Tests for subject and body conditions."""

    def test_subject(self, sample_message: MessageData) -> None:
        """Test subject substring and regex matching."""
        assert Condition.parse("(subject Report)").matches(sample_message) is True
        assert Condition.parse("(subject report)").matches(sample_message) is False
        assert Condition.parse("(subject /report/i)").matches(sample_message) is True

    def test_body_case_sensitive(self, make_message_data) -> None:
        """Test body matching is case-sensitive by default."""
        message = make_message_data(body="Text with aSdF in it")
        assert Condition.parse("(body with aSdF)").matches(message) is True
        assert Condition.parse("(body asdf)").matches(message) is False

    def test_body_multiline_regex(self, sample_message: MessageData) -> None:
        """Test the m flag anchors at line starts."""
        assert Condition.parse("(body /^See/m)").matches(sample_message) is True
        assert Condition.parse("(body /^See/)").matches(sample_message) is False


class TestThreadConditions:
    """Tests for thread-level conditions."""

    @pytest.mark.parametrize(
        "subtype,flag",
        [
            ("is_important", "is_important"),
            ("is_in_inbox", "is_in_inbox"),
            ("is_in_priority_inbox", "is_in_priority_inbox"),
            ("is_in_spam", "is_in_spam"),
            ("is_in_trash", "is_in_trash"),
            ("is_starred", "is_starred"),
            ("is_unread", "is_unread"),
        ],
    )
    def test_flags(self, make_message_data, subtype: str, flag: str) -> None:
        """Test each thread flag in both states."""
        condition = Condition.parse(f"(thread {subtype})")
        assert condition.matches(make_message_data(thread_flags={flag: True})) is True
        assert condition.matches(make_message_data(thread_flags={flag: False})) is False

    def test_label_case_insensitive(self, make_message_data) -> None:
        """Test labels match whole names in any case."""
        message = make_message_data(thread_labels=["ABC", "XYZ", "ABC/XYZ"])
        assert Condition.parse("(thread label xyz)").matches(message) is True
        assert Condition.parse("(thread label XY)").matches(message) is False

    def test_label_needs_full_name(self, make_message_data) -> None:
        """Test a nested label only matches its full name."""
        message = make_message_data(thread_labels=["ABC/XYZ"])
        assert Condition.parse("(thread label XYZ)").matches(message) is False
        assert Condition.parse("(thread label ABC/XYZ)").matches(message) is True

    def test_first_message_subject(self, make_message_data) -> None:
        """Test first message subject matching."""
        condition = Condition.parse("(thread first_message_subject this is IN subject)")
        assert condition.matches(make_message_data(subject="subject this is IN subjects")) is True
        assert condition.matches(make_message_data(subject="subject this is in subjects")) is False

        regex = Condition.parse("(thread first_message_subject /teST Regex/i)")
        assert regex.matches(make_message_data(subject="RE: test regex subjectline")) is True


class TestHeaderConditions:
    """Tests for custom header conditions."""

    def test_header_value(self, make_message_data) -> None:
        """Test a requested header."""
        message = make_message_data(
            headers={"Sender": "abc@def.com"},
            requested_headers=["Sender", "List-Post"],
        )
        assert Condition.parse("(header Sender abc@def.com)").matches(message) is True

    def test_nested_headers(self, make_message_data) -> None:
        """Test several headers in a nested condition."""
        message = make_message_data(
            from_="DDD EEE <abc@gmail.com>",
            headers={"X-List": "mylist.gmail.com", "Precedence": "bills list"},
            requested_headers=["X-List", "Precedence"],
        )
        condition = Condition.parse(
            """(and
                 (from abc@gmail.com)
                 (and
                   (header X-List mylist.gmail.com)
                   (header Precedence /list/i)))"""
        )
        assert condition.matches(message) is True

    def test_missing_header_does_not_match(self, sample_message: MessageData) -> None:
        """Test that an absent header is a non-match, not an error."""
        assert Condition.parse("(header X-Missing /.*/)").matches(sample_message) is False
        assert Condition.parse("(not (header X-Missing /.*/))").matches(sample_message) is True

    def test_header_name_is_case_sensitive(self, sample_message: MessageData) -> None:
        """Test header names are looked up exactly."""
        assert Condition.parse("(header X-Priority 1)").matches(sample_message) is True
        assert Condition.parse("(header x-priority 1)").matches(sample_message) is False

    def test_unrequested_header_is_dropped(self, make_message_data) -> None:
        """Test that only requested headers are kept."""
        message = make_message_data(
            headers={"X-List": "mylist.gmail.com"},
            requested_headers=["Precedence"],
        )
        assert message.headers == {}
        assert Condition.parse("(header X-List mylist.gmail.com)").matches(message) is False
