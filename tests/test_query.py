"""
Tests for the indexer query grammar.
"""

from decimal import Decimal

import pytest

from localnode_engine.app.domain.errors import QueryParseError
from localnode_engine.app.domain.models import Event, EventAttribute
from localnode_engine.app.domain.query import Operator, Query, flatten_events


class TestParse:
    def test_single_equality(self):
        q = Query.parse("tm.event = 'Tx'")
        assert len(q.conditions) == 1
        cond = q.conditions[0]
        assert cond.key == "tm.event"
        assert cond.op is Operator.EQ
        assert cond.operand == "Tx"

    def test_conjunction_with_numbers(self):
        q = Query.parse("tm.event = 'Tx' AND tx.height > 5 and tx.height <= 10.5")
        assert [c.op for c in q.conditions] == [Operator.EQ, Operator.GT, Operator.LTE]
        assert q.conditions[1].operand == Decimal("5")
        assert q.conditions[2].operand == Decimal("10.5")

    def test_contains_and_exists(self):
        q = Query.parse("message.action CONTAINS 'send' AND withdraw.validator EXISTS")
        assert q.conditions[0].op is Operator.CONTAINS
        assert q.conditions[1].op is Operator.EXISTS
        assert q.conditions[1].operand is None

    def test_str_round_trips_to_canonical_form(self):
        q = Query.parse("  tx.height>=3   AND  transfer.recipient='addr'  ")
        assert str(q) == "tx.height >= 3 AND transfer.recipient = 'addr'"
        assert str(Query.parse(str(q))) == str(q)

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "tm.event",
            "tm.event =",
            "tm.event = Tx",
            "tm.event = 'Tx' AND",
            "tm.event = 'Tx' OR tx.height = 1",
            "= 'Tx'",
            "tx.height > 'abc'",
            "message.action CONTAINS 5",
            "tm.event = 'Tx",
            "tm.event ! 'Tx'",
        ],
    )
    def test_malformed_queries_are_rejected(self, text):
        with pytest.raises(QueryParseError):
            Query.parse(text)

    def test_error_reports_position(self):
        with pytest.raises(QueryParseError) as exc_info:
            Query.parse("tm.event = 'Tx' OR x = 1")
        assert exc_info.value.position == 16
        assert exc_info.value.stage == "query_parse"


class TestMatches:
    @pytest.fixture
    def events(self):
        return {
            "tm.event": ["Tx"],
            "tx.height": ["7"],
            "message.action": ["/cosmos.bank.v1beta1.MsgSend"],
            "transfer.recipient": ["addr1", "addr2"],
        }

    def test_equality_matches_any_value(self, events):
        assert Query.parse("transfer.recipient = 'addr2'").matches(events)
        assert not Query.parse("transfer.recipient = 'addr3'").matches(events)

    def test_numeric_comparisons(self, events):
        assert Query.parse("tx.height > 5").matches(events)
        assert Query.parse("tx.height = 7").matches(events)
        assert Query.parse("tx.height <= 7").matches(events)
        assert not Query.parse("tx.height < 7").matches(events)

    def test_numeric_comparison_ignores_non_numeric_values(self, events):
        assert not Query.parse("message.action > 1").matches(events)

    def test_contains(self, events):
        assert Query.parse("message.action CONTAINS 'MsgSend'").matches(events)

    def test_exists(self, events):
        assert Query.parse("transfer.recipient EXISTS").matches(events)
        assert not Query.parse("transfer.sender EXISTS").matches(events)

    def test_all_conditions_must_match(self, events):
        assert Query.parse("tm.event = 'Tx' AND tx.height > 5").matches(events)
        assert not Query.parse("tm.event = 'Tx' AND tx.height > 7").matches(events)


def test_flatten_events_groups_values_by_composite_key():
    events = [
        Event(type="transfer", attributes=[EventAttribute(key="recipient", value="a")]),
        Event(type="transfer", attributes=[EventAttribute(key="recipient", value="b")]),
        Event(type="message", attributes=[EventAttribute(key="sender", value="c")]),
    ]
    assert flatten_events(events) == {
        "transfer.recipient": ["a", "b"],
        "message.sender": ["c"],
    }
