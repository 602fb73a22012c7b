"""Tests for the stateless-service checker rules."""

from __future__ import annotations

import textwrap

from stateguard.analysis import Severity, analyze_source
from stateguard.config import AnalysisConfig, RuleConfig, StateguardConfig


def check(source: str, config: StateguardConfig | None = None):
    return analyze_source(textwrap.dedent(source), "service.py", config)


def codes(report) -> list[tuple[str, str | None, str | None]]:
    return [(f.code, f.method, f.field) for f in report.findings]


STATEFUL_MAILER = """\
class Mailer:
    def __init__(self, http):
        self._http = http
        self._api_key = None
        self._customer_id = None

    def set_api_key(self, api_key):
        self._api_key = api_key

    def set_customer(self, customer_id):
        self._customer_id = customer_id

    def send(self, document):
        return self._http.post(self._customer_id, document, self._api_key)
"""


def test_setter_read_by_other_method_is_reported():
    """Should report SG001 for each setter whose field another method reads."""
    report = check(STATEFUL_MAILER)

    assert codes(report) == [
        ("SG001", "set_api_key", "_api_key"),
        ("SG001", "set_customer", "_customer_id"),
    ]
    finding = report.findings[1]
    assert finding.severity == Severity.ERROR
    assert finding.class_name == "Mailer"
    assert finding.line == 11
    assert [r.method for r in finding.readers] == ["send"]
    assert "set_customer()" in finding.message
    assert "send()" in finding.message


def test_suggestions_follow_the_kind_of_value():
    """Should suggest constructor injection for credentials and parameters otherwise."""
    report = check(STATEFUL_MAILER)
    by_field = {f.field: f.suggestion for f in report.findings}

    assert "constructor" in by_field["_api_key"]
    assert "send(customer_id=...)" in by_field["_customer_id"]
    assert "constructor" not in by_field["_customer_id"]


def test_stateless_service_has_no_findings():
    """Should accept a service with constructor config and per-call parameters."""
    report = check(
        """\
        class Mailer:
            def __init__(self, http, api_key):
                self._http = http
                self._api_key = api_key

            def send(self, customer_id, document):
                return self._http.post(customer_id, document, self._api_key)
        """
    )

    assert report.findings == []
    assert report.classes_checked == 1


def test_setter_only_read_by_itself_is_not_setter_state():
    """Should not report SG001 when no other public method reads the field."""
    report = check(
        """\
        class Counter:
            def set_value(self, value):
                self._previous = self._value if hasattr(self, "_value") else None
                self._value = value
        """
    )

    assert [f for f in report.findings if f.code == "SG001"] == []


def test_setter_prefix_needs_a_word_boundary():
    """Should treat settle() as a regular method, not a setter."""
    report = check(
        """\
        class Invoice:
            def settle(self):
                self._settled = True

            def is_settled(self):
                return self._settled
        """
    )

    assert codes(report) == [("SG002", "settle", "_settled")]


def test_camel_case_setter_is_recognized():
    """Should treat setCustomer() as a setter."""
    report = check(
        """\
        class Mailer:
            def setCustomer(self, customer_id):
                self.customer_id = customer_id

            def send(self):
                return self.customer_id
        """
    )

    assert codes(report) == [("SG001", "setCustomer", "customer_id")]


def test_writes_through_private_helpers_are_followed():
    """Should attribute a helper's write to the public setter that calls it."""
    report = check(
        """\
        class Mailer:
            def set_customer(self, customer_id):
                self._remember(customer_id)

            def _remember(self, customer_id):
                self._customer_id = customer_id

            def send(self):
                return self._target()

            def _target(self):
                return self._customer_id
        """
    )

    assert codes(report) == [("SG001", "set_customer", "_customer_id")]
    finding = report.findings[0]
    assert finding.line == 6
    assert "via _remember()" in finding.message
    assert [r.method for r in finding.readers] == ["send"]


def test_property_setter_counts_as_setter():
    """Should report a @prop.setter whose backing field other methods read."""
    report = check(
        """\
        class Client:
            @property
            def token(self):
                return self._token

            @token.setter
            def token(self, value):
                self._token = value

            def fetch(self):
                return self._token
        """
    )

    assert codes(report) == [("SG001", "token.setter", "_token")]
    assert [r.method for r in report.findings[0].readers] == ["fetch", "token"]
    assert "property setter" in report.findings[0].message


def test_assignment_through_property_runs_its_setter():
    """Should follow self.prop = value into the property setter."""
    report = check(
        """\
        class Client:
            @property
            def token(self):
                return self._token

            @token.setter
            def token(self, value):
                self._token = value

            def set_credentials(self, token):
                self.token = token

            def fetch(self):
                return self.token
        """
    )

    found = codes(report)
    assert ("SG001", "set_credentials", "_token") in found
    assert ("SG001", "token.setter", "_token") in found


def test_property_deleter_keeps_setter_facts():
    """Should report the setter and the deleter of one property separately."""
    report = check(
        """\
        class Client:
            @property
            def token(self):
                return self._token

            @token.setter
            def token(self, value):
                self._token = value

            @token.deleter
            def token(self):
                del self._token

            def fetch(self):
                return self._token
        """
    )

    assert codes(report) == [
        ("SG001", "token.setter", "_token"),
        ("SG001", "token.deleter", "_token"),
    ]
    assert "property deleter" in report.findings[1].message


def test_container_mutation_counts_as_write():
    """Should treat self.items.append(...) as a write of items."""
    report = check(
        """\
        class Cart:
            def __init__(self):
                self._items = []

            def add_item(self, item):
                self._items.append(item)

            def total(self):
                return sum(self._items)
        """
    )

    assert codes(report) == [("SG002", "add_item", "_items")]
    assert report.findings[0].severity == Severity.WARNING


def test_subscript_and_nested_attribute_writes():
    """Should treat self.f[k] = v and self.f.x = v as writes of f."""
    report = check(
        """\
        class Registry:
            def set_entry(self, key, value):
                self._entries[key] = value

            def set_owner_name(self, name):
                self._owner.name = name

            def describe(self):
                return self._entries, self._owner
        """
    )

    assert codes(report) == [
        ("SG001", "set_entry", "_entries"),
        ("SG001", "set_owner_name", "_owner"),
    ]


def test_unpacking_assignment_writes_every_target():
    """Should treat tuple and starred targets as writes of each field."""
    report = check(
        """\
        class Router:
            def set_routes(self, routes):
                self._primary, *self._fallbacks = routes

            def route(self):
                return self._primary, self._fallbacks
        """
    )

    assert codes(report) == [
        ("SG001", "set_routes", "_fallbacks"),
        ("SG001", "set_routes", "_primary"),
    ]


def test_annotated_assignment_is_a_write():
    """Should treat self.f: T = v as a write and a bare annotation as nothing."""
    report = check(
        """\
        class Session:
            def set_user(self, user):
                self._user: str = user
                self._label: str

            def whoami(self):
                return self._user, self._label
        """
    )

    assert codes(report) == [("SG001", "set_user", "_user")]
    assert report.findings[0].line == 3


def test_del_is_a_write():
    """Should treat del self.f and del self.f[k] as writes of f."""
    report = check(
        """\
        class Cache:
            def __init__(self):
                self._entry = None
                self._index = {}

            def forget(self, key):
                del self._entry
                del self._index[key]

            def lookup(self, key):
                return self._entry, self._index[key]
        """
    )

    assert codes(report) == [
        ("SG002", "forget", "_entry"),
        ("SG002", "forget", "_index"),
    ]
    assert [f.line for f in report.findings] == [7, 8]


def test_setattr_with_literal_name_is_a_write():
    """Should treat setattr(self, "mode", value) as a write of mode."""
    report = check(
        """\
        class Runner:
            def set_mode(self, mode):
                setattr(self, "mode", mode)

            def run(self):
                return getattr(self, "mode")
        """
    )

    assert codes(report) == [("SG001", "set_mode", "mode")]


def test_accumulating_counter_is_mutable_state():
    """Should report a counter that every call bumps and reads."""
    report = check(
        """\
        class StatefulService:
            def __init__(self):
                self.call_count = 0

            def do_work(self):
                self.call_count += 1
                return self.call_count

            def get_state(self):
                return {"call_count": self.call_count}
        """
    )

    assert codes(report) == [("SG002", "do_work", "call_count")]
    assert [r.method for r in report.findings[0].readers] == ["do_work", "get_state"]


def test_mutable_state_does_not_repeat_setter_fields():
    """Should not report SG002 for a field already reported by SG001."""
    report = check(
        """\
        class Job:
            def set_status(self, status):
                self._status = status

            def finish(self):
                self.set_status("done")

            def status(self):
                return self._status
        """
    )

    assert codes(report) == [("SG001", "set_status", "_status")]


def test_fluent_setter_is_reported_as_info():
    """Should report a setter returning self as SG003."""
    report = check(
        """\
        class Request:
            def set_timeout(self, timeout):
                self._timeout = timeout
                return self

            def run(self):
                return self._timeout
        """
    )

    assert codes(report) == [
        ("SG003", "set_timeout", None),
        ("SG001", "set_timeout", "_timeout"),
    ]
    assert report.findings[0].severity == Severity.INFO


def test_static_and_class_methods_are_ignored():
    """Should skip methods without an instance receiver."""
    report = check(
        """\
        class Factory:
            @staticmethod
            def set_default(value):
                Factory.default = value

            @classmethod
            def set_shared(cls, value):
                cls.shared = value

            def build(self):
                return self.default
        """
    )

    assert report.findings == []


def test_frozen_dataclass_is_skipped():
    """Should skip frozen dataclasses."""
    report = check(
        """\
        from dataclasses import dataclass

        @dataclass(frozen=True)
        class Delivery:
            customer_id: int

            def set_customer(self, customer_id):
                self.customer_id = customer_id

            def describe(self):
                return self.customer_id
        """
    )

    assert report.findings == []


def test_nested_classes_get_qualified_names():
    """Should check nested classes and name them Outer.Inner."""
    report = check(
        """\
        class Outer:
            class Inner:
                def set_x(self, x):
                    self._x = x

                def get(self):
                    return self._x
        """
    )

    assert report.classes_checked == 2
    assert [f.class_name for f in report.findings] == ["Outer.Inner"]


def test_syntax_error_becomes_file_error():
    """Should return a file error instead of raising."""
    report = check("class Broken(:\n    pass\n")

    assert report.error is not None
    assert report.error.path == "service.py"
    assert "SyntaxError" in report.error.message


def test_ignore_classes_pattern():
    """Should skip classes matching ignore_classes."""
    config = StateguardConfig(analysis=AnalysisConfig(ignore_classes=["*Builder"]))

    report = check(
        """\
        class QueryBuilder:
            def set_table(self, table):
                self._table = table

            def build(self):
                return self._table
        """,
        config,
    )

    assert report.findings == []
    assert report.classes_checked == 0


def test_custom_setter_prefixes():
    """Should use configured setter prefixes."""
    config = StateguardConfig(analysis=AnalysisConfig(setter_prefixes=["with"]))

    report = check(
        """\
        class Query:
            def with_table(self, table):
                self._table = table

            def run(self):
                return self._table
        """,
        config,
    )

    assert codes(report) == [("SG001", "with_table", "_table")]


def test_public_dunder_call_is_a_reader():
    """Should count __call__ as a public operation."""
    report = check(
        """\
        class Handler:
            def set_user(self, user):
                self._user = user

            def __call__(self, event):
                return self._user, event
        """
    )

    assert codes(report) == [("SG001", "set_user", "_user")]
    assert report.findings[0].readers[0].method == "__call__"


def test_select_ignore_and_severity_overrides():
    """Should honor select, ignore and per-rule severity."""
    source = """\
    class Job:
        def set_status(self, status):
            self._status = status
            return self

        def run(self):
            self._runs = self._runs + 1
            return self._status
    """

    only_sg002 = check(source, StateguardConfig(select=["mutable-state"]))
    assert [f.code for f in only_sg002.findings] == ["SG002"]

    no_fluent = check(source, StateguardConfig(ignore=["SG003"]))
    assert "SG003" not in [f.code for f in no_fluent.findings]

    escalated = check(
        source,
        StateguardConfig(rules={"mutable-state": RuleConfig(severity=Severity.ERROR)}),
    )
    sg002 = [f for f in escalated.findings if f.code == "SG002"]
    assert sg002 and sg002[0].severity == Severity.ERROR

    disabled = check(source, StateguardConfig(rules={"SG001": RuleConfig(enabled=False)}))
    assert "SG001" not in [f.code for f in disabled.findings]
