"""Tests for the core data types."""

from __future__ import annotations

from pathlib import Path

import pytest

from kaede.base import (
    CommitError,
    EnvVarSet,
    IntegrationKind,
    KaedeError,
    LocateError,
    OverrideError,
    OverrideResult,
    ParseError,
)


class TestEnvVarSet:
    def test_keeps_insertion_order(self) -> None:
        env = EnvVarSet([("B", "2"), ("A", "1")])
        assert env.names() == ["B", "A"]
        assert env.assignments() == ["B=2", "A=1"]

    def test_from_mapping(self) -> None:
        env = EnvVarSet({"DRI_PRIME": "1"})
        assert env["DRI_PRIME"] == "1"
        assert len(env) == 1

    def test_identical_duplicate_allowed(self) -> None:
        env = EnvVarSet([("A", "1"), ("A", "1")])
        assert env.assignments() == ["A=1"]

    def test_conflicting_duplicate_rejected(self) -> None:
        with pytest.raises(ValueError, match="Conflicting"):
            EnvVarSet([("A", "1"), ("A", "2")])

    @pytest.mark.parametrize("name", ["", "A=B", "HAS SPACE", "TAB\tNAME"])
    def test_invalid_names_rejected(self, name: str) -> None:
        with pytest.raises(ValueError, match="Invalid"):
            EnvVarSet([(name, "1")])

    def test_equality_is_order_sensitive_between_sets(self) -> None:
        assert EnvVarSet([("A", "1"), ("B", "2")]) == EnvVarSet([("A", "1"), ("B", "2")])
        assert EnvVarSet([("A", "1"), ("B", "2")]) != EnvVarSet([("B", "2"), ("A", "1")])

    def test_equality_with_plain_dict(self) -> None:
        assert EnvVarSet([("A", "1"), ("B", "2")]) == {"B": "2", "A": "1"}

    def test_hashable(self) -> None:
        assert len({EnvVarSet([("A", "1")]), EnvVarSet([("A", "1")])}) == 1

    def test_empty_is_falsy(self) -> None:
        assert not EnvVarSet()

    def test_with_pairs_returns_new_set(self) -> None:
        env = EnvVarSet([("A", "1")])
        extended = env.with_pairs([("B", "2")])
        assert env.names() == ["A"]
        assert extended.names() == ["A", "B"]


class TestErrors:
    def test_hierarchy(self) -> None:
        for cls in (LocateError, ParseError, CommitError):
            assert issubclass(cls, OverrideError)
        assert issubclass(OverrideError, KaedeError)

    def test_target_is_stringified(self) -> None:
        err = ParseError("bad", target=Path("/tmp/x.vdf"))
        assert err.target == "/tmp/x.vdf"
        assert str(err) == "bad"

    def test_target_optional(self) -> None:
        assert LocateError("missing").target is None


class TestOverrideResult:
    def test_raise_for_error(self) -> None:
        err = CommitError("disk full", target="/tmp/x")
        result = OverrideResult(
            app_id="a.desktop",
            kind=IntegrationKind.NATIVE_DESKTOP,
            target="/tmp/x",
            success=False,
            message=str(err),
            error=err,
        )
        with pytest.raises(CommitError, match="disk full"):
            result.raise_for_error()

    def test_raise_for_error_noop_on_success(self) -> None:
        result = OverrideResult(
            app_id="a.desktop",
            kind=IntegrationKind.FLATPAK,
            target="org.example.App",
            success=True,
            message="ok",
        )
        result.raise_for_error()
