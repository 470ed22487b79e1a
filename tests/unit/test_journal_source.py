"""Tests for journal source identifiers and command lines."""

import pytest

from logmonitor.adapters.readers.journal import JournalReader, parse_journal_source
from logmonitor.core.errors import NoMatchError, SourceError
from logmonitor.core.models import SourceSpec


class TestParseJournalSource:
    @pytest.mark.readers
    @pytest.mark.parametrize(
        ("source", "scope"),
        [
            (":sd_journal", "local-default"),
            (":sd_journal/", "local-default"),
            (":sd_journal/local-default", "local-default"),
            (":sd_journal/system", "system"),
            (":sd_journal/user", "user"),
            (":sd_journal/current-user", "current-user"),
            (":sd_journal/root", "root"),
            (":sd_journal/namespace-root", "namespace-root"),
        ],
    )
    def test_scopes(self, source: str, scope: str) -> None:
        selector = parse_journal_source(source)

        assert selector is not None
        assert selector.scope == scope

    @pytest.mark.readers
    def test_query_pairs_become_matches(self) -> None:
        selector = parse_journal_source(
            ":sd_journal/system?_SYSTEMD_UNIT=nginx.service&PRIORITY=3"
        )

        assert selector is not None
        assert selector.matches == (
            ("_SYSTEMD_UNIT", "nginx.service"),
            ("PRIORITY", "3"),
        )

    @pytest.mark.readers
    @pytest.mark.parametrize(
        "source",
        [
            "/var/log/syslog",
            ":sd_journal/galaxy",
            ":sd_journalx",
            ":sd_journal?lowercase=bad",
        ],
    )
    def test_refused_identifiers(self, source: str) -> None:
        assert parse_journal_source(source) is None
        assert JournalReader.match_priority(SourceSpec(source=source)) < 0


class TestJournalCommand:
    @pytest.mark.readers
    def test_priority_beats_plain_files(self) -> None:
        assert JournalReader.match_priority(SourceSpec(source=":sd_journal")) == 100

    @pytest.mark.readers
    def test_tail_command(self) -> None:
        reader = JournalReader(
            SourceSpec(source=":sd_journal/system?_SYSTEMD_UNIT=sshd.service")
        )

        assert reader.command() == [
            "journalctl",
            "--follow",
            "--output=json",
            "--system",
            "--lines=0",
            "_SYSTEMD_UNIT=sshd.service",
        ]

    @pytest.mark.readers
    def test_resume_command_uses_cursor_and_root(self) -> None:
        reader = JournalReader(
            SourceSpec(source=":sd_journal/root", options={"root": "/mnt/host"})
        )

        assert reader.command("s=abc") == [
            "journalctl",
            "--follow",
            "--output=json",
            "--root=/mnt/host",
            "--after-cursor=s=abc",
        ]

    @pytest.mark.readers
    def test_user_scope(self) -> None:
        reader = JournalReader(SourceSpec(source=":sd_journal/current-user"))

        assert "--user" in reader.command()

    @pytest.mark.readers
    def test_constructing_for_other_source_fails(self) -> None:
        with pytest.raises(NoMatchError):
            JournalReader(SourceSpec(source="/var/log/syslog"))

    @pytest.mark.readers
    def test_invalid_option_fails(self) -> None:
        with pytest.raises(SourceError, match="wait_timeout"):
            JournalReader(SourceSpec(source=":sd_journal", options={"wait_timeout": 0}))
