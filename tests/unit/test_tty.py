"""Unit tests for terminal colour helpers."""

import io

import pytest

from fortis.platform.tty import GREEN, RED, RESET, YELLOW, StatusPainter, supports_color


class FakeTerminal(io.StringIO):
    def isatty(self):
        return True


class TestSupportsColor:

    def test_no_color_wins(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        monkeypatch.setenv("FORCE_COLOR", "1")
        assert not supports_color(FakeTerminal())

    def test_force_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("FORCE_COLOR", "1")
        assert supports_color(io.StringIO())

    def test_pipe_is_plain(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        assert not supports_color(io.StringIO())
        assert not supports_color(None)


class TestStatusPainter:

    def test_disabled_passes_through(self):
        p = StatusPainter()
        assert p.ok() == "OK"
        assert p.failed() == "ERROR"
        assert p.health(80) == "80"

    @pytest.mark.parametrize("score,code", [(80, GREEN), (70, GREEN), (55, YELLOW), (10, RED)])
    def test_health_thresholds(self, score, code):
        assert StatusPainter(enabled=True).health(score) == f"{code}{score}{RESET}"
