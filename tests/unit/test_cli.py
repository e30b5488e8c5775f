"""
STRATEGY-NLP Tests: CLI Entrypoint

Node ID: tests.unit.test_cli
Graph Link: tested_by → cli.main

Tests cover:
- parse: human output, --json output, validation exit status
- chat: scripted multi-turn session with summary and completion
- risk / knowledge / indicators commands
"""

from __future__ import annotations

import json

import pytest

import main as cli
from config.settings import Settings

RSI_REQUEST = "Create a RSI strategy that buys when RSI is below 30"


class TestParseCommand:
    def test_human_output(self, capsys):
        assert cli.main(["parse", RSI_REQUEST]) == 0
        out = capsys.readouterr().out
        assert "STRATEGY ANALYSIS" in out
        assert "mean-reversion" in out
        assert "oversoldLevel" in out

    def test_json_output(self, capsys):
        assert cli.main(["parse", RSI_REQUEST, "--json"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["trading_intent"]["strategy_type"] == "mean-reversion"
        assert payload["metadata"]["fallback"] is False

    def test_empty_request_exits_2(self, capsys):
        assert cli.main(["parse", "   "]) == 2
        assert "Request cannot be empty" in capsys.readouterr().err


class TestChatCommand:
    @pytest.mark.asyncio
    async def test_scripted_session(self, monkeypatch, capsys):
        lines = iter([RSI_REQUEST, "", "summary", "done", "quit"])
        monkeypatch.setattr("builtins.input", lambda _prompt="": next(lines))
        assert await cli.cmd_chat(Settings()) == 0
        out = capsys.readouterr().out
        assert "mean-reversion" in out
        assert '"total_messages": 2' in out
        assert "Strategy completed" in out

    @pytest.mark.asyncio
    async def test_eof_ends_session(self, monkeypatch):
        def _eof(_prompt=""):
            raise EOFError

        monkeypatch.setattr("builtins.input", _eof)
        assert await cli.cmd_chat(Settings()) == 0


class TestKnowledgeCommands:
    def test_risk(self, capsys):
        code = cli.main(["risk", "--strategy", "momentum", "--balance", "10000", "--position", "3000"])
        assert code == 0
        out = capsys.readouterr().out
        assert "Overall risk: very_high" in out
        assert "max_risk_per_trade" in out

    def test_knowledge_search(self, capsys):
        assert cli.main(["knowledge", "Bollinger"]) == 0
        out = capsys.readouterr().out
        assert "Bollinger Bands" in out
        assert "RSI + Bollinger Bands" in out or "rsi, bollinger_bands" in out

    def test_knowledge_no_results(self, capsys):
        assert cli.main(["knowledge", "zzzz"]) == 0
        assert "No results" in capsys.readouterr().out

    def test_indicators(self, capsys):
        code = cli.main(["indicators", "--strategy", "mean-reversion", "--level", "beginner"])
        assert code == 0
        assert "INDICATOR SUGGESTIONS" in capsys.readouterr().out

    def test_rejects_unknown_strategy(self):
        with pytest.raises(SystemExit):
            cli.main(["risk", "--strategy", "martingale", "--balance", "1", "--position", "1"])
