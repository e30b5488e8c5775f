"""
STRATEGY-NLP CLI Entrypoint

### ARCHITECTURAL CONTEXT
Node ID: cli.main

### PURPOSE
Command-line front end for the strategy language pipeline and the trading
knowledge base.

### USAGE
  python -m main parse "Create a RSI strategy that buys when RSI is below 30"
  python -m main chat                               # multi-turn session
  python -m main risk --strategy momentum --balance 10000 --position 3000
  python -m main knowledge "bollinger squeeze"
  python -m main indicators --strategy mean-reversion --level beginner

### CRITICAL INVARIANTS
1. Invalid requests exit with status 2 and print every validation error.
2. --json prints machine-readable output only; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import asdict

from config.settings import Settings
from src.core.errors import InputValidationError, StrategyNLPError
from src.core.models import STRATEGY_TYPES, NLPResult
from src.knowledge.knowledge_base import KnowledgeBase
from src.knowledge.models import RiskParameters
from src.nlp.context_engine import STRATEGY_COMPLETED
from src.nlp.processor import NaturalLanguageProcessor
from src.utils.nlp_logger import JsonFormatter

logger = logging.getLogger("strategy_nlp")

_EXIT_WORDS = frozenset({"quit", "exit", "q"})


def setup_logging(verbose: bool = False, json_output: bool = False) -> None:
    """Configure logging: human-readable lines, or JSON lines with --json-logs."""
    level = logging.DEBUG if verbose else logging.INFO
    if json_output:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        root = logging.getLogger()
        root.handlers = [handler]
        root.setLevel(level)
        return
    fmt = "%(asctime)s | %(name)-20s | %(levelname)-5s | %(message)s"
    logging.basicConfig(level=level, format=fmt, datefmt="%H:%M:%S")


# ─── Output ──────────────────────────────────────────────────────────

def print_result(result: NLPResult) -> None:
    intent = result.trading_intent
    print("\n🧠 STRATEGY ANALYSIS")
    print("=" * 60)
    print(f"  Strategy:    {intent.strategy_type} ({intent.confidence:.0%})")
    if intent.indicators:
        print(f"  Indicators:  {', '.join(intent.indicators)}")
    if intent.conditions:
        print(f"  Conditions:  {', '.join(intent.conditions)}")
    if intent.actions:
        print(f"  Actions:     {', '.join(intent.actions)}")
    if intent.risk_management:
        print(f"  Risk:        {', '.join(intent.risk_management)}")
    if intent.timeframe:
        print(f"  Timeframe:   {intent.timeframe}")
    if result.parameters:
        print("  Parameters:")
        for name, param in result.parameters.items():
            print(f"    {name:20s} = {param.value!s:<8} [{param.source}, {param.confidence:.2f}]")
    print("-" * 60)
    print(f"  Confidence:  {result.confidence:.2f}   ({result.processing_time:.1f}ms)")
    if result.is_fallback:
        print(f"  ⚠️  Fallback: {result.metadata.get('error', 'unknown error')}")
    for clarification in result.clarifications:
        print(f"  ? {clarification}")
    for suggestion in result.suggestions:
        print(f"  → {suggestion}")
    print("=" * 60)


# ─── Commands ────────────────────────────────────────────────────────

async def cmd_parse(
    settings: Settings,
    text: str,
    conversation_id: str | None = None,
    as_json: bool = False,
) -> int:
    """Run one request through the pipeline and print the result."""
    processor = NaturalLanguageProcessor(settings)
    try:
        result = await processor.process_request(text, conversation_id=conversation_id)
    except InputValidationError as e:
        for error in e.errors:
            print(f"❌ {error}", file=sys.stderr)
        return 2
    except StrategyNLPError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    if as_json:
        print(result.model_dump_json(indent=2))
    else:
        print_result(result)
    return 0


async def cmd_chat(settings: Settings) -> int:
    """
    Interactive multi-turn session.

    Commands inside the loop:
        done     mark the strategy completed
        summary  print the conversation summary
        quit     leave the session
    """
    processor = NaturalLanguageProcessor(settings)
    conversation_id = f"cli_{uuid.uuid4().hex[:8]}"
    logger.info("═══ STRATEGY-NLP CHAT (%s) ═══", conversation_id)
    for suggestion in processor.get_contextual_suggestions(conversation_id):
        print(f"  → {suggestion}")

    while True:
        try:
            text = input("\nyou> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not text:
            continue
        if text.lower() in _EXIT_WORDS:
            break
        if text.lower() == "summary":
            summary = processor.get_conversation_summary(conversation_id)
            print(json.dumps(asdict(summary), indent=2, default=str))
            continue
        if text.lower() == "done":
            processor.update_context_with_response(
                conversation_id, "Strategy marked as complete", [STRATEGY_COMPLETED]
            )
            print("✅ Strategy completed")
            continue

        try:
            result = await processor.process_request(text, conversation_id=conversation_id)
        except InputValidationError as e:
            for error in e.errors:
                print(f"❌ {error}")
            continue

        print_result(result)
        processor.update_context_with_response(
            conversation_id,
            f"Interpreted as {result.trading_intent.describe()}",
            ["strategy_updated"] if not result.is_fallback else [],
        )
        for suggestion in processor.get_contextual_suggestions(conversation_id):
            print(f"  💡 {suggestion}")

    processor.clear_conversation(conversation_id)
    return 0


def cmd_risk(settings: Settings, args: argparse.Namespace) -> int:
    """Assess the risk of a position for a strategy type."""
    knowledge = KnowledgeBase(cache_config=settings.cache)
    params = RiskParameters(
        account_balance=args.balance,
        proposed_position_size=args.position,
        stop_loss_distance=args.stop,
        current_drawdown=args.drawdown,
        volatility=args.volatility,
    )
    assessment = knowledge.assess_risk(args.strategy, params)

    print(f"\n🛡️  RISK ASSESSMENT — {args.strategy}")
    print("=" * 60)
    print(f"  Overall risk: {assessment.overall_risk}   score = {assessment.risk_score:.0f}/100")
    for factor in assessment.risk_factors:
        print(f"  [{factor.severity:8s}] {factor.name}: {factor.description}")
    for recommendation in assessment.recommendations:
        print(f"  → ({recommendation.priority}) {recommendation.description}")
    for warning in assessment.warnings:
        print(f"  ⚠️  {warning}")
    if assessment.applied_rules:
        print(f"  Rules applied: {', '.join(assessment.applied_rules)}")
    print("=" * 60)
    return 0


def cmd_knowledge(settings: Settings, terms: str) -> int:
    """Search patterns, indicators and combinations."""
    knowledge = KnowledgeBase(cache_config=settings.cache)
    results = knowledge.search(terms)

    print(f"\n📚 KNOWLEDGE SEARCH — {terms!r}")
    print("=" * 60)
    for match in results.patterns:
        print(f"  pattern     {match.pattern.name:35s} {match.confidence:.0%}")
    for indicator in results.indicators:
        print(f"  indicator   {indicator.name:35s} ({indicator.category})")
    for combination in results.combinations:
        print(f"  combination {combination.name:35s} {', '.join(combination.indicators)}")
    if not (results.patterns or results.indicators or results.combinations):
        print("  No results")
    print("=" * 60)
    return 0


def cmd_indicators(settings: Settings, args: argparse.Namespace) -> int:
    """Suggest indicators for a strategy type."""
    knowledge = KnowledgeBase(cache_config=settings.cache)
    suggestions = knowledge.get_indicator_suggestions(
        args.strategy,
        user_level=args.level,
        market_condition=args.market,
        timeframe=args.timeframe,
    )

    print(f"\n📈 INDICATOR SUGGESTIONS — {args.strategy}")
    print("=" * 60)
    for suggestion in suggestions:
        print(
            f"  [{suggestion.priority:6s}] {suggestion.indicator.name:30s} "
            f"{suggestion.confidence:.0%}  {suggestion.reason}"
        )
    if not suggestions:
        print("  No suitable indicators")
    print("=" * 60)
    return 0


# ─── Argument Parsing ────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strategy-nlp",
        description="Strategy-NLP: natural language trading strategy builder",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit log records as JSON lines",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    parse = sub.add_parser("parse", help="Parse a single strategy request")
    parse.add_argument("text", help="Strategy request in plain English")
    parse.add_argument("--conversation", default=None, help="Conversation id for context memory")
    parse.add_argument("--json", action="store_true", help="Print the result as JSON")

    sub.add_parser("chat", help="Interactive multi-turn session")

    risk = sub.add_parser("risk", help="Assess position risk for a strategy")
    risk.add_argument("--strategy", required=True, choices=STRATEGY_TYPES)
    risk.add_argument("--balance", type=float, required=True, help="Account balance")
    risk.add_argument("--position", type=float, required=True, help="Proposed position size")
    risk.add_argument("--stop", type=float, default=None, help="Stop-loss distance in percent")
    risk.add_argument("--drawdown", type=float, default=0.0, help="Current drawdown in percent")
    risk.add_argument("--volatility", type=float, default=1.0, help="Volatility multiple of normal")

    knowledge = sub.add_parser("knowledge", help="Search the knowledge base")
    knowledge.add_argument("terms", help="Search terms")

    indicators = sub.add_parser("indicators", help="Suggest indicators for a strategy")
    indicators.add_argument("--strategy", required=True, choices=STRATEGY_TYPES)
    indicators.add_argument("--level", default="beginner", choices=["beginner", "intermediate", "advanced"])
    indicators.add_argument("--market", default=None, help="Market condition (trending, ranging, ...)")
    indicators.add_argument("--timeframe", default=None, help="Chart timeframe (1h, 4h, 1d, ...)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(args.verbose, args.json_logs or settings.log_json)

    if args.command == "parse":
        return asyncio.run(cmd_parse(settings, args.text, args.conversation, args.json))
    if args.command == "chat":
        return asyncio.run(cmd_chat(settings))
    if args.command == "risk":
        return cmd_risk(settings, args)
    if args.command == "knowledge":
        return cmd_knowledge(settings, args.terms)
    return cmd_indicators(settings, args)


if __name__ == "__main__":
    sys.exit(main())
