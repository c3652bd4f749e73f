"""Turn chat messages into labeled counter increments."""
import json
import logging
import re
from typing import Dict, List, Optional

from tgstat.backfill import Metrics
from tgstat.tgexport import Result, read_file

logger = logging.getLogger(__name__)

MESSAGES_TOTAL = "messages_total"
BYTES_TOTAL = "bytes_total"
EXPRESSIONS_TOTAL = "expressions_total"


def load_aliases(path: str) -> Dict[str, str]:
    """Load a JSON object mapping sender names to aliases."""
    with open(path, 'r', encoding='utf-8') as f:
        aliases = json.load(f)

    if not isinstance(aliases, dict):
        raise ValueError(f"{path}: expected a JSON object of sender aliases")
    for sender, alias in aliases.items():
        if not isinstance(alias, str):
            raise ValueError(f"{path}: alias for {sender!r} must be a string, got {alias!r}")
    return aliases


def load_expressions(path: str) -> List[re.Pattern]:
    """Load a JSON list of regular expressions to count in message text."""
    with open(path, 'r', encoding='utf-8') as f:
        exprs = json.load(f)

    if not isinstance(exprs, list):
        raise ValueError(f"{path}: expected a JSON list of expressions")

    compiled = []
    for expr in exprs:
        try:
            compiled.append(re.compile(expr))
        except re.error as e:
            raise ValueError(f"{path}: invalid expression {expr!r}: {e}") from e
    return compiled


def apply_sender_aliases(data: Result, aliases: Dict[str, str]):
    """Replace sender names in place."""
    for msg in data.messages:
        if msg.from_ in aliases:
            msg.from_ = aliases[msg.from_]


def analyze_chat(
    data: Result,
    metrics: Metrics,
    expressions: List[re.Pattern],
    prefix: str = "tg_"
):
    """
    Record message, byte and expression counters for every message with a sender.

    Args:
        data: Decoded chat export
        metrics: Handle whose labels are inherited by every counter
        expressions: Patterns searched for in each text entity
        prefix: Prefix prepended to every counter name
    """
    for msg in data.messages:
        if not msg.from_:
            continue
        sender_metrics = metrics.with_("sender", msg.from_)

        sender_metrics.metric(prefix + MESSAGES_TOTAL).inc(1, msg.date)
        for entity in msg.text_entities:
            sender_metrics.metric(prefix + BYTES_TOTAL).inc(len(entity.text.encode("utf-8")), msg.date)
            for expr in expressions:
                if expr.search(entity.text):
                    sender_metrics.metric(prefix + EXPRESSIONS_TOTAL).with_(
                        "expression", expr.pattern
                    ).inc(1, msg.date)


def read_and_analyze_chat_exports(
    files: List[str],
    metrics: Optional[Metrics] = None,
    aliases_file: Optional[str] = None,
    expressions_file: Optional[str] = None,
    prefix: str = "tg_"
) -> Metrics:
    """Read every export file and record its counters under a ``file`` label."""
    aliases: Dict[str, str] = {}
    if aliases_file:
        try:
            aliases = load_aliases(aliases_file)
        except FileNotFoundError:
            logger.info(f"{aliases_file!r}: Alias file not found. Will not replace sender names.")

    expressions: List[re.Pattern] = []
    if expressions_file:
        try:
            expressions = load_expressions(expressions_file)
        except FileNotFoundError:
            logger.info(f"{expressions_file!r}: Expressions file not found. Will not search for expressions.")

    if metrics is None:
        metrics = Metrics()

    for path in files:
        logger.info(f"Analyzing {path}")
        data = read_file(path)

        apply_sender_aliases(data, aliases)

        analyze_chat(data, metrics.with_("file", path), expressions, prefix)

    return metrics
