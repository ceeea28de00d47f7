from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

import yaml
from pydantic import ValidationError

from .rules import FREQUENCIES, RecurrenceRule, RecurrenceRulesFile


logger = logging.getLogger(__name__)


def parse_rules(data, owner_id: str | None = None) -> List[RecurrenceRule]:
    """Validate raw YAML data (a list of rules or ``{owner_id, rules}``) into rules.

    Records that fail validation are logged and skipped.
    """
    if isinstance(data, list):
        data = {"rules": data}
    rules_file = RecurrenceRulesFile.model_validate(data or {})
    default_owner = owner_id or rules_file.owner_id

    items: List[RecurrenceRule] = []
    for raw in rules_file.rules:
        record = dict(raw)
        if default_owner and not record.get("owner_id"):
            record["owner_id"] = default_owner
        if record.get("id") is not None:
            record["id"] = str(record["id"])
        try:
            rule = RecurrenceRule.model_validate(record)
        except ValidationError as e:
            logger.warning("Skipping recurring rule %r: %s", record.get("id"), e)
            continue
        if rule.frequency not in FREQUENCIES:
            logger.warning("Rule %s has unknown frequency %r, it will repeat monthly", rule.id, rule.frequency)
        items.append(rule)
    return items


def load_rules(file_path: Path, owner_id: str | None = None) -> List[RecurrenceRule]:
    data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    return parse_rules(data, owner_id)


def iter_rules(files: Iterable[Path], owner_id: str | None = None) -> list[RecurrenceRule]:
    collected: list[RecurrenceRule] = []
    for fp in files:
        collected.extend(load_rules(fp, owner_id))
    collected.sort(key=lambda r: (r.owner_id, r.id))
    return collected
