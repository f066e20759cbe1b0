"""
Condition evaluators for trench filter steps

Every evaluator is a pure function returning a FilterResult. A skipped result
carries a human readable reason; nothing here raises for a condition that
simply does not hold.
"""

import logging
from typing import Any, Optional, Union

from torrent_trench.rules import FilterKind, FilterStep, RangeCondition, StringCondition
from torrent_trench.torrent import Torrent

logger = logging.getLogger(__name__)

Number = Union[int, float]


class FilterResult:
    """Outcome of a filter: matched, or skipped with a reason"""

    __slots__ = ('matched', 'reason')

    def __init__(self, matched: bool, reason: Optional[str] = None):
        self.matched = matched
        self.reason = reason

    @classmethod
    def match(cls) -> 'FilterResult':
        return MATCHED

    @classmethod
    def skip(cls, reason: str) -> 'FilterResult':
        return cls(False, reason)

    @property
    def skipped(self) -> bool:
        return not self.matched

    def __bool__(self) -> bool:
        return self.matched

    def __repr__(self) -> str:
        if self.matched:
            return "<FilterResult matched>"
        return f"<FilterResult skipped: {self.reason}>"


MATCHED = FilterResult(True)


def warn_missing_property(property_name: str, log=None) -> None:
    """Warn that a torrent attribute was not supplied by the client"""
    (log or logger).warning(
        f"Attempted to read undefined property {property_name} from torrent data. "
        f"The torrent client may not provide this property and will cause this trench to be skipped."
    )


def evaluate_boolean(value: bool, condition: bool) -> FilterResult:
    """Skip unless the value equals the expected boolean"""
    if value != condition:
        return FilterResult.skip(f"Torrent completion status is {value}")
    return MATCHED


def evaluate_string(value: Optional[str], condition: StringCondition, property_name: str, log=None) -> FilterResult:
    """
    Evaluate a string condition against a torrent property

    Every sub-condition that is set must pass; the first one that does not
    decides the skip reason. With case_insensitive both the property and the
    operands are lower-cased. The regex is searched last, against the
    (possibly lower-cased) property.

    Args:
        value: Property value, None when the client did not supply it
        condition: Condition to check
        property_name: Name used in messages
        log: Logger for the missing property warning

    Returns:
        FilterResult
    """
    if value is None:
        warn_missing_property(property_name, log)
        return FilterResult.skip(f"Torrent has no {property_name}")

    fold = str.lower if condition.case_insensitive else (lambda text: text)
    subject = fold(str(value))

    # an empty operand is treated as unset
    def operand(text: Optional[str]) -> Optional[str]:
        return fold(text) if text else None

    ends_with = operand(condition.ends_with)
    if ends_with is not None and not subject.endswith(ends_with):
        return FilterResult.skip(f"Torrent {property_name} does not end with string {ends_with}")

    not_ends_with = operand(condition.not_ends_with)
    if not_ends_with is not None and subject.endswith(not_ends_with):
        return FilterResult.skip(f"Torrent {property_name} does end with string {not_ends_with}")

    starts_with = operand(condition.starts_with)
    if starts_with is not None and not subject.startswith(starts_with):
        return FilterResult.skip(f"Torrent {property_name} does not start with string {starts_with}")

    not_starts_with = operand(condition.not_starts_with)
    if not_starts_with is not None and subject.startswith(not_starts_with):
        return FilterResult.skip(f"Torrent {property_name} does start with string {not_starts_with}")

    includes = operand(condition.includes)
    if includes is not None and includes not in subject:
        return FilterResult.skip(f"Torrent {property_name} does not include string {includes}")

    not_includes = operand(condition.not_includes)
    if not_includes is not None and not_includes in subject:
        return FilterResult.skip(f"Torrent {property_name} does include string {not_includes}")

    if condition.match is not None and condition.match.search(subject) is None:
        return FilterResult.skip(f"Torrent {property_name} does not match regex {condition.match.pattern}")

    return MATCHED


def evaluate_range(value: Optional[Number], condition: RangeCondition, property_name: str, log=None) -> FilterResult:
    """
    Evaluate inclusive numeric bounds against a torrent property

    A bound is applied whenever it is set, zero included.
    """
    if value is None:
        warn_missing_property(property_name, log)
        return FilterResult.skip(f"Torrent has no property {property_name}")

    if condition.gte is not None and not value >= condition.gte:
        return FilterResult.skip(f"Torrent {property_name} is not greater than or equal to {condition.gte}")

    if condition.lte is not None and not value <= condition.lte:
        return FilterResult.skip(f"Torrent {property_name} is not less than or equal to {condition.lte}")

    return MATCHED


def _raw_number(torrent: Torrent, key: str) -> Optional[Number]:
    value: Any = torrent.raw.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_filter(step: FilterStep, torrent: Torrent, log=None) -> FilterResult:
    """
    Evaluate a filter step against a torrent snapshot

    Args:
        step: Filter step from a trench
        torrent: Torrent snapshot
        log: Logger (or adapter) for warnings about missing properties

    Returns:
        FilterResult
    """
    kind = step.kind
    condition = step.condition

    if kind == FilterKind.COMPLETE:
        return evaluate_boolean(torrent.is_completed, condition)

    if kind == FilterKind.LABEL:
        return evaluate_string(torrent.label, condition, 'label', log)
    if kind == FilterKind.TRACKER:
        return evaluate_string(torrent.raw.get('tracker'), condition, 'tracker', log)
    if kind == FilterKind.SAVE_PATH:
        return evaluate_string(torrent.save_path, condition, 'savePath', log)
    if kind == FilterKind.NAME:
        return evaluate_string(torrent.name, condition, 'name', log)

    # Progress is stored as 0..1 but configured in percent
    if kind == FilterKind.PROGRESS:
        return evaluate_range(torrent.progress * 100, condition, 'progress', log)
    if kind == FilterKind.RATIO:
        return evaluate_range(torrent.ratio, condition, 'ratio', log)
    if kind == FilterKind.SEED_TIME:
        return evaluate_range(_raw_number(torrent, 'seeding_time'), condition, 'seedTime', log)
    if kind == FilterKind.TIME_ACTIVE:
        return evaluate_range(_raw_number(torrent, 'time_active'), condition, 'timeActive', log)

    raise ValueError(f"Unknown filter kind: {kind}")
