"""
Trench rule model

Typed representation of the trench configuration and the validation that turns
a raw config document (already loaded from JSON/YAML) into it:

- Structural validation of connections, trenches and steps
- Uniqueness of trench names
- Fork graph validation (unknown target, self fork, nested fork)

All problems are collected and raised together as a ConfigValidationError, so
either the whole document is accepted or nothing is.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Tuple, Union
from urllib.parse import urlparse

from apscheduler.triggers.cron import CronTrigger

from torrent_trench.errors import ConfigValidationError, ValidationIssue

DEFAULT_SCHEDULE = '*/30 * * * *'
DEFAULT_VERSION = 1


class StepType:
    """Step type constants"""
    FILTER = "filter"
    ACTION = "action"
    FORK = "fork"

    @classmethod
    def all(cls) -> List[str]:
        return [cls.FILTER, cls.ACTION, cls.FORK]


class FilterKind:
    """Filter kind constants"""
    COMPLETE = "complete"
    LABEL = "label"
    TRACKER = "tracker"
    PROGRESS = "progress"
    RATIO = "ratio"
    SAVE_PATH = "savePath"
    NAME = "name"
    SEED_TIME = "seedTime"
    TIME_ACTIVE = "timeActive"

    BOOLEAN = (COMPLETE,)
    STRING = (LABEL, TRACKER, SAVE_PATH, NAME)
    RANGE = (PROGRESS, RATIO, SEED_TIME, TIME_ACTIVE)

    @classmethod
    def all(cls) -> List[str]:
        return list(cls.BOOLEAN + cls.STRING + cls.RANGE)


class ActionVerb:
    """Action verb constants"""
    PAUSE = "pause"
    RESUME = "resume"
    RECHECK = "recheck"
    REANNOUNCE = "reannounce"
    INCREASE_PRIORITY = "increasePriority"
    DECREASE_PRIORITY = "decreasePriority"
    MAXIMISE_PRIORITY = "maximisePriority"
    MINIMISE_PRIORITY = "minimisePriority"
    DELETE = "delete"

    @classmethod
    def all(cls) -> List[str]:
        return [
            cls.PAUSE, cls.RESUME, cls.RECHECK, cls.REANNOUNCE,
            cls.INCREASE_PRIORITY, cls.DECREASE_PRIORITY,
            cls.MAXIMISE_PRIORITY, cls.MINIMISE_PRIORITY,
            cls.DELETE,
        ]


SUPPORTED_CLIENTS = ('qbit',)

# Upper bound per range filter; progress is expressed in percent
RANGE_MAXIMUM = {
    FilterKind.PROGRESS: 100,
}


@dataclass(frozen=True)
class StringCondition:
    """String predicates; every sub-condition that is set must pass"""
    case_insensitive: bool = False
    starts_with: Optional[str] = None
    not_starts_with: Optional[str] = None
    ends_with: Optional[str] = None
    not_ends_with: Optional[str] = None
    includes: Optional[str] = None
    not_includes: Optional[str] = None
    match: Optional[Pattern] = None

    def __post_init__(self):
        if self.starts_with is None and self.includes is None and self.ends_with is None and self.match is None:
            raise ValueError("At least one string condition must be provided")


@dataclass(frozen=True)
class RangeCondition:
    """Inclusive numeric bounds, each optional"""
    gte: Optional[float] = None
    lte: Optional[float] = None


Condition = Union[bool, StringCondition, RangeCondition]


@dataclass(frozen=True)
class FilterStep:
    kind: str
    condition: Condition


@dataclass(frozen=True)
class ActionStep:
    verb: str
    delete_files: bool = False


@dataclass(frozen=True)
class ForkStep:
    target: str


Step = Union[FilterStep, ActionStep, ForkStep]


@dataclass
class Trench:
    """
    A named, ordered pipeline of steps

    Only `enabled` ever changes after load, and only from True to False.
    """
    name: str
    steps: List[Step] = field(default_factory=list)
    enabled: bool = False
    schedule: str = DEFAULT_SCHEDULE

    def disable(self) -> None:
        self.enabled = False

    def forks(self) -> List[str]:
        """Names of the trenches this trench forks into"""
        return [step.target for step in self.steps if isinstance(step, ForkStep)]


@dataclass(frozen=True)
class Connection:
    client: str
    url: str
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass
class TrenchConfig:
    """Validated trench configuration"""
    connections: List[Connection]
    trenches: List[Trench]
    version: float = DEFAULT_VERSION
    logging: Dict[str, Any] = field(default_factory=dict)
    dry_run: Optional[bool] = None

    def get_trench(self, name: str) -> Optional[Trench]:
        for trench in self.trenches:
            if trench.name == name:
                return trench
        return None

    def enabled_trenches(self) -> List[Trench]:
        return [trench for trench in self.trenches if trench.enabled]


# ============================================================================
# Parsing
# ============================================================================

IssuePath = Tuple


class _Issues:
    """Collects validation issues while walking the document"""

    def __init__(self):
        self.items: List[ValidationIssue] = []

    def add(self, path: IssuePath, message: str, code: str = ValidationIssue.INVALID):
        self.items.append(ValidationIssue(path, message, code))

    def __len__(self):
        return len(self.items)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_keys(node: Dict[str, Any], allowed: Tuple[str, ...], path: IssuePath, issues: _Issues) -> None:
    for key in node:
        if key not in allowed:
            issues.add(path + (key,), f"Unrecognised key '{key}'")


def _expect_dict(node: Any, path: IssuePath, issues: _Issues, what: str) -> bool:
    if not isinstance(node, dict):
        issues.add(path, f"{what} must be an object, got {type(node).__name__}")
        return False
    return True


CRON_FIELDS = ('second', 'minute', 'hour', 'day', 'month', 'day_of_week')


def cron_trigger(expression: str) -> CronTrigger:
    """
    Build a CronTrigger from a five- or six-field cron expression

    Six fields carry a leading seconds field.

    Raises:
        ValueError: If the expression is invalid
    """
    values = expression.split()
    if len(values) == 5:
        return CronTrigger.from_crontab(expression)
    if len(values) == 6:
        return CronTrigger(**dict(zip(CRON_FIELDS, values)))
    raise ValueError(f"Wrong number of fields; got {len(values)}, expected 5 or 6")


def validate_cron(expression: str) -> Optional[str]:
    """
    Validate a cron expression with an optional leading seconds field

    Returns:
        None if valid, otherwise the reason it was rejected
    """
    try:
        cron_trigger(expression)
    except ValueError as e:
        return str(e)
    return None


def parse_string_condition(node: Any, path: IssuePath, issues: _Issues) -> Optional[StringCondition]:
    if not _expect_dict(node, path, issues, "String condition"):
        return None

    string_keys = {
        'startsWith': 'starts_with',
        'notStartsWith': 'not_starts_with',
        'endsWith': 'ends_with',
        'notEndsWith': 'not_ends_with',
        'includes': 'includes',
        'notIncludes': 'not_includes',
    }
    _check_keys(node, tuple(string_keys) + ('caseInsensitive', 'match'), path, issues)

    before = len(issues)
    kwargs: Dict[str, Any] = {}

    case_insensitive = node.get('caseInsensitive', False)
    if not isinstance(case_insensitive, bool):
        issues.add(path + ('caseInsensitive',), "Expected a boolean")
    kwargs['case_insensitive'] = case_insensitive is True

    for key, attribute in string_keys.items():
        if key not in node:
            continue
        if not isinstance(node[key], str):
            issues.add(path + (key,), "Expected a string")
            continue
        kwargs[attribute] = node[key]

    if 'match' in node:
        pattern = node['match']
        if not isinstance(pattern, str):
            issues.add(path + ('match',), "Expected a string")
        else:
            try:
                kwargs['match'] = re.compile(pattern)
            except re.error as e:
                issues.add(path + ('match',), f"String must be a valid regular expression ({e})",
                           ValidationIssue.INVALID_REGEX)

    if len(issues) > before:
        return None

    try:
        return StringCondition(**kwargs)
    except ValueError as e:
        issues.add(path, str(e))
        return None


def parse_range_condition(node: Any, kind: str, path: IssuePath, issues: _Issues) -> Optional[RangeCondition]:
    if not _expect_dict(node, path, issues, "Range condition"):
        return None
    _check_keys(node, ('gte', 'lte'), path, issues)

    before = len(issues)
    maximum = RANGE_MAXIMUM.get(kind)
    bounds: Dict[str, float] = {}
    for key in ('gte', 'lte'):
        if key not in node:
            continue
        value = node[key]
        if not _is_number(value):
            issues.add(path + (key,), "Expected a number")
        elif value < 0:
            issues.add(path + (key,), "Number must be greater than or equal to 0")
        elif maximum is not None and value > maximum:
            issues.add(path + (key,), f"Number must be less than or equal to {maximum}")
        else:
            bounds[key] = value

    if len(issues) > before:
        return None
    return RangeCondition(**bounds)


def parse_step(node: Any, path: IssuePath, issues: _Issues) -> Optional[Step]:
    """Parse a single trench step, recording any problems in issues"""
    if not _expect_dict(node, path, issues, "Step"):
        return None

    step_type = node.get('type')
    if step_type not in StepType.all():
        issues.add(path + ('type',), f"Invalid step type '{step_type}', expected one of {', '.join(StepType.all())}")
        return None

    if step_type == StepType.FILTER:
        _check_keys(node, ('type', 'filter', 'condition'), path, issues)
        kind = node.get('filter')
        if kind not in FilterKind.all():
            issues.add(path + ('filter',), f"Invalid filter '{kind}', expected one of {', '.join(FilterKind.all())}")
            return None
        if 'condition' not in node:
            issues.add(path + ('condition',), "Required")
            return None

        condition_path = path + ('condition',)
        condition: Optional[Condition]
        if kind in FilterKind.BOOLEAN:
            condition = node['condition']
            if not isinstance(condition, bool):
                issues.add(condition_path, "Expected a boolean")
                return None
        elif kind in FilterKind.STRING:
            condition = parse_string_condition(node['condition'], condition_path, issues)
        else:
            condition = parse_range_condition(node['condition'], kind, condition_path, issues)

        if condition is None:
            return None
        return FilterStep(kind=kind, condition=condition)

    if step_type == StepType.ACTION:
        verb = node.get('action')
        if verb not in ActionVerb.all():
            issues.add(path + ('action',), f"Invalid action '{verb}', expected one of {', '.join(ActionVerb.all())}")
            return None

        # Only delete takes options
        if verb == ActionVerb.DELETE:
            _check_keys(node, ('type', 'action', 'options'), path, issues)
        else:
            _check_keys(node, ('type', 'action'), path, issues)

        delete_files = False
        options = node.get('options')
        if verb == ActionVerb.DELETE and options is not None:
            options_path = path + ('options',)
            if not _expect_dict(options, options_path, issues, "Action options"):
                return None
            _check_keys(options, ('deleteFiles',), options_path, issues)
            delete_files = options.get('deleteFiles', False)
            if not isinstance(delete_files, bool):
                issues.add(options_path + ('deleteFiles',), "Expected a boolean")
                return None
        return ActionStep(verb=verb, delete_files=delete_files)

    _check_keys(node, ('type', 'fork'), path, issues)
    target = node.get('fork')
    if not isinstance(target, str) or not target.strip():
        issues.add(path + ('fork',), "Expected the name of a trench")
        return None
    return ForkStep(target=target.strip())


def parse_trench(node: Any, path: IssuePath, issues: _Issues) -> Optional[Trench]:
    """Parse one trench entry"""
    if not _expect_dict(node, path, issues, "Trench"):
        return None
    _check_keys(node, ('name', 'enabled', 'schedule', 'trench'), path, issues)

    before = len(issues)

    name = node.get('name')
    if not isinstance(name, str) or not name.strip():
        issues.add(path + ('name',), "Expected a non-empty string")
        name = None

    enabled = node.get('enabled', False)
    if not isinstance(enabled, bool):
        issues.add(path + ('enabled',), "Expected a boolean")

    schedule = node.get('schedule', DEFAULT_SCHEDULE)
    if not isinstance(schedule, str):
        issues.add(path + ('schedule',), "Expected a cron expression string")
    else:
        reason = validate_cron(schedule)
        if reason is not None:
            issues.add(path + ('schedule',), f"Invalid cron expression ({reason})", ValidationIssue.INVALID_CRON)

    raw_steps = node.get('trench')
    steps: List[Step] = []
    if not isinstance(raw_steps, list):
        issues.add(path + ('trench',), "Expected a list of steps")
    else:
        for index, raw_step in enumerate(raw_steps):
            step = parse_step(raw_step, path + ('trench', index), issues)
            if step is not None:
                steps.append(step)

    if len(issues) > before:
        return None
    return Trench(name=name.strip(), steps=steps, enabled=enabled, schedule=schedule)


def parse_connection(node: Any, path: IssuePath, issues: _Issues) -> Optional[Connection]:
    if not _expect_dict(node, path, issues, "Connection"):
        return None
    _check_keys(node, ('client', 'url', 'username', 'password'), path, issues)

    before = len(issues)
    client = node.get('client')
    if client not in SUPPORTED_CLIENTS:
        issues.add(path + ('client',), f"Invalid client '{client}', expected one of {', '.join(SUPPORTED_CLIENTS)}")

    url = node.get('url')
    parsed = urlparse(url) if isinstance(url, str) else None
    if parsed is None or parsed.scheme not in ('http', 'https') or not parsed.netloc:
        issues.add(path + ('url',), "Invalid url")

    for key in ('username', 'password'):
        if key in node and not isinstance(node[key], str):
            issues.add(path + (key,), "Expected a string")

    if len(issues) > before:
        return None
    return Connection(client=client, url=url, username=node.get('username'), password=node.get('password'))


def find_duplicate_names(trenches: List[Trench]) -> List[ValidationIssue]:
    """Report every trench name used more than once"""
    seen = set()
    duplicates = []
    for trench in trenches:
        if trench.name in seen and trench.name not in duplicates:
            duplicates.append(trench.name)
        seen.add(trench.name)

    return [
        ValidationIssue((), f"Trench names must be unique ('{name}' is defined more than once)",
                        ValidationIssue.DUPLICATE_NAME)
        for name in duplicates
    ]


def validate_fork_graph(trenches: List[Trench]) -> List[ValidationIssue]:
    """
    Check every fork step against the set of defined trenches

    Forks must reference an existing trench, must not reference the trench
    they belong to, and the target must not fork again (one level only).

    Args:
        trenches: Parsed trenches in configuration order

    Returns:
        Issues with paths relative to the trenches list, e.g. (0, 'trench', 2, 'fork')
    """
    defined = {trench.name: trench for trench in trenches}
    issues: List[ValidationIssue] = []

    for trench_index, trench in enumerate(trenches):
        for step_index, step in enumerate(trench.steps):
            if not isinstance(step, ForkStep):
                continue

            step_path = (trench_index, 'trench', step_index, 'fork')

            if step.target == trench.name:
                issues.append(ValidationIssue(
                    step_path,
                    "Trench fork references itself, recursive trenches are not supported",
                    ValidationIssue.SELF_FORK
                ))
                continue

            target = defined.get(step.target)
            if target is None:
                valid = "' | '".join(defined)
                issues.append(ValidationIssue(
                    step_path,
                    f"Unrecognised trench name '{step.target}', valid options are '{valid}'",
                    ValidationIssue.UNKNOWN_FORK
                ))
                continue

            if target.forks():
                issues.append(ValidationIssue(
                    step_path,
                    f"Forked trench '{target.name}' should not fork another trench (no nested forks)",
                    ValidationIssue.NESTED_FORK
                ))

    return issues


def parse_trench_config(data: Any, source: str = '<config>') -> TrenchConfig:
    """
    Validate a raw config document and build the trench model

    Args:
        data: Parsed JSON/YAML document
        source: Where the document came from, used in error messages

    Returns:
        Validated TrenchConfig

    Raises:
        ConfigValidationError: If any problem was found
    """
    issues = _Issues()

    if not isinstance(data, dict):
        issues.add((), "Config must be an object")
        raise ConfigValidationError(source, issues.items)

    _check_keys(data, ('version', 'connections', 'trenches', 'logging', 'dryRun'), (), issues)

    version = data.get('version', DEFAULT_VERSION)
    if not _is_number(version):
        issues.add(('version',), "Expected a number")

    connections: List[Connection] = []
    raw_connections = data.get('connections')
    if not isinstance(raw_connections, list):
        issues.add(('connections',), "Expected a list of connections")
    else:
        for index, raw in enumerate(raw_connections):
            connection = parse_connection(raw, ('connections', index), issues)
            if connection is not None:
                connections.append(connection)

    trenches: List[Trench] = []
    raw_trenches = data.get('trenches')
    if not isinstance(raw_trenches, list):
        issues.add(('trenches',), "Expected a list of trenches")
    else:
        for index, raw in enumerate(raw_trenches):
            trench = parse_trench(raw, ('trenches', index), issues)
            if trench is not None:
                trenches.append(trench)

    logging_settings = data.get('logging', {})
    if not isinstance(logging_settings, dict):
        issues.add(('logging',), "Expected an object")
        logging_settings = {}
    else:
        _check_keys(logging_settings, ('level', 'file', 'traceMode'), ('logging',), issues)

    dry_run = data.get('dryRun')
    if dry_run is not None and not isinstance(dry_run, bool):
        issues.add(('dryRun',), "Expected a boolean")

    # Graph checks need every trench, so they only run on a structurally valid document
    if not issues.items:
        issues.items.extend(issue.prefixed('trenches') for issue in find_duplicate_names(trenches))
        issues.items.extend(issue.prefixed('trenches') for issue in validate_fork_graph(trenches))

    if issues.items:
        raise ConfigValidationError(source, issues.items)

    return TrenchConfig(
        connections=connections,
        trenches=trenches,
        version=version,
        logging=logging_settings,
        dry_run=dry_run,
    )
