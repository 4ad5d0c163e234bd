"""
WARDEN v1.0 - Condition Evaluator
=================================

Evaluates atomic policy conditions against an AccessContext.

Each condition kind has a dedicated strategy:
    role          -> exact match against the context role
    attribute     -> dotted path lookup into the attribute bag
    time          -> allowed/blocked hour ranges, date windows, weekdays
    location      -> IP allow/deny lists (CIDR or exact) or geo attributes
    relationship  -> requester/owner relationship with strength ordering
    security      -> attribute lookup under the "security" section
    custom        -> predicates registered by the host

Evaluation is fail-closed: any internal error makes the condition false and
is returned alongside the result instead of being raised. `negated` flips a
successfully evaluated result only.

Author: WARDEN Development Team
Version: 1.0.0
"""

import ipaddress
import logging
import re
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pytz

from .exceptions import EvaluationError
from .models import (
    AccessContext,
    Condition,
    ConditionKind,
    ConditionOperator,
    Relationship,
    UserRole,
)

logger = logging.getLogger("WARDEN_ConditionEvaluator")

MISSING = object()

CustomPredicate = Callable[[Condition, AccessContext], bool]


class ConditionEvaluator:
    """
    Strategy dispatcher for condition kinds.

    Example:
        evaluator = ConditionEvaluator()
        evaluator.register_custom("verified_email", lambda c, ctx: ctx.attributes.get("email_verified"))
        passed, error = evaluator.evaluate(condition, context)
    """

    def __init__(self):
        self._strategies: Dict[ConditionKind, Callable[[Condition, AccessContext], bool]] = {
            ConditionKind.ROLE: self._evaluate_role,
            ConditionKind.ATTRIBUTE: self._evaluate_attribute,
            ConditionKind.TIME: self._evaluate_time,
            ConditionKind.LOCATION: self._evaluate_location,
            ConditionKind.RELATIONSHIP: self._evaluate_relationship,
            ConditionKind.SECURITY: self._evaluate_security,
            ConditionKind.CUSTOM: self._evaluate_custom,
        }
        self._custom: Dict[str, CustomPredicate] = {}

    def register_custom(self, name: str, predicate: CustomPredicate) -> None:
        self._custom[name] = predicate
        logger.debug(f"Custom condition registered: {name}")

    def unregister_custom(self, name: str) -> None:
        self._custom.pop(name, None)

    def has_custom(self, name: str) -> bool:
        return name in self._custom

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def evaluate(
        self, condition: Condition, context: AccessContext
    ) -> Tuple[bool, Optional[EvaluationError]]:
        """
        Evaluate one condition.

        Returns:
            (result, error). On error the result is always False.
        """
        try:
            strategy = self._strategies[ConditionKind(condition.kind)]
            result = bool(strategy(condition, context))
        except EvaluationError as e:
            return False, self._tag(e, condition)
        except Exception as e:
            return False, self._tag(
                EvaluationError(f"{type(e).__name__}: {e}"), condition
            )

        return (not result if condition.negated else result), None

    def evaluate_all(
        self, conditions: Sequence[Condition], context: AccessContext
    ) -> Tuple[bool, List[EvaluationError]]:
        """AND-combine conditions, stopping at the first false one."""
        for condition in conditions:
            passed, error = self.evaluate(condition, context)
            if error is not None:
                logger.warning(
                    f"Condition {condition.condition_id or condition.kind} failed closed: {error.message}"
                )
                return False, [error]
            if not passed:
                return False, []
        return True, []

    @staticmethod
    def _tag(error: EvaluationError, condition: Condition) -> EvaluationError:
        error.condition_id = error.condition_id or condition.condition_id
        error.kind = error.kind or getattr(condition.kind, "value", str(condition.kind))
        return error

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _evaluate_role(self, condition: Condition, context: AccessContext) -> bool:
        expected = condition.value
        if isinstance(expected, (list, tuple, set, frozenset)):
            roles = {UserRole(r) for r in expected}
            member = UserRole(context.role) in roles
            if condition.operator in (ConditionOperator.NOT_EQUALS, ConditionOperator.NOT_CONTAINS):
                return not member
            return member
        return compare(UserRole(context.role), condition.operator, UserRole(expected))

    def _evaluate_attribute(self, condition: Condition, context: AccessContext) -> bool:
        actual = lookup(context.attributes, condition.field)
        if actual is MISSING:
            return False
        return compare(actual, condition.operator, condition.value)

    def _evaluate_security(self, condition: Condition, context: AccessContext) -> bool:
        security = context.attributes.get("security", {})
        actual = lookup(security, condition.field) if isinstance(security, dict) else MISSING
        if actual is MISSING:
            actual = lookup(context.attributes, condition.field)
        if actual is MISSING:
            return False
        return compare(actual, condition.operator, condition.value)

    def _evaluate_time(self, condition: Condition, context: AccessContext) -> bool:
        if context.timestamp is None:
            raise EvaluationError("Context has no timestamp")

        moment = context.timestamp
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        try:
            local = moment.astimezone(pytz.timezone(condition.timezone or "UTC"))
        except pytz.UnknownTimeZoneError:
            raise EvaluationError(f"Unknown timezone: {condition.timezone}")

        restriction = condition.field
        value = condition.value

        if restriction == "allowed_hours":
            return _in_hour_window(local.time(), value)
        if restriction == "blocked_hours":
            return not _in_hour_window(local.time(), value)
        if restriction == "date_range":
            start, end = _pair(value)
            return _as_date(start) <= local.date() <= _as_date(end)
        if restriction == "days_of_week":
            return local.weekday() in {int(d) for d in value}

        raise EvaluationError(f"Unknown time restriction: {restriction}")

    def _evaluate_location(self, condition: Condition, context: AccessContext) -> bool:
        negative = condition.operator in (
            ConditionOperator.NOT_EQUALS,
            ConditionOperator.NOT_CONTAINS,
        )

        if condition.field in ("", "ip"):
            if not context.ip_address:
                raise EvaluationError("Context has no IP address")
            member = ip_matches(context.ip_address, _as_list(condition.value))
            return not member if negative else member

        actual = lookup(context.attributes, condition.field)
        if actual is MISSING:
            return False
        if isinstance(condition.value, (list, tuple, set, frozenset)):
            member = actual in condition.value
            return not member if negative else member
        return compare(actual, condition.operator, condition.value)

    def _evaluate_relationship(self, condition: Condition, context: AccessContext) -> bool:
        actual = context.resolved_relationship

        if condition.field == "min_relationship":
            return actual.strength >= Relationship(condition.value).strength

        if isinstance(condition.value, (list, tuple, set, frozenset)):
            allowed = {Relationship(r) for r in condition.value}
            member = actual in allowed
            if condition.operator in (ConditionOperator.NOT_EQUALS, ConditionOperator.NOT_CONTAINS):
                return not member
            return member

        expected = Relationship(condition.value)
        if condition.operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
            return compare(actual.strength, condition.operator, expected.strength)
        return compare(actual, condition.operator, expected)

    def _evaluate_custom(self, condition: Condition, context: AccessContext) -> bool:
        predicate = self._custom.get(condition.field)
        if predicate is None:
            raise EvaluationError(f"No custom evaluator registered as '{condition.field}'")
        return predicate(condition, context)


# =============================================================================
# OPERATORS & HELPERS
# =============================================================================


def compare(actual: Any, operator: ConditionOperator, expected: Any) -> bool:
    """Apply a comparison operator. Type mismatches raise EvaluationError."""
    operator = ConditionOperator(operator)
    try:
        if operator == ConditionOperator.EQUALS:
            return actual == expected
        if operator == ConditionOperator.NOT_EQUALS:
            return actual != expected
        if operator == ConditionOperator.CONTAINS:
            return expected in actual
        if operator == ConditionOperator.NOT_CONTAINS:
            return expected not in actual
        if operator == ConditionOperator.GREATER_THAN:
            return actual > expected
        if operator == ConditionOperator.LESS_THAN:
            return actual < expected
        if operator == ConditionOperator.IN_RANGE:
            low, high = _pair(expected)
            return low <= actual <= high
        if operator == ConditionOperator.REGEX:
            return re.search(expected, str(actual)) is not None
    except re.error as e:
        raise EvaluationError(f"Invalid regex {expected!r}: {e}")
    except TypeError as e:
        raise EvaluationError(
            f"Cannot apply {operator.value} to {type(actual).__name__} and {type(expected).__name__}: {e}"
        )

    raise EvaluationError(f"Unsupported operator: {operator}")


def lookup(source: Any, path: str) -> Any:
    """Resolve a dotted path through nested mappings."""
    current = source
    for part in path.split(".") if path else []:
        if isinstance(current, dict) or hasattr(current, "keys"):
            if part not in current:
                return MISSING
            current = current[part]
        else:
            return MISSING
    return current


def ip_matches(ip: str, entries: Iterable[str]) -> bool:
    """True when `ip` equals or falls inside any entry (exact address or CIDR)."""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        raise EvaluationError(f"Invalid IP address: {ip}")

    for entry in entries:
        try:
            if "/" in entry:
                if address in ipaddress.ip_network(entry, strict=False):
                    return True
            elif address == ipaddress.ip_address(entry):
                return True
        except ValueError:
            raise EvaluationError(f"Invalid IP pattern: {entry}")
    return False


def _pair(value: Any) -> Tuple[Any, Any]:
    if isinstance(value, dict):
        return value["start"], value["end"]
    try:
        low, high = value
    except (TypeError, ValueError):
        raise EvaluationError(f"Expected a (start, end) pair, got {value!r}")
    return low, high


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _as_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        return time(hour=value % 24)
    try:
        hours, minutes = str(value).split(":")
        return time(hour=int(hours), minute=int(minutes))
    except ValueError:
        raise EvaluationError(f"Invalid time of day: {value!r}")


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise EvaluationError(f"Invalid date: {value!r}")


def _in_hour_window(moment: time, window: Any) -> bool:
    """Half-open [start, end) window; spans midnight when end <= start."""
    start, end = (_as_time(v) for v in _pair(window))
    if start < end:
        return start <= moment < end
    return moment >= start or moment < end


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "ConditionEvaluator",
    "CustomPredicate",
    "compare",
    "lookup",
    "MISSING",
    "ip_matches",
]
