"""
Field validation for member records.

Rules are kept in a flat table of (field, predicate, message) and evaluated
in order by ``validate_member``. Messages embed the record's id and
membership number so a batch report can be traced back to the records.
"""
import re
from typing import Any, Callable, Iterable, NamedTuple

from gtc_api.core.exceptions import ValidationFailed
from gtc_api.models.member import Member

EMAIL_PATTERN = re.compile(r".*@.*")


class ValidationRule(NamedTuple):
    field: str
    predicate: Callable[[Any], bool]
    message: str


def _not_null(value: Any) -> bool:
    return value is not None


def _not_empty(value: Any) -> bool:
    return value is not None and str(value) != ""


def _valid_email(value: Any) -> bool:
    return value is not None and EMAIL_PATTERN.fullmatch(str(value)) is not None


MEMBER_RULES: tuple[ValidationRule, ...] = (
    ValidationRule("type", _not_null, "may not be null"),
    ValidationRule("status", _not_null, "may not be null"),
    ValidationRule("membership_number", _not_null, "may not be null"),
    ValidationRule("salutation", _not_null, "may not be null"),
    ValidationRule("first_name", _not_empty, "may not be empty"),
    ValidationRule("last_name", _not_empty, "may not be empty"),
    ValidationRule("email", _valid_email, "Not a valid email address."),
)


def _format_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def validate_member(member: Member, enforce: bool = False) -> list[str]:
    """
    Run every rule against ``member``.

    Returns the violation messages in rule order. With ``enforce`` the first
    violation raises ``ValidationFailed`` instead.
    """
    messages: list[str] = []
    for rule in MEMBER_RULES:
        value = getattr(member, rule.field)
        if rule.predicate(value):
            continue

        message = (
            f"ID [{member.id}] (#{member.membership_number}) failed validation: "
            f"'{_format_value(value)}' {rule.message}"
        )
        if enforce:
            raise ValidationFailed([message])
        messages.append(message)
    return messages


def validate_members(members: Iterable[Member]) -> list[list[str]]:
    """Collect-mode validation over many records; clean records are omitted."""
    report = []
    for member in members:
        messages = validate_member(member)
        if messages:
            report.append(messages)
    return report
