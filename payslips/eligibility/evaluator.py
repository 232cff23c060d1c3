"""
Eligibility Evaluator

Applies each active cooperative's predicate to the extracted fields.
Nothing is evaluated when the net salary percentage is missing.
"""

from collections.abc import Iterable

import structlog

from payslips.shared.models.documents import EligibilityDetail, ExtractedFields
from payslips.shared.models.rules import CooperativeRule, RuleKind, RulePredicate

log = structlog.get_logger()


def _check(predicate: RulePredicate, fields: ExtractedFields) -> tuple[bool, str]:
    """Evaluate one predicate. Returns (eligible, reason)."""
    threshold = predicate.threshold
    percentage = fields.net_salary_percentage

    if predicate.kind == RuleKind.MAX_PERCENTAGE:
        eligible = percentage <= threshold
        return eligible, (
            f"Net salary percentage {percentage}% "
            f"{'is within' if eligible else 'exceeds'} the {threshold}% maximum"
        )

    if predicate.kind == RuleKind.MIN_PERCENTAGE:
        eligible = percentage >= threshold
        return eligible, (
            f"Net salary percentage {percentage}% "
            f"{'meets' if eligible else 'is below'} the {threshold}% minimum"
        )

    if predicate.kind == RuleKind.MIN_NET_PAY:
        if fields.net_salary is None:
            return True, "Net salary unavailable; rule not applied"
        eligible = fields.net_salary >= threshold
        return eligible, (
            f"Net salary RM{fields.net_salary:,.2f} "
            f"{'meets' if eligible else 'is below'} the RM{threshold:,.2f} minimum"
        )

    if predicate.kind == RuleKind.MIN_GROSS_PAY:
        if fields.gross_salary is None:
            return True, "Basic salary unavailable; rule not applied"
        eligible = fields.gross_salary >= threshold
        return eligible, (
            f"Basic salary RM{fields.gross_salary:,.2f} "
            f"{'meets' if eligible else 'is below'} the RM{threshold:,.2f} minimum"
        )

    raise ValueError(f"Unhandled rule kind: {predicate.kind}")


def explain_eligibility(
    fields: ExtractedFields,
    rules: Iterable[CooperativeRule],
) -> dict[str, EligibilityDetail]:
    """
    Evaluate active rules and keep the reason behind each outcome.

    Returns:
        Map of cooperative name -> EligibilityDetail; empty when the
        net salary percentage is missing
    """
    if fields.net_salary_percentage is None:
        log.info("eligibility_skipped", reason="net_salary_percentage_missing")
        return {}

    details: dict[str, EligibilityDetail] = {}
    for rule in rules:
        if not rule.is_active:
            continue
        eligible, reason = _check(rule.predicate, fields)
        details[rule.name] = EligibilityDetail(eligible=eligible, reasons=[reason])

    log.info(
        "eligibility_evaluated",
        rules_evaluated=len(details),
        eligible_count=sum(1 for d in details.values() if d.eligible),
    )
    return details


def evaluate_eligibility(
    fields: ExtractedFields,
    rules: Iterable[CooperativeRule],
) -> dict[str, bool]:
    """Map of cooperative name -> eligible, for active rules only."""
    return {name: detail.eligible for name, detail in explain_eligibility(fields, rules).items()}


def apply_eligibility(
    fields: ExtractedFields,
    rules: Iterable[CooperativeRule],
) -> ExtractedFields:
    """Return a copy of `fields` with eligibility results filled in."""
    details = explain_eligibility(fields, rules)
    return fields.model_copy(
        update={
            "eligibility_results": {name: d.eligible for name, d in details.items()},
            "eligibility_details": details,
        }
    )
