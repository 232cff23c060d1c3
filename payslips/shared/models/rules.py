"""
Cooperative Rule Models

A cooperative lender (koperasi) gates loan approval with one predicate.
The predicate is a tagged variant: a kind plus a numeric threshold.
DynamoDB layout:
    PK: KOPERASI#<rule_id>
    SK: RULE
    GSI1PK: KOPERASI (enables listing all rules)
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from payslips.shared.models.documents import from_dynamo_number, to_dynamo_number


class RuleKind(str, Enum):
    """Predicate kinds a cooperative rule can carry."""

    MAX_PERCENTAGE = "max_percentage"
    """Eligible when net salary percentage <= threshold."""

    MIN_PERCENTAGE = "min_percentage"
    """Eligible when net salary percentage >= threshold."""

    MIN_NET_PAY = "min_net_pay"
    """Eligible when net salary >= threshold."""

    MIN_GROSS_PAY = "min_gross_pay"
    """Eligible when basic salary >= threshold."""


# Legacy rule dictionary keys, in the order they take precedence
LEGACY_RULE_KEYS: dict[str, RuleKind] = {
    "max_peratus_gaji_bersih": RuleKind.MAX_PERCENTAGE,
    "min_peratus_gaji_bersih": RuleKind.MIN_PERCENTAGE,
    "min_gaji_bersih": RuleKind.MIN_NET_PAY,
    "min_gaji_pokok": RuleKind.MIN_GROSS_PAY,
}


class RulePredicate(BaseModel):
    """Tagged eligibility predicate."""

    model_config = ConfigDict(frozen=True)

    kind: RuleKind
    threshold: float


class CooperativeRule(BaseModel):
    """A cooperative lender and its eligibility predicate."""

    model_config = ConfigDict(frozen=True)

    rule_id: str = Field(..., description="Rule identifier")
    name: str = Field(..., description="Cooperative display name")
    is_active: bool = Field(default=True)
    predicate: RulePredicate

    @property
    def pk(self) -> str:
        return f"KOPERASI#{self.rule_id}"

    @property
    def sk(self) -> str:
        return "RULE"

    @classmethod
    def from_legacy_rules(
        cls,
        rule_id: str,
        name: str,
        rules: dict[str, Any],
        *,
        is_active: bool = True,
    ) -> "CooperativeRule":
        """
        Build a rule from a loosely typed rules dictionary.

        The first recognised key in LEGACY_RULE_KEYS order wins.

        Raises:
            ValueError: If no recognised key holds a numeric threshold
        """
        for key, kind in LEGACY_RULE_KEYS.items():
            value = rules.get(key)
            if value is None:
                continue
            try:
                threshold = float(value)
            except (TypeError, ValueError):
                continue
            return cls(
                rule_id=rule_id,
                name=name,
                is_active=is_active,
                predicate=RulePredicate(kind=kind, threshold=threshold),
            )
        raise ValueError(
            f"No usable eligibility criterion for '{name}'. "
            f"Expected one of: {list(LEGACY_RULE_KEYS)}"
        )

    def to_dynamodb(self) -> dict[str, Any]:
        """Convert to DynamoDB item."""
        return {
            "PK": self.pk,
            "SK": self.sk,
            "GSI1PK": "KOPERASI",
            "GSI1SK": self.name,
            "rule_id": self.rule_id,
            "name": self.name,
            "is_active": self.is_active,
            "kind": self.predicate.kind.value,
            "threshold": to_dynamo_number(self.predicate.threshold),
        }

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "CooperativeRule":
        """Parse from DynamoDB item."""
        return cls(
            rule_id=item["rule_id"],
            name=item["name"],
            is_active=bool(item.get("is_active", True)),
            predicate=RulePredicate(
                kind=RuleKind(item["kind"]),
                threshold=from_dynamo_number(item["threshold"]),
            ),
        )
