"""
Payslip Label Patterns

Label and value regexes for Malaysian government payslips. Labels are
matched case-insensitively against whitespace-normalized text, so a single
space is enough between words.
"""

import re
from dataclasses import dataclass
from typing import Literal

FieldKind = Literal["name", "identifier", "period", "amount", "percentage"]


# --- Value Patterns ---

NUMBER = r"(?:RM\s*)?(?P<value>\d[\d,]*(?:\.\d+)?)\s*%?"

# Header labels that can follow the employee name on the same line
NAME_STOP_LABELS = (
    r"no\.?\s*gaji",
    r"no\.?\s*k\s*/?\s*p",
    r"no\.?\s*ic",
    r"bulan",
    r"jawatan",
    r"gred",
    r"jabatan",
    r"pej(?:abat)?\.?\s*perakaunan",
    r"alamat",
    r"kump",
    r"pusat\s+pembayar",
    r"jumlah",
    r"gaji\s+pokok",
    r"gaji\s+bersih",
    r"pendapatan",
    r"potongan",
)

_NAME_STOP = "|".join(NAME_STOP_LABELS)

VALUE_PATTERNS: dict[FieldKind, str] = {
    "name": rf"(?P<value>[^\s:].*?)(?=\s+(?:{_NAME_STOP})\b|\s*$)",
    "identifier": r"(?P<value>[A-Za-z0-9][A-Za-z0-9\-]*)",
    "period": r"(?P<value>\d{1,2}\s*[/\-.]\s*\d{4}|[A-Za-z]{3,9}\.?\s+\d{4})",
    "amount": NUMBER,
    "percentage": NUMBER,
}

# A value line in a structural block is the whole physical line
BARE_NUMBER = re.compile(r"(?:RM\s*)?(?P<value>\d[\d,]*(?:\.\d+)?)\s*%?", re.IGNORECASE)

COLON_LINE = re.compile(r"(?:\s*:)+\s*")
NOTE_LINE = re.compile(r"\(.*\)|\b(?:sila|bank|cukai)\b", re.IGNORECASE)

GROSS_ITEM_CODE = re.compile(
    r"\b0001\s+gaji\s+pokok\b\s*[:.\-=]*\s*" + NUMBER,
    re.IGNORECASE,
)


@dataclass(frozen=True)
class FieldPattern:
    """Label regex and value kind for one extracted field."""

    name: str
    label: str
    kind: FieldKind

    @property
    def is_numeric(self) -> bool:
        return self.kind in ("amount", "percentage")

    @property
    def value_pattern(self) -> str:
        return VALUE_PATTERNS[self.kind]

    def inline(self) -> re.Pattern[str]:
        """Label, colon, value."""
        return re.compile(self.label + r"\s*:\s*" + self.value_pattern, re.IGNORECASE)

    def line_scan(self) -> re.Pattern[str]:
        """Label, optional separator run, value."""
        return re.compile(self.label + r"\s*[:.\-=]*\s*" + self.value_pattern, re.IGNORECASE)

    def parenthetical(self) -> re.Pattern[str]:
        """Label followed closely by a bracketed number."""
        return re.compile(
            self.label + r"[^\d()]{0,30}\(\s*" + NUMBER + r"\s*\)",
            re.IGNORECASE,
        )

    def bare_label(self) -> re.Pattern[str]:
        """A physical line holding only this label."""
        return re.compile(r"(?:%\s*)?" + self.label + r"\s*", re.IGNORECASE)


# Extraction order is fixed; the debug trace follows it.
FIELD_PATTERNS: tuple[FieldPattern, ...] = (
    FieldPattern("employee_name", r"\bnama\b", "name"),
    FieldPattern("employee_number", r"\bno\.?\s*gaji\b", "identifier"),
    FieldPattern("period", r"\bbulan\b", "period"),
    FieldPattern("gross_salary", r"\bgaji\s+pokok\b", "amount"),
    FieldPattern("total_income", r"\bjumlah\s+pendapatan\b", "amount"),
    FieldPattern("total_deductions", r"\bjumlah\s+potongan\b", "amount"),
    # The percentage label ends in the net salary label
    FieldPattern("net_salary", r"(?<!peratus )\bgaji\s+bersih\b", "amount"),
    FieldPattern("net_salary_percentage", r"%?\s*\bperatus\s+gaji\s+bersih\b", "percentage"),
)

BARE_LABELS: tuple[re.Pattern[str], ...] = tuple(p.bare_label() for p in FIELD_PATTERNS)


def is_bare_label(line: str) -> bool:
    return any(label.fullmatch(line) for label in BARE_LABELS)


LETTER = re.compile(r"[A-Za-z]")


def is_label_line(line: str) -> bool:
    """
    Any caption line in a label block, known field or not.

    Colon runs, notes and bare values are not captions.
    """
    return (
        LETTER.search(line) is not None
        and not COLON_LINE.fullmatch(line)
        and not NOTE_LINE.search(line)
        and not BARE_NUMBER.fullmatch(line)
    )
