"""
Unit tests for payslip field extraction.

Tests cover:
- Inline label-colon-value layout
- Structural colon-block layout from OCR
- Parenthetical and item-code fallbacks
- Plausibility ranges and rejected candidates
- Derived totals and percentage, net salary correction
- Confidence score and data completeness
- Value parsers (numbers, names, identifiers, periods)
"""

import pytest

from payslips.extraction import extract_fields
from payslips.shared.config import ExtractionConfig


class TestInlineExtraction:
    """Tests for text where each label is followed by a colon and value."""

    def test_single_line_payslip(self, inline_payslip_text):
        """Test the canonical single-line payslip."""
        fields = extract_fields(inline_payslip_text)

        assert fields.employee_name == "Ali bin Abu"
        assert fields.employee_number == "12345"
        assert fields.period == "05/2024"
        assert fields.total_deductions == 368.30
        assert fields.net_salary == 3845.31
        assert fields.net_salary_percentage == 91.26

    def test_missing_income_is_derived(self, inline_payslip_text):
        """Test total income is filled from net salary plus deductions."""
        fields = extract_fields(inline_payslip_text)

        assert fields.total_income == pytest.approx(4213.61)
        assert "total_income: derived" in fields.debug_trace

    def test_derivation_can_be_disabled(self, inline_payslip_text):
        """Test derived totals are skipped when switched off."""
        config = ExtractionConfig(derive_missing_fields=False)

        fields = extract_fields(inline_payslip_text, config)

        assert fields.total_income is None
        assert fields.gross_salary is None
        assert fields.net_salary == 3845.31

    def test_percentage_label_does_not_feed_net_salary(self):
        """Test 'Peratus Gaji Bersih' is never read as the net salary."""
        fields = extract_fields("% Peratus Gaji Bersih : 75.50")

        assert fields.net_salary is None
        assert fields.net_salary_percentage == 75.50

    def test_multiline_inline_layout(self):
        """Test label-colon-value pairs on separate lines."""
        text = "\n".join([
            "PENYATA GAJI",
            "Nama : Siti Aminah binti Hassan",
            "No. Gaji : A12345",
            "Bulan : 11/2023",
            "Gaji Pokok : 3,200.00",
            "Jumlah Pendapatan : 4,050.00",
            "Jumlah Potongan : 810.00",
            "Gaji Bersih : 3,240.00",
        ])

        fields = extract_fields(text)

        assert fields.employee_name == "Siti Aminah binti Hassan"
        assert fields.employee_number == "A12345"
        assert fields.period == "11/2023"
        assert fields.gross_salary == 3200.00
        assert fields.total_income == 4050.00
        assert fields.total_deductions == 810.00
        assert fields.net_salary == 3240.00
        assert fields.net_salary_percentage == pytest.approx(80.0)
        assert "net_salary_percentage: derived" in fields.debug_trace

    def test_empty_text_finds_nothing(self):
        """Test empty input yields an all-null result with a full trace."""
        fields = extract_fields("")

        assert fields.found_fields == []
        assert "employee_name: not found" in fields.debug_trace
        assert "net_salary_percentage: not found" in fields.debug_trace


class TestStructuralExtraction:
    """Tests for OCR layouts with labels, colons and values on separate lines."""

    def test_colon_block_values_follow_label_order(self, structural_payslip_text):
        """Test each label takes the value at its position in the block."""
        fields = extract_fields(structural_payslip_text)

        assert fields.total_income == 5200.00
        assert fields.total_deductions == 1100.50
        assert fields.net_salary == 4099.50
        assert "total_income: structural" in fields.debug_trace
        assert "net_salary: structural" in fields.debug_trace

    def test_percentage_derived_from_block_values(self, structural_payslip_text):
        """Test the percentage is computed when the block omits it."""
        fields = extract_fields(structural_payslip_text)

        assert fields.net_salary_percentage == pytest.approx(78.84)

    def test_note_lines_are_skipped(self):
        """Test bracketed and bank notes between colons and values are ignored."""
        text = "\n".join([
            "Jumlah Potongan",
            "Gaji Bersih",
            "(Sila rujuk penyata bank)",
            ":",
            ":",
            "Bank Islam",
            "920.00",
            "2,880.00",
        ])

        fields = extract_fields(text)

        assert fields.total_deductions == 920.00
        assert fields.net_salary == 2880.00

    def test_block_without_colons_is_ignored(self):
        """Test a label list with no colon block yields nothing structural."""
        text = "\n".join([
            "Jumlah Potongan",
            "Gaji Bersih",
            "920.00",
            "2,880.00",
        ])

        fields = extract_fields(text)

        assert fields.total_deductions is None
        assert fields.net_salary is None

    def test_unknown_captions_keep_their_value_slots(self):
        """Test earnings captions with no field of their own still take a value."""
        text = "\n".join([
            "Gaji Pokok",
            "Elaun Perumahan",
            "Jumlah Pendapatan",
            ":",
            ":",
            ":",
            "3,000.00",
            "250.00",
            "4,213.61",
        ])

        fields = extract_fields(text)

        assert fields.gross_salary == 3000.00
        assert fields.total_income == 4213.61
        assert "total_income: structural" in fields.debug_trace

    def test_header_lines_above_block_are_not_paired(self):
        """Test captions above a shorter colon run do not shift the values."""
        text = "\n".join([
            "KERAJAAN MALAYSIA",
            "Elaun Perumahan",
            "Jumlah Potongan",
            "Gaji Bersih",
            ":",
            ":",
            "920.00",
            "2,880.00",
        ])

        fields = extract_fields(text)

        assert fields.total_deductions == 920.00
        assert fields.net_salary == 2880.00


class TestFallbackStrategies:
    """Tests for parenthetical, item-code and line-scan fallbacks."""

    def test_parenthetical_amount(self):
        """Test a bracketed number next to the label."""
        fields = extract_fields("Gaji Bersih (RM 3,200.00)")

        assert fields.net_salary == 3200.00
        assert "net_salary: parenthetical" in fields.debug_trace

    def test_gross_salary_from_item_code(self):
        """Test basic salary read from the 0001 earnings row."""
        text = "\n".join([
            "PENDAPATAN",
            "0001 Gaji Pokok 3,500.00",
            "0201 Imbuhan Tetap Perumahan 300.00",
        ])

        fields = extract_fields(text)

        assert fields.gross_salary == 3500.00
        assert "gross_salary: item_code" in fields.debug_trace

    def test_line_scan_with_dash_separator(self):
        """Test label and value separated by dashes on one line."""
        fields = extract_fields("Jumlah Potongan --- 512.40")

        assert fields.total_deductions == 512.40
        assert "total_deductions: line_scan" in fields.debug_trace

    def test_inline_wins_over_later_strategies(self):
        """Test strategy order: inline is tried before parenthetical."""
        fields = extract_fields("Gaji Bersih : 2,100.00 Gaji Bersih (RM 9,999.00)")

        assert fields.net_salary == 2100.00


class TestPlausibilityRanges:
    """Tests for range checks on extracted values."""

    def test_amount_below_minimum_rejected(self):
        """Test amounts at or below the minimum are rejected."""
        fields = extract_fields("Gaji Pokok : 75.00")

        assert fields.gross_salary is None
        assert "gross_salary: inline rejected '75.00'" in fields.debug_trace
        assert "gross_salary: not found" in fields.debug_trace

    def test_amount_bounds_are_exclusive(self):
        """Test exactly 100.00 is not a plausible amount."""
        fields = extract_fields("Jumlah Potongan : 100.00")

        assert fields.total_deductions is None

    def test_percentage_bounds_are_inclusive(self):
        """Test exactly 100% is accepted."""
        fields = extract_fields("% Peratus Gaji Bersih : 100")

        assert fields.net_salary_percentage == 100.0

    def test_percentage_above_maximum_rejected(self):
        """Test a percentage over 100 is rejected."""
        fields = extract_fields("% Peratus Gaji Bersih : 150.00")

        assert fields.net_salary_percentage is None

    def test_rejected_candidate_falls_through_to_next(self):
        """Test a later plausible candidate is used after a rejected one."""
        fields = extract_fields("Gaji Bersih : 12.00 Gaji Bersih : 2,750.00")

        assert fields.net_salary == 2750.00

    def test_custom_ranges(self):
        """Test ranges come from the config object."""
        config = ExtractionConfig(min_amount=5000.0)

        fields = extract_fields("Gaji Bersih : 3,000.00", config)

        assert fields.net_salary is None

    def test_derived_value_respects_range(self):
        """Test a derived percentage outside the range is dropped."""
        text = "Jumlah Pendapatan : 10,000.00\nGaji Bersih : 500.00"

        fields = extract_fields(text)

        assert fields.net_salary_percentage is None
        assert "net_salary_percentage: derived" not in fields.debug_trace


class TestNetSalaryCorrection:
    """Tests for reconciling net salary with income minus deductions."""

    def test_inconsistent_net_salary_recomputed(self):
        """Test a net salary more than 100 off is replaced and traced."""
        text = "\n".join([
            "Jumlah Pendapatan : 5,000.00",
            "Jumlah Potongan : 1,000.00",
            "Gaji Bersih : 8,000.00",
        ])

        fields = extract_fields(text)

        assert fields.net_salary == 4000.00
        assert "net_salary: corrected" in fields.debug_trace
        assert fields.net_salary_percentage == 80.0

    def test_small_difference_kept(self):
        """Test a net salary within 100 of the expected value is left alone."""
        text = "\n".join([
            "Jumlah Pendapatan : 5,000.00",
            "Jumlah Potongan : 1,000.00",
            "Gaji Bersih : 3,950.00",
        ])

        fields = extract_fields(text)

        assert fields.net_salary == 3950.00
        assert "net_salary: corrected" not in fields.debug_trace

    def test_correction_skipped_without_derivation(self):
        """Test the parsed value stays when derivation is disabled."""
        text = "Jumlah Pendapatan : 5,000.00 Jumlah Potongan : 1,000.00 Gaji Bersih : 8,000.00"

        fields = extract_fields(text, ExtractionConfig(derive_missing_fields=False))

        assert fields.net_salary == 8000.00


class TestQualityScores:
    """Tests for confidence score and data completeness."""

    def test_scores_follow_strategies(self):
        """Test three inline totals and a derived percentage."""
        text = "\n".join([
            "Jumlah Pendapatan : 4,050.00",
            "Jumlah Potongan : 810.00",
            "Gaji Bersih : 3,240.00",
        ])

        fields = extract_fields(text)

        # (95 + 95 + 95 + 85) / 4
        assert fields.confidence_score == 92.5
        assert fields.data_completeness == 50.0

    def test_corrected_value_lowers_confidence(self):
        """Test a corrected net salary scores below an inline one."""
        consistent = extract_fields(
            "Jumlah Pendapatan : 5,000.00 Jumlah Potongan : 1,000.00 Gaji Bersih : 4,000.00"
        )
        corrected = extract_fields(
            "Jumlah Pendapatan : 5,000.00 Jumlah Potongan : 1,000.00 Gaji Bersih : 8,000.00"
        )

        assert corrected.confidence_score < consistent.confidence_score

    def test_derived_field_counts_toward_completeness(self, inline_payslip_text):
        """Test seven of eight fields, one of them derived."""
        fields = extract_fields(inline_payslip_text)

        assert fields.data_completeness == 87.5
        # Six inline fields at 95 and derived income at 90
        assert fields.confidence_score == 94.29

    def test_nothing_found_scores_zero(self):
        """Test empty text has zero confidence and completeness."""
        fields = extract_fields("")

        assert fields.confidence_score == 0.0
        assert fields.data_completeness == 0.0


class TestIdentityFields:
    """Tests for name, employee number and period parsing."""

    def test_name_keeps_printed_casing(self):
        """Test upper-case names are not re-cased."""
        fields = extract_fields("Nama : MOHD FAIZAL BIN ISMAIL Jawatan : Guru")

        assert fields.employee_name == "MOHD FAIZAL BIN ISMAIL"

    def test_name_with_digits_rejected(self):
        """Test a name candidate containing digits is rejected."""
        fields = extract_fields("Nama : 12345")

        assert fields.employee_name is None

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Bulan : 05/2024", "05/2024"),
            ("Bulan : 5-2024", "05/2024"),
            ("Bulan : Mei 2024", "05/2024"),
            ("Bulan : DISEMBER 2023", "12/2023"),
            ("Bulan : Ogos 2022", "08/2022"),
        ],
    )
    def test_period_normalized(self, raw, expected):
        """Test pay periods normalize to MM/YYYY."""
        assert extract_fields(raw).period == expected

    def test_invalid_month_rejected(self):
        """Test month 13 is not a valid period."""
        assert extract_fields("Bulan : 13/2024").period is None


class TestValueParsers:
    """Tests for the individual value parsers."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("3,845.31", 3845.31),
            ("RM 1,200", 1200.0),
            ("91.26%", 91.26),
            ("368.30", 368.30),
        ],
    )
    def test_parse_number(self, raw, expected):
        """Test monetary and percentage strings."""
        from payslips.extraction.parsing import parse_number

        assert parse_number(raw) == expected

    def test_parse_number_rejects_text(self):
        """Test non-numeric strings return None."""
        from payslips.extraction.parsing import parse_number

        assert parse_number("Bank Rakyat") is None

    def test_parse_identifier_uppercases(self):
        """Test identifiers are normalized to upper case."""
        from payslips.extraction.parsing import parse_identifier

        assert parse_identifier("ab-1234") == "AB1234"

    def test_parse_identifier_requires_digit(self):
        """Test purely alphabetic identifiers are rejected."""
        from payslips.extraction.parsing import parse_identifier

        assert parse_identifier("ABCDEF") is None


class TestGeneratedPayslips:
    """Property-style checks over generated payslips."""

    @pytest.mark.parametrize("layout", ["inline", "columns"])
    def test_generated_values_recovered(self, layout):
        """Test every rendered value is extracted back."""
        from tests.utils.payslip_generator import PayslipGenerator

        generator = PayslipGenerator(seed=42)

        for payslip in generator.generate_batch(10, layout=layout):
            fields = extract_fields(payslip.text)

            assert fields.employee_name == payslip.employee_name
            assert fields.employee_number == payslip.employee_number
            assert fields.period == payslip.period
            assert fields.gross_salary == pytest.approx(payslip.gross_salary)
            assert fields.total_income == pytest.approx(payslip.total_income)
            assert fields.total_deductions == pytest.approx(payslip.total_deductions)
            assert fields.net_salary == pytest.approx(payslip.net_salary)
            assert fields.net_salary_percentage == pytest.approx(payslip.net_salary_percentage)

    def test_extraction_is_deterministic(self):
        """Test the same text always gives the same result."""
        from tests.utils.payslip_generator import PayslipGenerator

        payslip = PayslipGenerator(seed=7).generate("columns")

        assert extract_fields(payslip.text) == extract_fields(payslip.text)
