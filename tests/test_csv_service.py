"""Tests for CSV parsing, dedup, merge and export."""

from datetime import date

import pytest

from ledgercal.services import csv_service
from ledgercal.services.csv_service import (
    analyze_import,
    dedup_key,
    dedupe_transactions,
    export_filename,
    filter_by_date_range,
    merge_transactions,
    parse_csv,
    summary_message,
    to_csv,
)


class TestQuoting:
    """Tests for quoted fields."""

    def test_quotes_and_escapes(self) -> None:
        """Test commas inside quotes and doubled quotes."""
        parsed = parse_csv('date,description,payee,amount\n2024-01-01,"Acme, Inc","Say ""hi""",-5\n')
        [row] = parsed.valid_rows
        assert (row.description, row.payee, row.amount) == ("Acme, Inc", 'Say "hi"', -5.0)

    def test_trims_values(self) -> None:
        """Test surrounding whitespace is removed."""
        [row] = parse_csv(" 2024-01-01 , Coffee ,  -3 \n").valid_rows
        assert (row.date, row.description, row.amount) == ("2024-01-01", "Coffee", -3.0)

    def test_line_breaks_inside_quotes(self) -> None:
        """Test a quoted field may span lines and errors report the physical line."""
        text = (
            "date,payee,description,notes,amount,recurrence\n"
            '2024-01-01,"Shop","Groceries","milk\neggs",-20,one-time\n'
            "2024-01-02,,Bad,,abc,one-time\n"
        )
        parsed = parse_csv(text)
        assert parsed.total_rows == 2
        assert parsed.valid_rows[0].notes == "milk\neggs"
        assert parsed.errors == ["line 4: invalid amount 'abc'"]

    def test_unreadable_csv_raises(self) -> None:
        """Test a field over the csv module's size limit fails the whole import."""
        with pytest.raises(ValueError, match="Could not import this CSV file."):
            parse_csv('2024-01-01,"' + "x" * 200_000 + '",1\n')


class TestParseCsv:
    """Tests for layout detection and row validation."""

    def test_current_layout(self) -> None:
        """Test date,payee,description,notes,amount,recurrence."""
        text = (
            "\ufeffdate,payee,description,notes,amount,recurrence\r\n"
            '2024-01-05,"Landlord","Rent","Jan, paid",-1200,monthly\r\n'
        )
        parsed = parse_csv(text)
        assert parsed.total_rows == 1
        assert parsed.invalid_rows == 0
        row = parsed.valid_rows[0]
        assert (row.date, row.payee, row.description, row.notes, row.amount, row.recurrence) == (
            "2024-01-05", "Landlord", "Rent", "Jan, paid", -1200.0, "monthly",
        )

    def test_no_header_uses_oldest_layout(self) -> None:
        """Test that the first line is data when there is no header."""
        parsed = parse_csv("2024-01-05,Coffee,-3.50\n2024-01-06,Lunch,-12,weekly\n")
        assert parsed.total_rows == 2
        assert [r.description for r in parsed.valid_rows] == ["Coffee", "Lunch"]
        assert parsed.valid_rows[0].recurrence == "one-time"
        assert parsed.valid_rows[1].recurrence == "weekly"

    def test_vendor_layout(self) -> None:
        """Test date,description,vendor,amount."""
        parsed = parse_csv("Date,Description,Vendor,Amount\n2024-02-01,Groceries,Market,-45.10\n")
        row = parsed.valid_rows[0]
        assert (row.description, row.payee, row.amount) == ("Groceries", "Market", -45.10)

    def test_payee_notes_layout(self) -> None:
        """Test date,description,payee,notes,amount,recurrence."""
        parsed = parse_csv(
            "date,description,payee,notes,amount,recurrence\n"
            "2024-02-01,Gym,FitCo,annual plan,-30,monthly\n"
        )
        row = parsed.valid_rows[0]
        assert (row.description, row.payee, row.notes, row.recurrence) == (
            "Gym", "FitCo", "annual plan", "monthly",
        )

    def test_invalid_rows_are_counted(self) -> None:
        """Test every validation failure."""
        text = "\n".join([
            "date,description,amount",
            "2024-01-01,Fine,10",
            "01/02/2024,US date,10",
            "2024-02-30,Impossible date,10",
            "2024-01-03,,10",
            "2024-01-04,Zero,0",
            "2024-01-05,Text,abc",
            "2024-01-06,Infinite,inf",
            "2024-01-07,Short",
            "",
            "   ",
        ])
        parsed = parse_csv(text)
        assert parsed.total_rows == 8
        assert len(parsed.valid_rows) == 1
        assert parsed.invalid_rows == 7
        assert len(parsed.errors) == 7

    def test_amounts_round_to_cents(self) -> None:
        """Test imported amounts are stored at cents precision."""
        parsed = parse_csv(
            "date,description,amount\n"
            "2024-01-01,Fraction,12.345678\n"
            "2024-01-02,Tiny,0.001\n"
            "2024-01-03,Tiny refund,-0.004\n"
            "2024-01-04,Penny,0.009\n"
        )
        assert [(r.description, r.amount) for r in parsed.valid_rows] == [
            ("Fraction", 12.35), ("Penny", 0.01),
        ]
        assert parsed.invalid_rows == 2
        assert parsed.errors[0] == "line 3: invalid amount '0.001'"

    def test_unknown_recurrence_is_invalid(self) -> None:
        """Test only known recurrence kinds import; legacy one-time spellings still do."""
        parsed = parse_csv(
            "date,description,amount,recurrence\n"
            "2024-01-01,Rent,-900,Monthly\n"
            "2024-01-02,Gift,50,none\n"
            "2024-01-03,Gym,-30,fortnightly\n"
        )
        assert [r.recurrence for r in parsed.valid_rows] == ["monthly", "one-time"]
        assert parsed.errors == ["line 4: invalid recurrence 'fortnightly'"]

    def test_empty_text(self) -> None:
        """Test empty input."""
        parsed = parse_csv("")
        assert (parsed.total_rows, parsed.invalid_rows, parsed.valid_rows) == (0, 0, [])


class TestExport:
    """Tests for serialization."""

    def test_to_csv_format(self, make_template) -> None:
        """Test header, quoting and trailing newline."""
        rows = [
            make_template("2024-01-05", amount=-1200, description="Rent", payee="Land\"lord",
                          notes="", recurrence="monthly"),
            make_template("2024-01-06", amount=12.5, description="Refund, partial"),
        ]
        assert to_csv(rows) == (
            "date,payee,description,notes,amount,recurrence\n"
            '2024-01-05,"Land""lord","Rent","",-1200,monthly\n'
            '2024-01-06,"","Refund, partial","",12.5,one-time\n'
        )

    def test_round_trip(self, make_template) -> None:
        """Test that exported rows import back with the same fields."""
        rows = [
            make_template("2024-03-01", amount=-9.99, description='Streaming "HD"',
                          payee="Flix, Inc", notes="family plan", recurrence="monthly"),
            make_template("2024-03-02", amount=2500, description="Salary", payee="Employer"),
        ]
        parsed = parse_csv(to_csv(rows))
        assert parsed.invalid_rows == 0
        for original, back in zip(rows, parsed.valid_rows):
            assert (back.date, back.payee, back.description, back.notes, back.amount, back.recurrence) == (
                original.date, original.payee, original.description, original.notes,
                original.amount, original.recurrence,
            )

    def test_round_trip_with_line_breaks(self, make_template) -> None:
        """Test free text with line breaks, quotes and commas comes back unchanged."""
        rows = [
            make_template("2024-03-01", amount=-45.1, description="Groceries\nweekly",
                          payee='Mart "Fresh", Ltd', notes="milk\neggs\nbread"),
            make_template("2024-03-02", amount=0.01, description="Interest", notes="a\n\nb"),
        ]
        parsed = parse_csv(to_csv(rows))
        assert (parsed.total_rows, parsed.invalid_rows) == (2, 0)
        for original, back in zip(rows, parsed.valid_rows):
            assert (back.payee, back.description, back.notes, back.amount) == (
                original.payee, original.description, original.notes, original.amount,
            )
        assert to_csv(parsed.valid_rows) == to_csv(rows)

    def test_filter_by_date_range(self, make_template) -> None:
        """Test inclusive bounds on anchor dates."""
        rows = [make_template(d) for d in ("2024-01-01", "2024-01-15", "2024-01-31", "2024-02-01")]
        kept = filter_by_date_range(rows, "2024-01-15", "2024-01-31")
        assert [r.date for r in kept] == ["2024-01-15", "2024-01-31"]
        assert len(filter_by_date_range(rows, None, "2024-01-15")) == 2
        assert len(filter_by_date_range(rows)) == 4

    def test_filter_rejects_bad_bounds(self, make_template) -> None:
        """Test invalid and inverted ranges."""
        with pytest.raises(ValueError):
            filter_by_date_range([], "2024-13-01")
        with pytest.raises(ValueError):
            filter_by_date_range([], "2024-02-01", "2024-01-01")

    def test_export_filename(self) -> None:
        """Test generated file names."""
        on = date(2024, 5, 1)
        assert export_filename(on=on) == "finance-transactions-export-2024-05-01.csv"
        assert export_filename("2024-01-01", "2024-03-31", on=on) == (
            "finance-transactions-from-2024-01-01-to-2024-03-31-export-2024-05-01.csv"
        )


class TestDedup:
    """Tests for dedup keys, merge and replace."""

    def test_key_normalizes_description_and_cents(self, make_template) -> None:
        """Test whitespace/case folding and cent rounding."""
        a = make_template("2024-01-01", amount=-12.5, description="  Coffee   SHOP ")
        b = make_template("2024-01-01", amount=-12.50000001, description="coffee shop")
        assert dedup_key(a) == dedup_key(b) == "2024-01-01|coffee shop|-1250"

    def test_merge_analysis(self, make_template) -> None:
        """Test N valid rows with K duplicates yields N - K new rows."""
        existing = [make_template("2024-01-01", amount=-5, description="Coffee")]
        parsed = parse_csv(
            "date,description,amount\n"
            "2024-01-01,coffee,-5\n"     # duplicate of existing
            "2024-01-02,Lunch,-12\n"
            "2024-01-02,LUNCH,-12\n"     # duplicate within batch
            "2024-01-03,Dinner,-30\n"
            "bad,row,1\n"
        )
        preview = analyze_import(existing, parsed, "merge")
        assert preview.to_dict() == {
            "importMode": "merge",
            "totalRows": 5,
            "validRows": 4,
            "invalidRows": 1,
            "duplicateRows": 2,
            "newRows": 2,
        }
        merged = merge_transactions(existing, parsed.valid_rows)
        assert [(r.date, r.description) for r in merged] == [
            ("2024-01-01", "Coffee"), ("2024-01-02", "Lunch"), ("2024-01-03", "Dinner"),
        ]

    def test_replace_analysis(self, make_template) -> None:
        """Test replace only counts duplicates within the batch."""
        existing = [make_template("2024-01-01", amount=-5, description="Coffee")]
        parsed = parse_csv(
            "2024-01-01,Coffee,-5\n"
            "2024-01-02,Lunch,-12\n"
            "2024-01-02,Lunch,-12\n"
        )
        preview = analyze_import(existing, parsed, "replace")
        assert (preview.new_rows, preview.duplicate_rows) == (2, 1)
        assert len(dedupe_transactions(parsed.valid_rows)) == 2

    def test_unknown_mode(self) -> None:
        """Test mode validation."""
        with pytest.raises(ValueError):
            analyze_import([], parse_csv(""), "append")

    def test_sorting_by_date_description_amount(self, make_template) -> None:
        """Test the canonical order."""
        rows = [
            make_template("2024-01-02", amount=5, description="B"),
            make_template("2024-01-02", amount=1, description="B"),
            make_template("2024-01-02", amount=9, description="A"),
            make_template("2024-01-01", amount=9, description="Z"),
        ]
        ordered = csv_service.sort_transactions(rows)
        assert [(r.date, r.description, r.amount) for r in ordered] == [
            ("2024-01-01", "Z", 9), ("2024-01-02", "A", 9),
            ("2024-01-02", "B", 1), ("2024-01-02", "B", 5),
        ]


class TestSummaryMessage:
    """Tests for the user-facing import summary."""

    def test_merge_message(self, make_template) -> None:
        """Test counts in the merge summary."""
        preview = analyze_import([], parse_csv("2024-01-01,A,1\n2024-01-01,A,1\nx,y,z\n"), "merge")
        assert summary_message(preview) == (
            "Imported 1 transaction(s). Skipped 1 duplicate row(s) and 1 invalid row(s)."
        )

    def test_replace_message(self) -> None:
        """Test replace wording."""
        preview = analyze_import([], parse_csv("2024-01-01,A,1\n"), "replace")
        assert summary_message(preview).startswith("Replaced with 1 transaction(s).")

    def test_no_valid_rows(self) -> None:
        """Test the empty import message."""
        preview = analyze_import([], parse_csv("x,y,z\n"), "merge")
        assert summary_message(preview) == "No valid transactions found in the CSV file."
