"""CSV import/export for transaction templates.

Four header layouts have been written over time; all of them import:

    date,description,amount[,recurrence]                   (oldest, also the no-header default)
    date,description,payee|vendor,amount[,recurrence]
    date,description,payee,notes,amount,recurrence
    date,payee,description,notes,amount,recurrence         (current export format)
"""
import csv
import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date

from ledgercal.models.transaction import TransactionTemplate, new_id, normalize_recurrence, sort_key
from ledgercal.utils.constants import CSV_HEADER, EXPORT_FILE_PREFIX, IMPORT_MODES, ONE_TIME, RECURRENCES
from ledgercal.utils.currency import format_plain, to_cents
from ledgercal.utils.date_helpers import format_date, is_iso_date, parse_date, today

logger = logging.getLogger(__name__)


LAYOUT_BASIC = ("date", "description", "amount", "recurrence")
LAYOUT_PAYEE = ("date", "description", "payee", "amount", "recurrence")
LAYOUT_PAYEE_NOTES = ("date", "description", "payee", "notes", "amount", "recurrence")
LAYOUT_CURRENT = tuple(CSV_HEADER)

NO_VALID_ROWS_MESSAGE = "No valid transactions found in the CSV file."
IMPORT_FAILED_MESSAGE = "Could not import this CSV file."


@dataclass
class ParsedCsv:
    valid_rows: list[TransactionTemplate] = field(default_factory=list)
    invalid_rows: int = 0
    total_rows: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ImportPreview:
    import_mode: str
    total_rows: int
    valid_rows: int
    invalid_rows: int
    duplicate_rows: int
    new_rows: int
    rows: list[TransactionTemplate] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict:
        return {
            "importMode": self.import_mode,
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "duplicateRows": self.duplicate_rows,
            "newRows": self.new_rows,
        }


# ── Parsing ───────────────────────────────────────────────────────────────────

def _clean(values: list[str]) -> list[str]:
    return [v.strip() for v in values]


def detect_layout(header: list[str]) -> tuple[str, ...]:
    """Pick the column layout from a header row."""
    cols = [h.strip().lower() for h in header]
    payee_idx = next((i for i, c in enumerate(cols) if c in ("payee", "vendor")), -1)
    desc_idx = cols.index("description") if "description" in cols else -1
    has_notes = "notes" in cols

    if payee_idx > 0 and payee_idx < desc_idx:
        return LAYOUT_CURRENT
    if payee_idx > 0 and has_notes:
        return LAYOUT_PAYEE_NOTES
    if payee_idx > 0:
        return LAYOUT_PAYEE
    return LAYOUT_BASIC


def _is_header(values: list[str]) -> bool:
    return len(values) > 1 and values[0].lower() == "date"


def _row_to_template(values: list[str], layout: tuple[str, ...]) -> TransactionTemplate:
    """Map positional values onto a template. Raises ValueError on invalid rows."""
    if len(values) < 3:
        raise ValueError("expected at least 3 columns")
    row = dict(zip(layout, values))

    date_str = row.get("date", "")
    if not is_iso_date(date_str):
        raise ValueError(f"invalid date {date_str!r}")
    description = row.get("description", "").strip()
    if not description:
        raise ValueError("missing description")
    try:
        amount = float(row.get("amount", ""))
    except ValueError:
        raise ValueError(f"invalid amount {row.get('amount')!r}") from None
    if not math.isfinite(amount):
        raise ValueError(f"invalid amount {row.get('amount')!r}")
    amount = to_cents(amount) / 100
    if amount == 0:
        raise ValueError(f"invalid amount {row.get('amount')!r}")
    recurrence = normalize_recurrence(row.get("recurrence"))
    if recurrence not in RECURRENCES:
        raise ValueError(f"invalid recurrence {row.get('recurrence')!r}")

    return TransactionTemplate(
        id=new_id(),
        date=date_str,
        description=description,
        amount=amount,
        payee=row.get("payee", "").strip(),
        notes=row.get("notes", "").strip(),
        recurrence=recurrence,
    )


def parse_csv(text: str) -> ParsedCsv:
    """Parse CSV text into validated templates; bad rows are counted, not raised.

    Quoted fields may span lines. Blank lines are skipped and not counted.
    The first non-blank record is a header when its first column is 'date'.
    Raises ValueError when the text is not CSV at all.
    """
    reader = csv.reader(io.StringIO((text or "").lstrip("\ufeff")), skipinitialspace=True)
    result = ParsedCsv()
    layout = None
    try:
        for record in reader:
            values = _clean(record)
            if not any(values):
                continue
            if layout is None:
                layout = LAYOUT_BASIC
                if _is_header(values):
                    layout = detect_layout(values)
                    continue
            result.total_rows += 1
            try:
                result.valid_rows.append(_row_to_template(values, layout))
            except ValueError as exc:
                result.invalid_rows += 1
                result.errors.append(f"line {reader.line_num}: {exc}")
    except csv.Error as exc:
        logger.warning("CSV parse failed at line %d: %s", reader.line_num, exc)
        raise ValueError(IMPORT_FAILED_MESSAGE) from exc

    if result.invalid_rows:
        logger.info("CSV parse: %d of %d rows invalid", result.invalid_rows, result.total_rows)
    return result


# ── Dedup / merge ─────────────────────────────────────────────────────────────

def dedup_key(tx) -> str:
    description = " ".join((tx.description or "").split()).lower()
    return f"{tx.date}|{description}|{to_cents(tx.amount)}"


def sort_transactions(rows: list[TransactionTemplate]) -> list[TransactionTemplate]:
    return sorted(rows, key=sort_key)


def dedupe_transactions(rows: list[TransactionTemplate]) -> list[TransactionTemplate]:
    """Keep the first row per dedup key, sorted."""
    seen: set[str] = set()
    kept = []
    for tx in rows:
        key = dedup_key(tx)
        if key in seen:
            continue
        seen.add(key)
        kept.append(tx)
    return sort_transactions(kept)


def merge_transactions(
    existing: list[TransactionTemplate], incoming: list[TransactionTemplate]
) -> list[TransactionTemplate]:
    """Existing rows plus incoming rows whose key is new (also within the batch)."""
    seen = {dedup_key(tx) for tx in existing}
    merged = list(existing)
    for tx in incoming:
        key = dedup_key(tx)
        if key in seen:
            continue
        seen.add(key)
        merged.append(tx)
    return sort_transactions(merged)


def analyze_import(
    existing: list[TransactionTemplate], parsed: ParsedCsv, mode: str = "merge"
) -> ImportPreview:
    """Count what an import would do without applying it.

    merge: duplicates are rows matching an existing row or an earlier row of
    the batch. replace: only duplicates within the batch count.
    """
    if mode not in IMPORT_MODES:
        raise ValueError(f"Invalid import mode '{mode}'. Must be one of: {', '.join(IMPORT_MODES)}.")
    seen = {dedup_key(tx) for tx in existing} if mode == "merge" else set()
    new_rows = []
    duplicates = 0
    for tx in parsed.valid_rows:
        key = dedup_key(tx)
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        new_rows.append(tx)
    return ImportPreview(
        import_mode=mode,
        total_rows=parsed.total_rows,
        valid_rows=len(parsed.valid_rows),
        invalid_rows=parsed.invalid_rows,
        duplicate_rows=duplicates,
        new_rows=len(new_rows),
        rows=sort_transactions(new_rows),
    )


def summary_message(preview: ImportPreview) -> str:
    if preview.valid_rows == 0:
        return NO_VALID_ROWS_MESSAGE
    verb = "Replaced with" if preview.import_mode == "replace" else "Imported"
    return (
        f"{verb} {preview.new_rows} transaction(s). "
        f"Skipped {preview.duplicate_rows} duplicate row(s) and "
        f"{preview.invalid_rows} invalid row(s)."
    )


# ── Export ────────────────────────────────────────────────────────────────────

def _quote(value: str) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def to_csv(rows: list[TransactionTemplate]) -> str:
    """Serialize to the current layout; free-text columns are always quoted."""
    lines = [",".join(CSV_HEADER)]
    for tx in rows:
        lines.append(",".join([
            tx.date,
            _quote(tx.payee),
            _quote(tx.description),
            _quote(tx.notes),
            format_plain(tx.amount),
            tx.recurrence or ONE_TIME,
        ]))
    return "\n".join(lines) + "\n"


def filter_by_date_range(
    rows: list[TransactionTemplate],
    date_from: str | date | None = None,
    date_to: str | date | None = None,
) -> list[TransactionTemplate]:
    """Rows whose anchor date lies within [date_from, date_to]; either bound optional."""
    lower = parse_date(date_from) if date_from else None
    upper = parse_date(date_to) if date_to else None
    if date_from and lower is None:
        raise ValueError(f"Invalid from date: {date_from}")
    if date_to and upper is None:
        raise ValueError(f"Invalid to date: {date_to}")
    if lower and upper and lower > upper:
        raise ValueError("The start date must be on or before the end date.")
    kept = []
    for tx in rows:
        d = parse_date(tx.date)
        if d is None:
            continue
        if lower and d < lower:
            continue
        if upper and d > upper:
            continue
        kept.append(tx)
    return kept


def export_filename(date_from: str | None = None, date_to: str | None = None,
                    on: date | None = None) -> str:
    parts = [EXPORT_FILE_PREFIX]
    if date_from:
        parts.append(f"from-{date_from}")
    if date_to:
        parts.append(f"to-{date_to}")
    parts.append(f"export-{format_date(on or today())}")
    return "-".join(parts) + ".csv"
