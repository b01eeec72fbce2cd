import io
from collections import defaultdict
from datetime import date

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from ledgercal.models.transaction import Instance
from ledgercal.utils.constants import (
    CATEGORY_PALETTE,
    CHART_COLORS,
    DEFAULT_REPORT_DAYS,
    UNCATEGORIZED,
)
from ledgercal.utils.currency import round_money
from ledgercal.utils.date_helpers import (
    add_months,
    format_date,
    format_month,
    iter_days,
    last_n_days,
    month_bounds,
    parse_month,
)


def report_window(days: int | None = None, month: str | None = None,
                  end: date | None = None) -> tuple[date, date]:
    """A calendar month when given, otherwise the last `days` days."""
    if month:
        return month_bounds(month)
    if days is not None and days < 1:
        raise ValueError("Days must be at least 1.")
    return last_n_days(days or DEFAULT_REPORT_DAYS, end)


def category_breakdown(instances: list[Instance]) -> dict:
    """Group by description: expenses (amount < 0) and income (amount > 0), absolute values."""
    expenses: dict[str, float] = defaultdict(float)
    income: dict[str, float] = defaultdict(float)
    for inst in instances:
        category = (inst.description or "").strip() or UNCATEGORIZED
        if inst.amount < 0:
            expenses[category] += -inst.amount
        elif inst.amount > 0:
            income[category] += inst.amount

    def rows(totals: dict[str, float]) -> tuple[list[dict], float]:
        grand = round_money(sum(totals.values()))
        ordered = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        return [
            {
                "category": name,
                "total": round_money(total),
                "percent": round(total / grand * 100, 1) if grand else 0.0,
            }
            for name, total in ordered
        ], grand

    expense_rows, expense_total = rows(expenses)
    income_rows, income_total = rows(income)
    return {
        "expenses": expense_rows,
        "income": income_rows,
        "totalExpenses": expense_total,
        "totalIncome": income_total,
        "net": round_money(income_total - expense_total),
    }


def time_series(instances: list[Instance], start: date, end: date) -> list[dict]:
    """One point per day in [start, end] with income and expenses (absolute)."""
    income: dict[str, float] = defaultdict(float)
    expenses: dict[str, float] = defaultdict(float)
    for inst in instances:
        if inst.amount > 0:
            income[inst.date] += inst.amount
        else:
            expenses[inst.date] += -inst.amount
    return [
        {
            "date": key,
            "income": round_money(income.get(key, 0.0)),
            "expenses": round_money(expenses.get(key, 0.0)),
        }
        for key in (format_date(d) for d in iter_days(start, end))
    ]


class ReportService:
    def __init__(self, store):
        self._store = store

    def get_category_breakdown(self, account_id: str | None = None, days: int | None = None,
                               month: str | None = None) -> dict:
        start, end = report_window(days, month)
        result = category_breakdown(self._store.instances(account_id, start, end))
        result.update({"from": format_date(start), "to": format_date(end)})
        return result

    def get_time_series(self, account_id: str | None = None, days: int | None = None,
                        month: str | None = None) -> list[dict]:
        start, end = report_window(days, month)
        return time_series(self._store.instances(account_id, start, end), start, end)

    def get_monthly_totals(self, account_id: str | None = None, months: int = 6,
                           through: str | None = None) -> list[dict]:
        """Return [{month, income, expense, net}] for the last `months` months."""
        last = parse_month(through) if through else None
        if through and last is None:
            raise ValueError(f"Invalid month: {through}")
        last = last or date.today().replace(day=1)
        first = add_months(last, -(max(months, 1) - 1))
        _, end = month_bounds(format_month(last))
        totals: dict[str, dict] = {}
        for i in range(max(months, 1)):
            key = format_month(add_months(first, i))
            totals[key] = {"month": key, "income": 0.0, "expense": 0.0}
        for inst in self._store.instances(account_id, first, end):
            row = totals[inst.date[:7]]
            if inst.amount > 0:
                row["income"] += inst.amount
            else:
                row["expense"] += -inst.amount
        for row in totals.values():
            row["income"] = round_money(row["income"])
            row["expense"] = round_money(row["expense"])
            row["net"] = round_money(row["income"] - row["expense"])
        return list(totals.values())

    def get_month_summary(self, account_id: str | None, month: str) -> dict:
        view = self._store.month_view(account_id, month)
        return {
            "month": month,
            "startingBalance": view.starting_balance,
            "monthChange": view.month_change,
            "endingBalance": view.ending_balance,
        }

    # ── Charts ────────────────────────────────────────────────────────────────

    def render_time_series_png(self, account_id: str | None = None, days: int | None = None,
                               month: str | None = None) -> bytes:
        series = self.get_time_series(account_id, days, month)
        fig = Figure(figsize=(8, 3), dpi=80, tight_layout=True)
        ax = fig.add_subplot(111)
        if not series:
            ax.text(0.5, 0.5, "No data", ha="center", va="center",
                    transform=ax.transAxes, color="gray")
        else:
            x = list(range(len(series)))
            ax.plot(x, [p["income"] for p in series], color=CHART_COLORS["income"], label="Income")
            ax.plot(x, [p["expenses"] for p in series], color=CHART_COLORS["expense"], label="Expenses")
            step = max(len(series) // 8, 1)
            ax.set_xticks(x[::step])
            ax.set_xticklabels([p["date"][5:] for p in series][::step], fontsize=8)
            ax.legend(loc="upper left", fontsize=8)
            ax.grid(axis="y", alpha=0.3)
        return _to_png(fig)

    def render_categories_png(self, account_id: str | None = None, days: int | None = None,
                              month: str | None = None, kind: str = "expenses") -> bytes:
        if kind not in ("expenses", "income"):
            raise ValueError("Kind must be 'expenses' or 'income'.")
        rows = self.get_category_breakdown(account_id, days, month)[kind]
        fig = Figure(figsize=(5, 5), dpi=80, tight_layout=True)
        ax = fig.add_subplot(111)
        if not rows:
            ax.text(0.5, 0.5, "No data", ha="center", va="center",
                    transform=ax.transAxes, color="gray")
            ax.set_axis_off()
        else:
            colors = [CATEGORY_PALETTE[i % len(CATEGORY_PALETTE)] for i in range(len(rows))]
            ax.pie(
                [r["total"] for r in rows],
                labels=[r["category"] for r in rows],
                colors=colors,
                wedgeprops={"width": 0.4},
                textprops={"fontsize": 8},
            )
            ax.set_aspect("equal")
        return _to_png(fig)


def _to_png(fig: Figure) -> bytes:
    buf = io.BytesIO()
    FigureCanvasAgg(fig).print_png(buf)
    return buf.getvalue()
