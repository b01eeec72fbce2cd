"""In-memory ledger state with controlled mutations.

Every mutation validates first, stages the change on the Account objects
(both sides of a transfer included), then marks the state dirty so the
debounced persister saves the full state once the burst is over.
"""
import functools
import logging
import math
import threading
from datetime import date, timedelta

from ledgercal.models.account import Account
from ledgercal.models.transaction import TransactionTemplate, new_id, normalize_recurrence
from ledgercal.services import csv_service, recurrence
from ledgercal.services.aggregation import BalanceCalculator, MonthView
from ledgercal.services.entry_history import add_to_history, normalize_history
from ledgercal.services.persistence import DebouncedPersister
from ledgercal.services.transfer_linker import TransferLinker
from ledgercal.utils.constants import (
    CLEAR_SCOPES,
    DEFAULT_ACCOUNT_NAME,
    ONE_TIME,
    PERSIST_DELAY_SECONDS,
    RECURRENCES,
)
from ledgercal.utils.currency import to_cents
from ledgercal.utils.date_helpers import format_date, month_bounds, parse_date

logger = logging.getLogger(__name__)


def _mutation(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            result = method(self, *args, **kwargs)
            self._persister.mark_dirty()
        return result
    return wrapper


def parse_amount(value) -> float:
    """Validate a user-entered amount; raises ValueError with a display message.

    The result is rounded to whole cents before the zero check.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError("Amount is required.")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError("Enter a valid number.") from None
    if not math.isfinite(amount):
        raise ValueError("Enter a valid number.")
    amount = to_cents(amount) / 100
    if amount == 0:
        raise ValueError("Amount cannot be zero.")
    return amount


class LedgerStore:
    def __init__(self, gateway, persist_delay: float | None = PERSIST_DELAY_SECONDS,
                 timer_factory=None):
        """persist_delay=None saves only on flush(); callers own the timing."""
        self._gateway = gateway
        self._accounts: list[Account] = []
        self._active_id: str | None = None
        self._histories: dict[str, dict[str, list[str]]] = {}
        self._lock = threading.RLock()
        self._linker = TransferLinker(self.get_account)
        persister_kwargs = {"timer_factory": timer_factory} if timer_factory else {}
        self._persister = DebouncedPersister(self._save, persist_delay, **persister_kwargs)

    # ── Loading / saving ──────────────────────────────────────────────────────

    def load(self) -> "LedgerStore":
        """Read persisted state, repairing what a fresh start needs."""
        with self._lock:
            self._accounts = self._gateway.load_accounts()
            dropped = 0
            for account in self._accounts:
                before = len(account.transactions)
                account.transactions = [t for t in account.transactions if self._is_loadable(t)]
                dropped += before - len(account.transactions)
                account.sort()
            if dropped:
                logger.warning("Dropped %d invalid stored transaction(s)", dropped)

            changed = False
            if not self._accounts:
                self._accounts.append(Account(id=new_id(), name=DEFAULT_ACCOUNT_NAME))
                logger.info("Created default account %r", DEFAULT_ACCOUNT_NAME)
                changed = True
            active = self._gateway.load_active_account_id()
            if self.get_account(active) is None:
                active = self._accounts[0].id
                changed = True
            self._active_id = active
            if changed:
                self._persister.mark_dirty()
        return self

    @staticmethod
    def _is_loadable(t: TransactionTemplate) -> bool:
        if not t.date or not t.description:
            return False
        if not isinstance(t.amount, (int, float)) or not math.isfinite(t.amount) or t.amount == 0:
            return False
        t.recurrence = normalize_recurrence(t.recurrence)
        return True

    def _save(self):
        with self._lock:
            accounts = [Account(a.id, a.name, [t.copy() for t in a.transactions])
                        for a in self._accounts]
            active = self._active_id
        self._gateway.save_accounts(accounts, active)

    def flush(self) -> bool:
        """Persist synchronously now (shutdown, end of a request)."""
        return self._persister.flush_now()

    @property
    def dirty(self) -> bool:
        return self._persister.dirty

    # ── Accounts ──────────────────────────────────────────────────────────────

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts)

    @property
    def active_account_id(self) -> str | None:
        return self._active_id

    @property
    def active_account(self) -> Account | None:
        return self.get_account(self._active_id)

    def get_account(self, account_id: str | None) -> Account | None:
        if not account_id:
            return None
        for account in self._accounts:
            if account.id == account_id:
                return account
        return None

    def require_account(self, account_id: str | None = None) -> Account:
        account = self.get_account(account_id or self._active_id)
        if account is None:
            raise LookupError(f"Account {account_id} not found.")
        return account

    def require_template(self, account_id: str | None, template_id: str) -> TransactionTemplate:
        template = self.require_account(account_id).find(template_id)
        if template is None:
            raise LookupError(f"Transaction {template_id} not found.")
        return template

    @_mutation
    def switch_account(self, account_id: str) -> Account:
        account = self.require_account(account_id)
        self._active_id = account.id
        return account

    @_mutation
    def create_account(self, name: str | None = None) -> Account:
        name = (name or "").strip()
        if not name:
            n = len(self._accounts) + 1
            taken = {a.name.casefold() for a in self._accounts}
            while f"account {n}" in taken:
                n += 1
            name = f"Account {n}"
        self._check_unique_name(name)
        account = Account(id=new_id(), name=name)
        self._accounts.append(account)
        logger.info("Created account %r (%s)", name, account.id)
        return account

    @_mutation
    def rename_account(self, account_id: str, name: str) -> Account:
        account = self.require_account(account_id)
        name = (name or "").strip()
        if not name:
            raise ValueError("Account name cannot be empty.")
        self._check_unique_name(name, exclude_id=account.id)
        account.name = name
        return account

    @_mutation
    def delete_account(self, account_id: str) -> Account:
        account = self.require_account(account_id)
        if len(self._accounts) <= 1:
            raise ValueError("Cannot delete the last account.")
        self._linker.detach_account(account.id, self._accounts)
        self._accounts.remove(account)
        self._histories.pop(account.id, None)
        if self._active_id == account.id:
            self._active_id = self._accounts[0].id
        logger.info("Deleted account %r (%s)", account.name, account.id)
        return account

    def _check_unique_name(self, name: str, exclude_id: str | None = None):
        for a in self._accounts:
            if a.id != exclude_id and a.name.casefold() == name.casefold():
                raise ValueError(f"An account named '{name}' already exists.")

    # ── Templates ─────────────────────────────────────────────────────────────

    @staticmethod
    def _validate(date_str, description, amount, recurrence_kind, end_date) -> dict:
        if not date_str or not str(date_str).strip():
            raise ValueError("Date is required.")
        anchor = parse_date(str(date_str))
        if anchor is None:
            raise ValueError("Invalid date format. Use YYYY-MM-DD.")
        description = (description or "").strip()
        if not description:
            raise ValueError("Description is required.")
        value = parse_amount(amount)
        kind = normalize_recurrence(recurrence_kind)
        if kind not in RECURRENCES:
            raise ValueError(f"Invalid recurrence '{recurrence_kind}'.")
        end = None
        if end_date and kind != ONE_TIME:
            parsed_end = parse_date(str(end_date))
            if parsed_end is None:
                raise ValueError("Invalid end date format. Use YYYY-MM-DD.")
            if parsed_end < anchor:
                raise ValueError("End date cannot be before the start date.")
            end = format_date(parsed_end)
        return {
            "date": format_date(anchor),
            "description": description,
            "amount": value,
            "recurrence": kind,
            "recurrence_end_date": end,
        }

    @staticmethod
    def _check_transfer_target(transfer_to):
        if transfer_to is not None and not str(transfer_to).strip():
            raise ValueError("Please select an account to transfer to.")

    @_mutation
    def add_template(
        self,
        account_id: str | None = None,
        *,
        date: str,
        description: str,
        amount,
        payee: str = "",
        notes: str = "",
        recurrence: str = ONE_TIME,
        recurrence_end_date: str | None = None,
        transfer_to: str | None = None,
    ) -> TransactionTemplate:
        account = self.require_account(account_id)
        fields = self._validate(date, description, amount, recurrence, recurrence_end_date)
        self._check_transfer_target(transfer_to)
        if transfer_to == account.id:
            raise ValueError("Cannot transfer to the same account.")
        template = TransactionTemplate(
            id=new_id(),
            payee=(payee or "").strip(),
            notes=(notes or "").strip(),
            **fields,
        )
        account.transactions.append(template)
        account.sort()
        if transfer_to:
            self._linker.link_new(account, template, transfer_to)
        self._remember_entry(account.id, template.payee, template.description)
        return template

    @_mutation
    def update_template(
        self,
        account_id: str | None,
        template_id: str,
        *,
        date: str,
        description: str,
        amount,
        payee: str = "",
        notes: str = "",
        recurrence: str = ONE_TIME,
        recurrence_end_date: str | None = None,
        transfer_to: str | None = None,
    ) -> TransactionTemplate:
        account = self.require_account(account_id)
        template = self.require_template(account.id, template_id)
        fields = self._validate(date, description, amount, recurrence, recurrence_end_date)
        self._check_transfer_target(transfer_to)
        if transfer_to == account.id:
            raise ValueError("Cannot transfer to the same account.")
        for name, value in fields.items():
            setattr(template, name, value)
        template.payee = (payee or "").strip()
        template.notes = (notes or "").strip()
        account.sort()
        self._linker.apply_edit(account, template, transfer_to)
        self._remember_entry(account.id, template.payee, template.description)
        return template

    @_mutation
    def delete_template(self, account_id: str | None, template_id: str) -> TransactionTemplate:
        account = self.require_account(account_id)
        template = self.require_template(account.id, template_id)
        self._remove_with_mirror(account, template)
        return template

    def _remove_with_mirror(self, account: Account, template: TransactionTemplate):
        self._linker.remove_counterpart(template)
        account.transactions.remove(template)

    @_mutation
    def delete_occurrence(self, account_id: str | None, template_id: str,
                          occurrence_date: str) -> str:
        """Delete one occurrence and every later one.

        The anchor (or anything before it) deletes the whole template;
        a later date ends the series the day before. Returns 'deleted'
        or 'truncated'.
        """
        account = self.require_account(account_id)
        template = self.require_template(account.id, template_id)
        cut = parse_date(occurrence_date)
        if cut is None:
            raise ValueError("Invalid date format. Use YYYY-MM-DD.")
        anchor = parse_date(template.date)
        if not template.is_recurring or anchor is None or cut <= anchor:
            self._remove_with_mirror(account, template)
            return "deleted"
        new_end = cut - timedelta(days=1)
        current_end = parse_date(template.recurrence_end_date)
        if current_end is not None and current_end < new_end:
            new_end = current_end
        template.recurrence_end_date = format_date(new_end)
        self._linker.sync(template)
        return "truncated"

    @_mutation
    def skip_occurrence(self, account_id: str | None, template_id: str,
                        occurrence_date: str) -> TransactionTemplate:
        """Suppress a single occurrence, keeping the rest of the series."""
        account = self.require_account(account_id)
        template = self.require_template(account.id, template_id)
        d = parse_date(occurrence_date)
        if d is None:
            raise ValueError("Invalid date format. Use YYYY-MM-DD.")
        if not recurrence.is_occurrence(template, d):
            raise ValueError(f"{occurrence_date} is not an occurrence of this transaction.")
        key = format_date(d)
        if key not in template.excluded_dates:
            template.excluded_dates.append(key)
            template.excluded_dates.sort()
        self._linker.sync(template)
        return template

    @_mutation
    def clear_month(self, account_id: str | None, month: str, scope: str = "anchor") -> int:
        """Remove the month's transactions; returns how many templates changed.

        scope='anchor' deletes templates whose anchor date is in the month
        (recurring series included). scope='occurrence' deletes in-month
        one-time templates and skips the in-month occurrences of recurring ones.
        """
        if scope not in CLEAR_SCOPES:
            raise ValueError(f"Invalid scope '{scope}'. Must be one of: {', '.join(CLEAR_SCOPES)}.")
        account = self.require_account(account_id)
        first, last = month_bounds(month)
        changed = 0
        for template in list(account.transactions):
            anchor = parse_date(template.date)
            if anchor is None:
                continue
            if scope == "anchor" or not template.is_recurring:
                if first <= anchor <= last:
                    self._remove_with_mirror(account, template)
                    changed += 1
                continue
            dates = [format_date(d) for d, _ in recurrence.iter_occurrences(template, first, last)]
            if dates:
                template.excluded_dates = sorted(set(template.excluded_dates) | set(dates))
                self._linker.sync(template)
                changed += 1
        logger.info("Cleared %d transaction(s) from %s in account %s", changed, month, account.id)
        return changed

    # ── Views ─────────────────────────────────────────────────────────────────

    def calculator(self, account_id: str | None = None) -> BalanceCalculator:
        with self._lock:
            account = self.require_account(account_id)
            return BalanceCalculator([t.copy() for t in account.transactions])

    def instances(self, account_id: str | None, start: date, end: date):
        return self.calculator(account_id).instances(start, end)

    def month_view(self, account_id: str | None, month: str) -> MonthView:
        return self.calculator(account_id).month_grid(month)

    def day_items(self, account_id: str | None, day: str):
        return self.calculator(account_id).day_items(day)

    # ── Import / export ───────────────────────────────────────────────────────

    def preview_import(self, account_id: str | None, text: str,
                       mode: str = "merge") -> csv_service.ImportPreview:
        with self._lock:
            account = self.require_account(account_id)
            parsed = csv_service.parse_csv(text)
            return csv_service.analyze_import(account.transactions, parsed, mode)

    @_mutation
    def import_csv(self, account_id: str | None, text: str,
                   mode: str = "merge") -> tuple[csv_service.ImportPreview, str]:
        account = self.require_account(account_id)
        parsed = csv_service.parse_csv(text)
        preview = csv_service.analyze_import(account.transactions, parsed, mode)
        if preview.valid_rows == 0:
            raise ValueError(csv_service.NO_VALID_ROWS_MESSAGE)
        if mode == "replace":
            for template in account.transactions:
                if template.is_linked:
                    _, mirror = self._linker.counterpart(template)
                    if mirror is not None:
                        mirror.linked_transaction_id = None
                        mirror.linked_account_id = None
            account.transactions = csv_service.dedupe_transactions(parsed.valid_rows)
        else:
            account.transactions = csv_service.merge_transactions(
                account.transactions, parsed.valid_rows
            )
        message = csv_service.summary_message(preview)
        logger.info("CSV import into %s (%s): %s", account.id, mode, message)
        return preview, message

    def export_csv(self, account_id: str | None = None, date_from: str | None = None,
                   date_to: str | None = None) -> str:
        with self._lock:
            account = self.require_account(account_id)
            rows = csv_service.filter_by_date_range(account.transactions, date_from, date_to)
            return csv_service.to_csv(csv_service.sort_transactions(rows))

    # ── Entry histories ───────────────────────────────────────────────────────

    def entry_histories(self, account_id: str | None = None) -> dict[str, list[str]]:
        account = self.require_account(account_id)
        if account.id not in self._histories:
            loaded = self._gateway.load_entry_histories(account.id)
            self._histories[account.id] = {
                "payees": normalize_history(loaded.get("payees")),
                "descriptions": normalize_history(loaded.get("descriptions")),
            }
        return self._histories[account.id]

    def record_entry(self, account_id: str | None, payee: str = "", description: str = ""):
        with self._lock:
            account = self.require_account(account_id)
            self._remember_entry(account.id, payee, description)
        return self.entry_histories(account.id)

    def _remember_entry(self, account_id: str, payee: str, description: str):
        history = self.entry_histories(account_id)
        payees = add_to_history(history["payees"], payee)
        descriptions = add_to_history(history["descriptions"], description)
        if payees == history["payees"] and descriptions == history["descriptions"]:
            return
        history["payees"], history["descriptions"] = payees, descriptions
        try:
            self._gateway.save_entry_histories(account_id, payees, descriptions)
        except Exception:
            logger.exception("Saving entry histories for %s failed", account_id)
