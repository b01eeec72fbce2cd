import uuid
from dataclasses import dataclass, field, replace
from typing import Optional

from ledgercal.utils.constants import ONE_TIME, ONE_TIME_ALIASES


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_recurrence(value) -> str:
    """Map empty/legacy spellings to 'one-time'; other values pass through lowercased."""
    if value is None:
        return ONE_TIME
    value = str(value).strip().lower()
    return ONE_TIME if value in ONE_TIME_ALIASES else value


@dataclass
class TransactionTemplate:
    id: str
    date: str                  # 'YYYY-MM-DD' anchor
    description: str
    amount: float              # signed; positive = inflow
    payee: str = ""
    notes: str = ""
    recurrence: str = ONE_TIME
    recurrence_end_date: Optional[str] = None   # inclusive, recurring only
    excluded_dates: list[str] = field(default_factory=list)
    linked_transaction_id: Optional[str] = None
    linked_account_id: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != ONE_TIME

    @property
    def is_linked(self) -> bool:
        return bool(self.linked_transaction_id and self.linked_account_id)

    def copy(self, **changes) -> "TransactionTemplate":
        changes.setdefault("excluded_dates", list(self.excluded_dates))
        return replace(self, **changes)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "date": self.date,
            "description": self.description,
            "payee": self.payee,
            "notes": self.notes,
            "amount": self.amount,
            "recurrence": self.recurrence,
        }
        if self.recurrence_end_date:
            data["recurrenceEndDate"] = self.recurrence_end_date
        if self.excluded_dates:
            data["excludedDates"] = sorted(self.excluded_dates)
        if self.linked_transaction_id:
            data["linkedTransactionId"] = self.linked_transaction_id
        if self.linked_account_id:
            data["linkedAccountId"] = self.linked_account_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionTemplate":
        """Build from the camelCase wire shape. Legacy 'vendor' maps to payee."""
        payee = data.get("payee")
        if payee is None:
            payee = data.get("vendor")
        return cls(
            id=str(data.get("id") or new_id()),
            date=str(data.get("date") or "").strip(),
            description=str(data.get("description") or "").strip(),
            amount=float(data.get("amount") or 0),
            payee=str(payee or "").strip(),
            notes=str(data.get("notes") or "").strip(),
            recurrence=normalize_recurrence(data.get("recurrence")),
            recurrence_end_date=data.get("recurrenceEndDate") or None,
            excluded_dates=list(data.get("excludedDates") or []),
            linked_transaction_id=data.get("linkedTransactionId") or None,
            linked_account_id=data.get("linkedAccountId") or None,
        )


@dataclass
class Instance:
    """One dated occurrence of a template. Never persisted."""
    id: str
    original_id: str
    date: str
    description: str
    amount: float
    payee: str = ""
    notes: str = ""
    recurrence: str = ONE_TIME
    recurrence_end_date: Optional[str] = None
    excluded_dates: list[str] = field(default_factory=list)
    is_recurring: bool = False
    linked_transaction_id: Optional[str] = None
    linked_account_id: Optional[str] = None

    @classmethod
    def of(cls, template: TransactionTemplate, date_str: str, instance_id: str,
           generated: bool) -> "Instance":
        return cls(
            id=instance_id,
            original_id=template.id,
            date=date_str,
            description=template.description,
            amount=template.amount,
            payee=template.payee,
            notes=template.notes,
            recurrence=template.recurrence,
            recurrence_end_date=template.recurrence_end_date,
            excluded_dates=list(template.excluded_dates),
            is_recurring=generated,
            linked_transaction_id=template.linked_transaction_id,
            linked_account_id=template.linked_account_id,
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "originalId": self.original_id,
            "date": self.date,
            "description": self.description,
            "payee": self.payee,
            "notes": self.notes,
            "amount": self.amount,
            "recurrence": self.recurrence,
            "isRecurring": self.is_recurring,
        }
        if self.recurrence_end_date:
            data["recurrenceEndDate"] = self.recurrence_end_date
        if self.excluded_dates:
            data["excludedDates"] = sorted(self.excluded_dates)
        if self.linked_transaction_id:
            data["linkedTransactionId"] = self.linked_transaction_id
            data["linkedAccountId"] = self.linked_account_id
        return data


def sort_key(tx) -> tuple:
    return (tx.date, tx.description, tx.amount)
