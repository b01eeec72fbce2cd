"""Request bodies. Field names follow the camelCase wire format."""
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TemplateIn(_Body):
    date: Optional[str] = None
    description: Optional[str] = None
    amount: Union[float, str, None] = None
    payee: str = ""
    notes: str = ""
    recurrence: str = "one-time"
    recurrence_end_date: Optional[str] = Field(default=None, alias="recurrenceEndDate")
    transfer_to: Optional[str] = Field(default=None, alias="transferTo")

    def as_kwargs(self) -> dict:
        return {
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "payee": self.payee,
            "notes": self.notes,
            "recurrence": self.recurrence,
            "recurrence_end_date": self.recurrence_end_date,
            "transfer_to": self.transfer_to,
        }


class AccountIn(_Body):
    id: str
    name: str = ""
    transactions: list[dict[str, Any]] = Field(default_factory=list)


class TransactionsIn(_Body):
    account_id: str = Field(alias="accountId")
    transactions: list[dict[str, Any]] = Field(default_factory=list)


class ActiveAccountIn(_Body):
    active_account_id: str = Field(alias="activeAccountId")


class AccountNameIn(_Body):
    name: Optional[str] = None


class EntryHistoriesIn(_Body):
    payees: list[str] = Field(default_factory=list)
    descriptions: list[str] = Field(default_factory=list)


class EntryIn(_Body):
    payee: str = ""
    description: str = ""


class ImportIn(_Body):
    csv: str
    mode: str = "merge"
    dry_run: bool = Field(default=False, alias="dryRun")
