from dataclasses import dataclass, field

from ledgercal.models.transaction import TransactionTemplate, sort_key


@dataclass
class Account:
    id: str
    name: str
    transactions: list[TransactionTemplate] = field(default_factory=list)

    def find(self, template_id: str) -> TransactionTemplate | None:
        for tx in self.transactions:
            if tx.id == template_id:
                return tx
        return None

    def sort(self):
        self.transactions.sort(key=sort_key)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "transactions": [t.to_dict() for t in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            transactions=[
                TransactionTemplate.from_dict(t) for t in data.get("transactions") or []
            ],
        )
