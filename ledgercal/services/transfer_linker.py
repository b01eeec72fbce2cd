import logging
from typing import Callable, Optional

from ledgercal.models.account import Account
from ledgercal.models.transaction import TransactionTemplate, new_id

logger = logging.getLogger(__name__)

# Fields copied from a transfer to its mirror on every edit
_MIRRORED_FIELDS = ("date", "description", "payee", "notes", "recurrence", "recurrence_end_date")


class TransferLinker:
    """Keeps the two sides of a transfer consistent.

    Both sides are staged in memory on their Account objects; the caller
    persists the whole state in a single flush afterwards.
    """

    def __init__(self, get_account: Callable[[str], Optional[Account]]):
        self._get_account = get_account

    def counterpart(self, template: TransactionTemplate) -> tuple[Account | None, TransactionTemplate | None]:
        if not template.is_linked:
            return None, None
        account = self._get_account(template.linked_account_id)
        if account is None:
            return None, None
        return account, account.find(template.linked_transaction_id)

    def link_new(self, source: Account, template: TransactionTemplate, target_account_id: str):
        """Create the mirror in the target account. Missing target: logged no-op."""
        if target_account_id == source.id:
            raise ValueError("Cannot transfer to the same account.")
        target = self._get_account(target_account_id)
        if target is None:
            logger.warning(
                "Transfer target account %s not found; %s left unlinked",
                target_account_id, template.id,
            )
            return None
        mirror = template.copy(
            id=new_id(),
            amount=-template.amount,
            linked_transaction_id=template.id,
            linked_account_id=source.id,
        )
        template.linked_transaction_id = mirror.id
        template.linked_account_id = target.id
        target.transactions.append(mirror)
        target.sort()
        logger.debug("Linked %s (%s) <-> %s (%s)", template.id, source.id, mirror.id, target.id)
        return mirror

    def sync(self, template: TransactionTemplate):
        """Propagate the template's fields onto its mirror (amount negated)."""
        account, mirror = self.counterpart(template)
        if mirror is None:
            if template.is_linked:
                logger.warning(
                    "Counterpart %s of %s is missing; nothing to update",
                    template.linked_transaction_id, template.id,
                )
            return None
        for name in _MIRRORED_FIELDS:
            setattr(mirror, name, getattr(template, name))
        mirror.excluded_dates = list(template.excluded_dates)
        mirror.amount = -template.amount
        account.sort()
        return mirror

    def unlink(self, template: TransactionTemplate):
        """Delete the mirror and clear the template's link fields."""
        self.remove_counterpart(template)
        template.linked_transaction_id = None
        template.linked_account_id = None

    def remove_counterpart(self, template: TransactionTemplate):
        account, mirror = self.counterpart(template)
        if mirror is not None:
            account.transactions.remove(mirror)
            logger.debug("Removed mirror %s from account %s", mirror.id, account.id)
        return mirror

    def apply_edit(self, source: Account, template: TransactionTemplate,
                   target_account_id: str | None):
        """Reconcile links after an edit.

        No target and was linked: unlink. Target and was not linked: link.
        Target differs from the current one: move the mirror. Same target:
        field edits propagate to the existing mirror.
        """
        old_target = template.linked_account_id if template.is_linked else None
        if not target_account_id:
            if old_target:
                self.unlink(template)
            return None
        if old_target is None:
            return self.link_new(source, template, target_account_id)
        if target_account_id != old_target:
            if target_account_id == source.id:
                raise ValueError("Cannot transfer to the same account.")
            self.unlink(template)
            return self.link_new(source, template, target_account_id)
        return self.sync(template)

    def detach_account(self, account_id: str, accounts: list[Account]):
        """Clear links in other accounts that point into account_id."""
        for account in accounts:
            if account.id == account_id:
                continue
            for tx in account.transactions:
                if tx.linked_account_id == account_id:
                    tx.linked_transaction_id = None
                    tx.linked_account_id = None
