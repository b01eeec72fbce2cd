"""
Routes that mutate or view one account's transactions: templates,
single occurrences, month clearing, the calendar grid and CSV import/export.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ledgercal.api.deps import commit, get_store
from ledgercal.api.schemas import ImportIn, TemplateIn
from ledgercal.services.csv_service import export_filename
from ledgercal.services.transaction_store import LedgerStore

router = APIRouter(prefix="/api/accounts/{account_id}")


@router.post("/templates", status_code=201)
def add_template(account_id: str, body: TemplateIn, store: LedgerStore = Depends(get_store)):
    template = store.add_template(account_id, **body.as_kwargs())
    commit(store)
    return template.to_dict()


@router.put("/templates/{template_id}")
def update_template(
    account_id: str, template_id: str, body: TemplateIn,
    store: LedgerStore = Depends(get_store),
):
    template = store.update_template(account_id, template_id, **body.as_kwargs())
    commit(store)
    return template.to_dict()


@router.delete("/templates/{template_id}")
def delete_template(account_id: str, template_id: str, store: LedgerStore = Depends(get_store)):
    store.delete_template(account_id, template_id)
    commit(store)
    return {"success": True}


@router.delete("/templates/{template_id}/occurrences/{occurrence_date}")
def delete_occurrence(
    account_id: str, template_id: str, occurrence_date: str,
    store: LedgerStore = Depends(get_store),
):
    result = store.delete_occurrence(account_id, template_id, occurrence_date)
    commit(store)
    return {"success": True, "result": result}


@router.post("/templates/{template_id}/skip/{occurrence_date}")
def skip_occurrence(
    account_id: str, template_id: str, occurrence_date: str,
    store: LedgerStore = Depends(get_store),
):
    template = store.skip_occurrence(account_id, template_id, occurrence_date)
    commit(store)
    return template.to_dict()


@router.delete("/months/{month}")
def clear_month(
    account_id: str, month: str,
    scope: str = Query("anchor"),
    store: LedgerStore = Depends(get_store),
):
    cleared = store.clear_month(account_id, month, scope)
    commit(store)
    return {"success": True, "cleared": cleared}


@router.get("/calendar")
def calendar_month(account_id: str, month: str = Query(...), store: LedgerStore = Depends(get_store)):
    return store.month_view(account_id, month).to_dict()


@router.get("/day/{day}")
def day_items(account_id: str, day: str, store: LedgerStore = Depends(get_store)):
    return [i.to_dict() for i in store.day_items(account_id, day)]


@router.post("/import")
def import_csv(account_id: str, body: ImportIn, store: LedgerStore = Depends(get_store)):
    if body.dry_run:
        return store.preview_import(account_id, body.csv, body.mode).to_dict()
    preview, message = store.import_csv(account_id, body.csv, body.mode)
    commit(store)
    return {**preview.to_dict(), "message": message}


@router.get("/export.csv")
def export_csv(
    account_id: str,
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    store: LedgerStore = Depends(get_store),
):
    text = store.export_csv(account_id, date_from, date_to)
    filename = export_filename(date_from, date_to)
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
