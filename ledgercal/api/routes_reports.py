"""
Routes for category breakdowns, time series, monthly totals and charts.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ledgercal.api.deps import get_reports
from ledgercal.services.report_service import ReportService

router = APIRouter(prefix="/api/accounts/{account_id}")


@router.get("/categories")
def categories(
    account_id: str,
    days: int | None = Query(None),
    month: str | None = Query(None),
    reports: ReportService = Depends(get_reports),
):
    return reports.get_category_breakdown(account_id, days, month)


@router.get("/timeseries")
def timeseries(
    account_id: str,
    days: int | None = Query(None),
    month: str | None = Query(None),
    reports: ReportService = Depends(get_reports),
):
    return reports.get_time_series(account_id, days, month)


@router.get("/monthly")
def monthly_totals(
    account_id: str,
    months: int = Query(6, ge=1, le=120),
    through: str | None = Query(None),
    reports: ReportService = Depends(get_reports),
):
    return reports.get_monthly_totals(account_id, months, through)


@router.get("/summary")
def month_summary(account_id: str, month: str = Query(...),
                  reports: ReportService = Depends(get_reports)):
    return reports.get_month_summary(account_id, month)


@router.get("/charts/timeseries.png")
def timeseries_chart(
    account_id: str,
    days: int | None = Query(None),
    month: str | None = Query(None),
    reports: ReportService = Depends(get_reports),
):
    png = reports.render_time_series_png(account_id, days, month)
    return Response(content=png, media_type="image/png")


@router.get("/charts/categories.png")
def categories_chart(
    account_id: str,
    days: int | None = Query(None),
    month: str | None = Query(None),
    kind: str = Query("expenses"),
    reports: ReportService = Depends(get_reports),
):
    png = reports.render_categories_png(account_id, days, month, kind)
    return Response(content=png, media_type="image/png")
