import logging
from datetime import date, datetime
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from errors import (
    CapacityExceededError,
    ConflictError,
    JournalError,
    NotFoundError,
    ValidationError,
)
from models import DepositRule, InvestmentCategory, InvestmentSubcategory
from periods import Period, resolve_period
from schemas import (
    DepositRuleIn,
    DepositRulePatch,
    InvestmentCategoryIn,
    InvestmentSubcategoryIn,
    JournalEntryIn,
    JournalEntryPatch,
    TradedDaysAdjust,
)
from sequencing import GroupKey
from services import (
    DepositRuleService,
    InvestmentCategoryService,
    InvestmentSubcategoryService,
    JournalCSVService,
    JournalFilters,
    JournalService,
    cents_to_amount,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Tradebook")

ERROR_STATUS = {
    ValidationError: 400,
    CapacityExceededError: 409,
    NotFoundError: 404,
    ConflictError: 409,
}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def http_error(exc: JournalError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS.get(type(exc), 400), detail=str(exc))


@app.exception_handler(SQLAlchemyError)
async def store_failure_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(
        f"store_failure: method={request.method} path={request.url.path}",
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def period_from_request(request: Request) -> Optional[Period]:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def category_out(category: InvestmentCategory) -> dict:
    return {
        "category_id": category.id,
        "category_name": category.name,
        "created_at": category.created_at.isoformat(),
    }


def subcategory_out(sub: InvestmentSubcategory) -> dict:
    return {
        "subcategory_id": sub.id,
        "subcategory_name": sub.name,
        "category_id": sub.category_id,
        "category_name": sub.category.name if sub.category else None,
    }


def deposit_out(rule: DepositRule) -> dict:
    return {
        "deposit_id": rule.id,
        "category_id": rule.category_id,
        "category_name": rule.category.name if rule.category else None,
        "subcategory_id": rule.subcategory_id,
        "subcategory_name": rule.subcategory.name if rule.subcategory else None,
        "deposit_amount": cents_to_amount(rule.deposit_cents),
        "risk": cents_to_amount(rule.risk_cents),
        "reward": cents_to_amount(rule.reward_cents),
        "trading_days": rule.trading_days,
        "traded_days": rule.traded_days,
        "ratio": rule.ratio,
    }


# investment categories


@app.get("/api/investment-categories")
def list_categories(db: Session = Depends(get_db)):
    return [category_out(c) for c in InvestmentCategoryService(db).list_all()]


@app.post("/api/investment-categories", status_code=201)
def create_category(data: InvestmentCategoryIn, db: Session = Depends(get_db)):
    try:
        category = InvestmentCategoryService(db).create(data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return category_out(category)


@app.get("/api/investment-categories/{category_id}")
def get_category(category_id: int, db: Session = Depends(get_db)):
    try:
        return category_out(InvestmentCategoryService(db).get(category_id))
    except JournalError as exc:
        raise http_error(exc) from exc


@app.put("/api/investment-categories/{category_id}")
def rename_category(
    category_id: int, data: InvestmentCategoryIn, db: Session = Depends(get_db)
):
    try:
        category = InvestmentCategoryService(db).rename(category_id, data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return category_out(category)


@app.delete("/api/investment-categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        InvestmentCategoryService(db).delete(category_id)
    except JournalError as exc:
        raise http_error(exc) from exc
    return {"message": "Category deleted successfully"}


# investment subcategories


@app.get("/api/investment-subcategories")
def list_subcategories(
    category_id: Optional[int] = None, db: Session = Depends(get_db)
):
    subs = InvestmentSubcategoryService(db).list_all(category_id)
    return [subcategory_out(s) for s in subs]


@app.post("/api/investment-subcategories", status_code=201)
def create_subcategory(data: InvestmentSubcategoryIn, db: Session = Depends(get_db)):
    service = InvestmentSubcategoryService(db)
    try:
        sub = service.create(data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return subcategory_out(service.get(sub.id))


@app.get("/api/investment-subcategories/{subcategory_id}")
def get_subcategory(subcategory_id: int, db: Session = Depends(get_db)):
    try:
        return subcategory_out(InvestmentSubcategoryService(db).get(subcategory_id))
    except JournalError as exc:
        raise http_error(exc) from exc


@app.put("/api/investment-subcategories/{subcategory_id}")
def update_subcategory(
    subcategory_id: int, data: InvestmentSubcategoryIn, db: Session = Depends(get_db)
):
    try:
        sub = InvestmentSubcategoryService(db).update(subcategory_id, data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return subcategory_out(sub)


@app.delete("/api/investment-subcategories/{subcategory_id}")
def delete_subcategory(subcategory_id: int, db: Session = Depends(get_db)):
    try:
        InvestmentSubcategoryService(db).delete(subcategory_id)
    except JournalError as exc:
        raise http_error(exc) from exc
    return {"message": "Subcategory deleted successfully"}


# deposit rules


@app.get("/api/deposits")
def list_deposits(db: Session = Depends(get_db)):
    return [deposit_out(r) for r in DepositRuleService(db).list_all()]


@app.post("/api/deposits")
def upsert_deposit(data: DepositRuleIn, db: Session = Depends(get_db)):
    try:
        rule = DepositRuleService(db).upsert(data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return deposit_out(rule)


@app.delete("/api/deposits/id/{deposit_id}")
def delete_deposit_by_id(deposit_id: int, db: Session = Depends(get_db)):
    try:
        DepositRuleService(db).delete(deposit_id)
    except JournalError as exc:
        raise http_error(exc) from exc
    return {"message": "Deposit deleted successfully"}


@app.get("/api/deposits/{category_id}/{subcategory_id}")
def get_deposit(category_id: int, subcategory_id: int, db: Session = Depends(get_db)):
    try:
        rule = DepositRuleService(db).get_for_pair(category_id, subcategory_id)
    except JournalError as exc:
        raise http_error(exc) from exc
    return deposit_out(rule)


@app.get("/api/deposits/{category_id}/{subcategory_id}/capital")
def deposit_capital(
    category_id: int,
    subcategory_id: int,
    trade_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    return DepositRuleService(db).capital_for_day(
        category_id, subcategory_id, trade_date
    )


@app.patch("/api/deposits/{deposit_id}")
def patch_deposit(
    deposit_id: int, data: DepositRulePatch, db: Session = Depends(get_db)
):
    try:
        rule = DepositRuleService(db).patch(deposit_id, data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return deposit_out(rule)


@app.patch("/api/deposits/{deposit_id}/traded-days")
def adjust_traded_days(
    deposit_id: int, data: TradedDaysAdjust, db: Session = Depends(get_db)
):
    try:
        rule = DepositRuleService(db).adjust_traded_days(deposit_id, data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return {
        "deposit_id": rule.id,
        "traded_days": rule.traded_days,
        "trading_days": rule.trading_days,
    }


@app.delete("/api/deposits/{category_id}/{subcategory_id}")
def delete_deposit_for_pair(
    category_id: int, subcategory_id: int, db: Session = Depends(get_db)
):
    try:
        DepositRuleService(db).delete_for_pair(category_id, subcategory_id)
    except JournalError as exc:
        raise http_error(exc) from exc
    return {"message": "Deposit deleted successfully"}


# trading journal


def journal_filters(
    request: Request,
    trade_date: Optional[date],
    category_id: Optional[int],
    subcategory_id: Optional[int],
) -> JournalFilters:
    return JournalFilters(
        trade_date=trade_date,
        category_id=category_id,
        subcategory_id=subcategory_id,
        period=period_from_request(request),
    )


@app.post("/api/trading-journal", status_code=201)
def create_journal_entry(data: JournalEntryIn, db: Session = Depends(get_db)):
    service = JournalService(db)
    try:
        entry = service.create(data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return service.describe([entry])[0]


@app.get("/api/trading-journal")
def list_journal_entries(
    request: Request,
    trade_date: Optional[date] = Query(None, alias="date"),
    category_id: Optional[int] = None,
    subcategory_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    limit = min(max(limit, 1), 200)
    offset = max(offset, 0)
    filters = journal_filters(request, trade_date, category_id, subcategory_id)
    service = JournalService(db)
    return service.describe(service.list(filters, limit=limit, offset=offset))


@app.get("/api/trading-journal/summary/day")
def journal_day_summary(
    category_id: int,
    subcategory_id: int,
    trade_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    return JournalService(db).day_summary(
        GroupKey(trade_date, category_id, subcategory_id)
    )


@app.post("/api/trading-journal/resequence")
def resequence_group(
    category_id: int,
    subcategory_id: int,
    trade_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    key = GroupKey(trade_date, category_id, subcategory_id)
    try:
        changed = JournalService(db).resequence(key)
    except JournalError as exc:
        raise http_error(exc) from exc
    return {"group": str(key), "renumbered": changed}


@app.get("/api/trading-journal/export.csv")
def export_journal_csv(
    request: Request,
    trade_date: Optional[date] = Query(None, alias="date"),
    category_id: Optional[int] = None,
    subcategory_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    filters = journal_filters(request, trade_date, category_id, subcategory_id)
    entries = JournalService(db).list(filters, limit=10000)
    csv_text = JournalCSVService(db).export(entries)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"trading_journal_{timestamp}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/trading-journal/import/preview")
async def import_journal_preview(
    file: UploadFile = File(...), db: Session = Depends(get_db)
):
    content = (await file.read()).decode("utf-8")
    prepared, errors = JournalCSVService(db).preview(content)
    return {
        "rows": [
            {"row": row_number, **data.model_dump(mode="json")}
            for row_number, data in prepared
        ],
        "errors": errors,
    }


@app.post("/api/trading-journal/import")
async def import_journal(file: UploadFile = File(...), db: Session = Depends(get_db)):
    content = (await file.read()).decode("utf-8")
    created, errors = JournalCSVService(db).commit(content)
    return {"created": created, "errors": errors}


@app.get("/api/trading-journal/{journal_id}")
def get_journal_entry(journal_id: int, db: Session = Depends(get_db)):
    service = JournalService(db)
    try:
        entry = service.get(journal_id)
    except JournalError as exc:
        raise http_error(exc) from exc
    return service.describe([entry])[0]


@app.patch("/api/trading-journal/{journal_id}")
def update_journal_entry(
    journal_id: int, data: JournalEntryPatch, db: Session = Depends(get_db)
):
    service = JournalService(db)
    try:
        entry = service.update(journal_id, data)
    except JournalError as exc:
        raise http_error(exc) from exc
    return service.describe([entry])[0]


@app.delete("/api/trading-journal/{journal_id}")
def delete_journal_entry(journal_id: int, db: Session = Depends(get_db)):
    try:
        JournalService(db).delete(journal_id)
    except JournalError as exc:
        raise http_error(exc) from exc
    return {"message": "Deleted successfully"}
