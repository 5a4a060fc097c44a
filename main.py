from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import NotFoundError, RepositoryError, ValidationError
from ledger import BalanceEngine, IncomeProjector, PeriodAggregator
from periods import Period, resolve_period
from recurrence import IncomeScheduler, local_today
from repository import SqlLedgerRepository
from scheduler import SchedulerManager
from schemas import (
    BalanceIn,
    BalanceOut,
    BalancePointOut,
    CategoryIn,
    CategoryOut,
    DailyCheckOut,
    ExpenseIn,
    ExpenseOut,
    IncomeProjectionOut,
    IncomeSourceIn,
    IncomeSourceOut,
    IncomeTransactionIn,
    IncomeTransactionOut,
    PeriodTotalsOut,
)
from services import (
    CategoryService,
    ExpenseService,
    IncomeSourceService,
    IncomeTransactionService,
)

app = FastAPI(title="Income Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def period_from_request(request: Request) -> Period:
    try:
        return resolve_period(
            request.query_params.get("period"),
            request.query_params.get("start"),
            request.query_params.get("end"),
            today=local_today(),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_all()


@app.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).create(data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/income-sources", response_model=list[IncomeSourceOut])
def list_income_sources(db: Session = Depends(get_db)):
    return IncomeSourceService(db).list()


@app.post("/income-sources", response_model=IncomeSourceOut, status_code=201)
def create_income_source(data: IncomeSourceIn, db: Session = Depends(get_db)):
    try:
        return IncomeSourceService(db).create(data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/income-sources/{source_id}", response_model=IncomeSourceOut)
def get_income_source(source_id: int, db: Session = Depends(get_db)):
    try:
        return IncomeSourceService(db).get(source_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/income-sources/{source_id}", response_model=IncomeSourceOut)
def update_income_source(
    source_id: int, data: IncomeSourceIn, db: Session = Depends(get_db)
):
    try:
        return IncomeSourceService(db).update(source_id, data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/income-sources/{source_id}/active", response_model=IncomeSourceOut)
def toggle_income_source(
    source_id: int, is_active: bool, db: Session = Depends(get_db)
):
    try:
        return IncomeSourceService(db).set_active(source_id, is_active)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/income-sources/{source_id}/auto-add", response_model=IncomeSourceOut)
def toggle_auto_add(source_id: int, auto_add: bool, db: Session = Depends(get_db)):
    try:
        return IncomeSourceService(db).set_auto_add(source_id, auto_add)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/income-sources/{source_id}", status_code=204)
def delete_income_source(source_id: int, db: Session = Depends(get_db)):
    try:
        IncomeSourceService(db).delete(source_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/income-transactions", response_model=list[IncomeTransactionOut])
def list_income_transactions(
    start: Optional[date] = None,
    end: Optional[date] = None,
    source_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return IncomeTransactionService(db).list(start, end, source_id)


@app.post(
    "/income-transactions", response_model=IncomeTransactionOut, status_code=201
)
def create_income_transaction(
    data: IncomeTransactionIn, db: Session = Depends(get_db)
):
    try:
        return IncomeTransactionService(db).create(data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/income-transactions/{transaction_id}", status_code=204)
def delete_income_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        IncomeTransactionService(db).delete(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/expenses", response_model=list[ExpenseOut])
def list_expenses(
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    return ExpenseService(db).list(start, end)


@app.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(data: ExpenseIn, db: Session = Depends(get_db)):
    try:
        return ExpenseService(db).create(data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        ExpenseService(db).delete(expense_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/scheduler/run", response_model=DailyCheckOut)
def run_scheduler(today: Optional[date] = None, db: Session = Depends(get_db)):
    try:
        result = IncomeScheduler(SqlLedgerRepository(db)).run_daily_check(today)
    except RepositoryError as exc:
        db.rollback()
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    db.commit()
    return DailyCheckOut.model_validate(result)


@app.get("/stats", response_model=PeriodTotalsOut)
def period_stats(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    try:
        totals = PeriodAggregator(SqlLedgerRepository(db)).totals_for_period(
            period.start, period.end
        )
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return PeriodTotalsOut.model_validate(totals)


@app.get("/income/projection", response_model=IncomeProjectionOut)
def income_projection(start: date, end: date, db: Session = Depends(get_db)):
    try:
        projection = IncomeProjector(SqlLedgerRepository(db)).project(start, end)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return IncomeProjectionOut.model_validate(projection)


def _balance_out(repository: SqlLedgerRepository) -> BalanceOut:
    return BalanceOut(
        balance_cents=BalanceEngine(repository).current_balance(),
        starting_balance_cents=repository.get_starting_balance(),
    )


@app.get("/balance", response_model=BalanceOut)
def get_balance(db: Session = Depends(get_db)):
    try:
        return _balance_out(SqlLedgerRepository(db))
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.put("/balance/starting", response_model=BalanceOut)
def set_starting_balance(data: BalanceIn, db: Session = Depends(get_db)):
    repository = SqlLedgerRepository(db)
    try:
        BalanceEngine(repository).set_starting_balance(data.balance_cents)
        db.commit()
        return _balance_out(repository)
    except RepositoryError as exc:
        db.rollback()
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/balance/correct", response_model=BalanceOut)
def correct_balance(data: BalanceIn, db: Session = Depends(get_db)):
    repository = SqlLedgerRepository(db)
    try:
        BalanceEngine(repository).correct_balance_to(data.balance_cents)
        db.commit()
        return _balance_out(repository)
    except RepositoryError as exc:
        db.rollback()
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/balance/history", response_model=list[BalancePointOut])
def balance_history(days: int = 30, db: Session = Depends(get_db)):
    try:
        history = BalanceEngine(SqlLedgerRepository(db)).balance_history(
            local_today(), days
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [BalancePointOut.model_validate(point) for point in history]


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
