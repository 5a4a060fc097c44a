from datetime import date

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from database import Base, build_engine
from errors import DuplicateEntry, RepositoryError
from models import Expense, IncomeFrequency, IncomeSource, IncomeTransaction
from repository import SqlLedgerRepository, _is_unique_violation


def make_session(**engine_options):
    engine = build_engine("sqlite:///:memory:", **engine_options)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def add_source(session, **fields) -> IncomeSource:
    values = dict(
        user_id=1,
        name="Salary",
        amount_cents=1000,
        frequency=IncomeFrequency.weekly,
        day_of_week=1,
        start_date=date(2024, 1, 1),
    )
    values.update(fields)
    source = IncomeSource(**values)
    session.add(source)
    session.commit()
    return source


def posting(source: IncomeSource, day: date, auto_added: bool = True):
    return IncomeTransaction(
        income_source_id=source.id,
        amount_cents=source.amount_cents,
        date=day,
        description=source.name,
        auto_added=auto_added,
    )


def test_second_auto_posting_for_same_day_is_rejected():
    session = make_session()
    source = add_source(session)
    repository = SqlLedgerRepository(session)

    repository.insert_income_transaction(posting(source, date(2024, 1, 1)))
    with pytest.raises(DuplicateEntry):
        repository.insert_income_transaction(posting(source, date(2024, 1, 1)))

    # The session stays usable after the rejected insert.
    repository.insert_income_transaction(posting(source, date(2024, 1, 8)))
    session.commit()
    assert repository.count_ledger_entries() == 2


def test_manual_entries_are_not_subject_to_the_posting_index():
    session = make_session()
    source = add_source(session)
    repository = SqlLedgerRepository(session)

    for _ in range(3):
        repository.insert_income_transaction(
            posting(source, date(2024, 1, 1), auto_added=False)
        )
    repository.insert_income_transaction(posting(source, date(2024, 1, 1)))
    session.commit()

    found = repository.find_income_transaction(
        source.id, date(2024, 1, 1), auto_added=True
    )
    assert found is not None and found.auto_added is True
    assert repository.count_ledger_entries() == 4


def test_queries_filter_by_window_and_source():
    session = make_session()
    salary = add_source(session)
    bonus = add_source(session, name="Bonus", amount_cents=300)
    repository = SqlLedgerRepository(session)
    repository.insert_income_transaction(posting(salary, date(2024, 1, 1)))
    repository.insert_income_transaction(posting(salary, date(2024, 1, 8)))
    repository.insert_income_transaction(posting(bonus, date(2024, 1, 8)))
    session.add(Expense(user_id=1, amount_cents=40, date=date(2024, 1, 9)))
    session.add(Expense(user_id=1, amount_cents=60, date=date(2024, 2, 1)))
    session.commit()

    window = repository.query_income_transactions(date(2024, 1, 2), date(2024, 1, 31))
    assert [t.amount_cents for t in window] == [1000, 300]
    only_salary = repository.query_income_transactions(
        date(2024, 1, 1), date(2024, 1, 31), source_id=salary.id
    )
    assert [t.date for t in only_salary] == [date(2024, 1, 1), date(2024, 1, 8)]
    assert [e.amount_cents for e in repository.query_expenses(
        date(2024, 1, 1), date(2024, 1, 31)
    )] == [40]
    assert repository.sum_income_cents(end=date(2024, 1, 7)) == 1000
    assert repository.sum_expense_cents(start=date(2024, 1, 10)) == 60


def test_records_of_other_users_are_invisible():
    session = make_session()
    source = add_source(session, user_id=2)
    session.add(
        IncomeTransaction(
            user_id=2, amount_cents=10, date=date(2024, 1, 1), auto_added=False
        )
    )
    session.commit()

    repository = SqlLedgerRepository(session, user_id=1)
    assert repository.list_active_income_sources() == []
    assert repository.sum_income_cents() == 0
    assert SqlLedgerRepository(session, user_id=2).list_active_income_sources() == [
        source
    ]


def test_starting_balance_round_trip():
    session = make_session()
    repository = SqlLedgerRepository(session)
    assert repository.get_starting_balance() == 0
    repository.set_starting_balance(-2_500)
    repository.set_starting_balance(12_345)
    session.commit()
    assert repository.get_starting_balance() == 12_345


def test_storage_failures_surface_as_repository_errors(monkeypatch):
    session = make_session()
    repository = SqlLedgerRepository(session)

    def locked(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "scalars", locked)
    monkeypatch.setattr(session, "scalar", locked)
    with pytest.raises(RepositoryError, match="list income sources"):
        repository.list_active_income_sources()
    with pytest.raises(RepositoryError, match="look up postings"):
        repository.find_income_transaction(1, date(2024, 1, 1), auto_added=True)


def test_slow_statements_are_interrupted():
    session = make_session(timeout_secs=0.05)
    runaway = text(
        "WITH RECURSIVE n(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM n "
        "WHERE x < 1000000000) SELECT count(*) FROM n"
    )
    with pytest.raises(OperationalError, match="interrupted"):
        session.execute(runaway).scalar_one()


def test_other_integrity_failures_are_not_duplicates():
    session = make_session()
    source = add_source(session)
    repository = SqlLedgerRepository(session)

    negative = posting(source, date(2024, 1, 1))
    negative.amount_cents = -5
    with pytest.raises(RepositoryError, match="CHECK constraint failed"):
        repository.insert_income_transaction(negative)

    orphan = posting(source, date(2024, 1, 1))
    orphan.income_source_id = 999
    with pytest.raises(RepositoryError, match="FOREIGN KEY constraint failed"):
        repository.insert_income_transaction(orphan)

    repository.insert_income_transaction(posting(source, date(2024, 1, 1)))
    session.commit()
    assert repository.count_ledger_entries() == 1


class PgError(Exception):
    def __init__(self, pgcode: str) -> None:
        super().__init__(f"pgcode {pgcode}")
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "orig, expected",
    [
        (PgError("23505"), True),
        (PgError("23503"), False),
        (PgError("23514"), False),
        (Exception("UNIQUE constraint failed: income_transactions.user_id"), True),
        (Exception("CHECK constraint failed: ck_income_transactions_amount"), False),
    ],
)
def test_unique_violation_detection(orig, expected):
    assert _is_unique_violation(IntegrityError("INSERT", {}, orig)) is expected
