# tests/conftest.py

import itertools
from datetime import date

import pytest

from config import TestConfig


@pytest.fixture
def app():
    """
    Creates a new app instance for each test with a fresh in-memory database,
    and yields the app within an application context.
    """
    from staxreports import create_app, db

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app  # The tests will run here
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signed_in_client(client):
    with client.session_transaction() as sess:
        sess['user_id'] = 'user-1'
    return client


@pytest.fixture
def add_decisions(app):
    """Inserts ApplicationDecision rows; dates may be given as ISO strings."""
    from staxreports import db
    from staxreports.models import ApplicationDecision

    numbers = itertools.count(1)

    def _add(*records):
        for record in records:
            values = dict(record)
            values.setdefault('id', f"AD-{next(numbers):05d}")
            for key, value in list(values.items()):
                if key.endswith('_date') and isinstance(value, str):
                    values[key] = date.fromisoformat(value)
            db.session.add(ApplicationDecision(**values))
        db.session.commit()

    return _add


@pytest.fixture
def sample_records():
    """A small, mixed set of engine records (plain dicts, ISO dates)."""
    return [
        {'id': 'AD-1', 'lender_name': 'Lender A', 'retailer_name': 'Bikes Ltd', 'bdm_name': 'Sam',
         'finance_product': 'IFC', 'prime_subprime': 'Prime', 'status': 'Approved',
         'submitted_date': '2026-01-05', 'loan_amount': 1000.0, 'commission_amount': 50.0},
        {'id': 'AD-2', 'lender_name': 'Lender A', 'retailer_name': 'Bikes Ltd', 'bdm_name': 'Sam',
         'finance_product': 'IFC', 'prime_subprime': 'Prime', 'status': 'Declined',
         'submitted_date': '2026-01-06', 'loan_amount': 2000.0, 'commission_amount': 0.0},
        {'id': 'AD-3', 'lender_name': 'Lender A', 'retailer_name': 'Sofa World', 'bdm_name': 'Alex',
         'finance_product': 'BNPL', 'prime_subprime': 'Prime', 'status': 'Live',
         'submitted_date': '2026-01-20', 'loan_amount': 3000.0, 'commission_amount': 150.0},
        {'id': 'AD-4', 'lender_name': 'Lender B', 'retailer_name': 'Sofa World', 'bdm_name': 'Alex',
         'finance_product': 'BNPL', 'prime_subprime': 'Sub-Prime', 'status': 'Executed',
         'submitted_date': '2026-02-02', 'loan_amount': 500.0, 'commission_amount': 25.0},
        {'id': 'AD-5', 'lender_name': 'Lender B', 'retailer_name': None, 'bdm_name': 'Alex',
         'finance_product': 'IFC', 'prime_subprime': 'Sub-Prime', 'status': 'Referred',
         'submitted_date': '2026-02-10', 'loan_amount': 750.0, 'commission_amount': 0.0},
    ]
