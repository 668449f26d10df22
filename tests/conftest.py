"""
Shared fixtures.

Every service is wired over in-memory repositories, a fake attachment
store and a fixed clock. No test talks to Google Sheets or Cloudinary.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from clubdues.models.ledger import Account, Category, CategoryType
from clubdues.models.member import Member
from clubdues.orchestrator import AppComponents
from clubdues.services.attachments import AttachmentStore, AttachmentUploadError
from clubdues.services.storage import create_memory_repositories


class FixedClock:
    """Stands in for utc_today. Tests move it by assigning .today."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


class FakeAttachmentStore(AttachmentStore):
    """Records uploads; fails every upload when fail=True."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads = []

    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        if self.fail:
            raise AttachmentUploadError("service unavailable")
        self.uploads.append((filename, content, content_type))
        return f"https://files.example.com/{len(self.uploads)}/{filename}"


@pytest.fixture
def clock():
    return FixedClock(date(2025, 1, 10))


@pytest.fixture
def store():
    return FakeAttachmentStore()


@pytest.fixture
def repositories():
    return create_memory_repositories()


@pytest.fixture
def app(repositories, store, clock):
    return AppComponents(repositories, attachments=store, today=clock)


@pytest.fixture
def account(repositories):
    account = Account(name="Main account", initial_balance=Decimal("100.00"))
    asyncio.run(repositories.accounts.insert(account))
    return account


@pytest.fixture
def expense_category(repositories):
    category = Category(name="Utilities", type=CategoryType.EXPENSE)
    asyncio.run(repositories.categories.insert(category))
    return category


@pytest.fixture
def income_category(repositories):
    category = Category(name="Donations", type=CategoryType.INCOME)
    asyncio.run(repositories.categories.insert(category))
    return category


@pytest.fixture
def member(app):
    dues = asyncio.run(app.add_member(Member(
        name="Ana Souza",
        join_date=date(2024, 10, 1),
        monthly_fee=Decimal("50.00"),
    )))
    return dues.to_member()
