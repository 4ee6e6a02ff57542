"""
Shared fixtures: an in-memory CrmRepository, a mailer that records instead of
sending, and signed access tokens for each role.

Routes are exercised through FastAPI's TestClient with dependency overrides,
so no database, mail API or language model is needed.
"""

import itertools
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import jwt
import pytest
from fastapi.testclient import TestClient

from nexus_portal.core.config import settings
from nexus_portal.core.events import EventBus, get_event_bus
from nexus_portal.db.repository import document_number, get_repository
from nexus_portal.main import app
from nexus_portal.services.email_service import EmailDeliveryError, Mailer, get_mailer

ADMIN_ID = "11111111-1111-1111-1111-111111111111"
SALES_ID = "22222222-2222-2222-2222-222222222222"
OTHER_SALES_ID = "33333333-3333-3333-3333-333333333333"
USER_ID = "44444444-4444-4444-4444-444444444444"

_BASE_TIME = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


class FakeRepository:
    """Dict-backed stand-in for CrmRepository with the same coroutine API."""

    def __init__(self):
        self._clock = itertools.count(1)
        self.roles: Dict[str, str] = {}
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            name: {}
            for name in (
                "sales_partners", "quote_requests", "call_bookings", "call_booking_notes",
                "client_statuses", "invoices", "opportunities", "projects", "admin_tasks",
                "prospects", "quotes",
            )
        }

    def now(self) -> datetime:
        # strictly increasing so "newest first" is deterministic
        return _BASE_TIME + timedelta(minutes=next(self._clock))

    def _put(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row.setdefault("id", str(uuid.uuid4()))
        self.tables[table][row["id"]] = row
        return dict(row)

    def _get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        row = self.tables[table].get(record_id)
        return dict(row) if row else None

    def _patch(self, table: str, record_id: str, fields: Dict[str, Any], touch: bool = True):
        row = self.tables[table].get(record_id)
        if row is None:
            return None
        row.update(fields)
        if touch:
            row["updated_at"] = self.now()
        return dict(row)

    def _delete(self, table: str, record_id: str) -> bool:
        return self.tables[table].pop(record_id, None) is not None

    def _newest(self, table: str, **where) -> List[Dict[str, Any]]:
        rows = [r for r in self.tables[table].values() if all(r.get(k) == v for k, v in where.items())]
        return [dict(r) for r in sorted(rows, key=lambda r: r["created_at"], reverse=True)]

    def _next_sequence(self, table: str, column: str, prefix: str) -> int:
        used = [int(r[column].rsplit("-", 1)[1]) for r in self.tables[table].values()
                if (r.get(column) or "").startswith(prefix)]
        return max(used, default=0) + 1

    # roles and partners

    async def get_user_role(self, user_id):
        return self.roles.get(user_id)

    async def set_user_role(self, user_id, role):
        self.roles[user_id] = role

    async def list_sales_partners(self):
        return [dict(r) for r in self.tables["sales_partners"].values()]

    async def get_sales_partner_by_user(self, user_id):
        return next((dict(r) for r in self.tables["sales_partners"].values() if r["user_id"] == user_id), None)

    async def create_sales_partner(self, user_id, email, full_name, commission_rate):
        return self._put("sales_partners", {
            "user_id": user_id, "email": email, "full_name": full_name,
            "phone": None, "commission_rate": Decimal(str(commission_rate)),
        })

    # quote requests

    async def create_quote_request(self, data):
        return self._put("quote_requests", {
            **data, "status": "pending", "sales_partner_id": data.get("sales_partner_id"), "created_at": self.now(),
        })

    async def list_quote_requests(self, limit):
        return self._newest("quote_requests")[:limit]

    async def update_quote_request_status(self, quote_id, status):
        return self._patch("quote_requests", quote_id, {"status": status}, touch=False)

    async def delete_quote_request(self, quote_id):
        return self._delete("quote_requests", quote_id)

    # call bookings and notes

    async def create_call_booking(self, data):
        return self._put("call_bookings", {**data, "status": "pending", "created_at": self.now()})

    async def list_call_bookings(self, limit):
        return self._newest("call_bookings")[:limit]

    async def get_call_booking(self, booking_id):
        return self._get("call_bookings", booking_id)

    async def update_call_booking_status(self, booking_id, status):
        return self._patch("call_bookings", booking_id, {"status": status}, touch=False)

    async def delete_call_booking(self, booking_id):
        return self._delete("call_bookings", booking_id)

    async def list_call_notes(self):
        return [dict(r) for r in self.tables["call_booking_notes"].values()]

    async def upsert_call_note(self, booking_id, fields):
        row = {"id": booking_id, "call_booking_id": booking_id, **fields, "updated_at": self.now()}
        self.tables["call_booking_notes"][booking_id] = row
        return dict(row)

    # client statuses

    async def list_client_statuses(self, limit):
        return [dict(r) for r in self.tables["client_statuses"].values()][:limit]

    async def upsert_client_status(self, email, status, notes):
        key = email.lower()
        row = {"id": key, "client_email": key, "status": status, "notes": notes, "updated_at": self.now()}
        self.tables["client_statuses"][key] = row
        return dict(row)

    # invoices

    async def list_invoices(self):
        return self._newest("invoices")

    async def get_invoice(self, invoice_id):
        return self._get("invoices", invoice_id)

    async def create_invoice(self, data, items):
        issue_date: date = data["issue_date"]
        prefix = f"FAC-{issue_date:%Y%m}-"
        sequence = self._next_sequence("invoices", "invoice_number", prefix)
        now = self.now()
        return self._put("invoices", {
            **data,
            "invoice_number": document_number("FAC", issue_date, sequence),
            "status": "draft",
            "created_at": now,
            "updated_at": now,
            "items": [{**item, "order_index": i} for i, item in enumerate(items)],
        })

    async def update_invoice(self, invoice_id, fields, items=None):
        if items is not None:
            fields = {**fields, "items": [{**item, "order_index": i} for i, item in enumerate(items)]}
        return self._patch("invoices", invoice_id, fields)

    async def delete_invoice(self, invoice_id):
        return self._delete("invoices", invoice_id)

    # opportunities, projects, tasks

    async def list_opportunities(self):
        return self._newest("opportunities")

    async def get_opportunity(self, opportunity_id):
        return self._get("opportunities", opportunity_id)

    async def create_opportunity(self, data):
        now = self.now()
        return self._put("opportunities", {**data, "created_at": now, "updated_at": now})

    async def update_opportunity(self, opportunity_id, fields):
        return self._patch("opportunities", opportunity_id, fields)

    async def delete_opportunity(self, opportunity_id):
        return self._delete("opportunities", opportunity_id)

    async def list_projects(self):
        return self._newest("projects")

    async def get_project(self, project_id):
        return self._get("projects", project_id)

    async def create_project(self, data):
        now = self.now()
        return self._put("projects", {**data, "created_at": now, "updated_at": now})

    async def update_project(self, project_id, fields):
        return self._patch("projects", project_id, fields)

    async def delete_project(self, project_id):
        return self._delete("projects", project_id)

    async def list_tasks(self):
        return list(reversed(self._newest("admin_tasks")))

    async def create_task(self, content, column_id):
        return self._put("admin_tasks", {"content": content, "column_id": column_id, "created_at": self.now()})

    async def move_task(self, task_id, column_id):
        return self._patch("admin_tasks", task_id, {"column_id": column_id}, touch=False)

    async def delete_task(self, task_id):
        return self._delete("admin_tasks", task_id)

    # prospects and sales quotes

    async def list_prospects(self, partner_id):
        return self._newest("prospects", sales_partner_id=partner_id)

    async def get_prospect(self, prospect_id):
        return self._get("prospects", prospect_id)

    async def create_prospect(self, partner_id, data):
        return self._put("prospects", {
            **data, "sales_partner_id": partner_id, "source": "sales_partner",
            "status": data.get("status", "new"), "created_at": self.now(),
        })

    async def update_prospect(self, prospect_id, fields):
        return self._patch("prospects", prospect_id, fields)

    async def delete_prospect(self, prospect_id):
        return self._delete("prospects", prospect_id)

    async def list_quotes(self, partner_id):
        return self._newest("quotes", sales_partner_id=partner_id)

    async def get_quote(self, quote_id):
        return self._get("quotes", quote_id)

    async def create_quote(self, data):
        today = date.today()
        prefix = f"DEV-{today:%Y%m}-"
        sequence = self._next_sequence("quotes", "quote_number", prefix)
        return self._put("quotes", {
            **data, "quote_number": document_number("DEV", today, sequence), "created_at": self.now(),
        })

    async def update_quote_status(self, quote_id, status):
        return self._patch("quotes", quote_id, {"status": status}, touch=False)


class RecordingMailer(Mailer):
    """Renders every message like the real mailer but keeps it in memory."""

    def __init__(self, fail: bool = False):
        super().__init__(api_key="test", api_url="http://mail.example.com", sender="test@example.com",
                         admin_email="admin@example.com")
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    async def send(self, to, subject, html, reply_to=None, attachments=None):
        if self.fail:
            raise EmailDeliveryError("mail API down")
        self.sent.append({"to": to, "subject": subject, "html": html, "reply_to": reply_to,
                          "attachments": attachments or []})
        return f"msg-{len(self.sent)}"


def make_token(user_id: str, email: Optional[str] = None, expires_in: int = 3600, **claims) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "aud": settings.JWT_AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def repo():
    fake = FakeRepository()
    fake.roles.update({ADMIN_ID: "admin", SALES_ID: "sales", OTHER_SALES_ID: "sales", USER_ID: "user"})
    return fake


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def client(repo, mailer, bus):
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_event_bus] = lambda: bus
    # no context manager: the lifespan would open the database pool
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_ID)


@pytest.fixture
def sales_headers():
    return auth_headers(SALES_ID)


@pytest.fixture
def partner(repo):
    return repo._put("sales_partners", {
        "user_id": SALES_ID, "email": "commercial@example.com", "full_name": "Camille Martin",
        "phone": None, "commission_rate": Decimal("20"),
    })
