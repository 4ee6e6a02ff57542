from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from nexus_portal.main import app
from nexus_portal.services.assistant import AssistantClient, get_assistant
from nexus_portal.services.auth_provider import AuthProviderError, get_auth_provider

from conftest import ADMIN_ID, SALES_ID, auth_headers
from test_public_routes import BOOKING_FORM, QUOTE_FORM


class FakeAuthProvider:
    def __init__(self, error: str = None):
        self.invited = []
        self.error = error

    async def invite_user(self, email, metadata, redirect_to):
        if self.error:
            raise AuthProviderError(self.error)
        self.invited.append((email, metadata, redirect_to))
        return "55555555-5555-5555-5555-555555555555"


def test_admin_routes_reject_other_roles(client):
    response = client.get("/admin/dashboard", headers=auth_headers(SALES_ID))
    assert response.status_code == 403
    assert response.json()["detail"] == "Accès réservé aux administrateurs"
    assert client.get("/admin/dashboard").status_code == 401


class TestLeads:
    def test_dashboard(self, client, admin_headers):
        client.post("/public/quote-requests", json=QUOTE_FORM)
        booking = client.post("/public/call-bookings", json={**BOOKING_FORM, "email": QUOTE_FORM["email"]}).json()
        client.put(f"/admin/call-bookings/{booking['id']}/notes", headers=admin_headers,
                   json={"call_summary": "Très motivé"})

        body = client.get("/admin/dashboard", headers=admin_headers).json()
        assert body["stats"]["total_clients"] == 1
        assert body["pending_quotes"] == 1
        assert body["upcoming_calls"] == 1
        assert body["call_notes"][booking["id"]]["call_summary"] == "Très motivé"
        client_row = body["clients"][0]
        assert len(client_row["quotes"]) == 1 and len(client_row["calls"]) == 1

    def test_client_status(self, client, admin_headers):
        client.post("/public/quote-requests", json=QUOTE_FORM)
        response = client.put("/admin/clients/Jean.Dupont@example.com/status", headers=admin_headers,
                              json={"status": "client", "notes": "Contrat signé"})
        assert response.status_code == 200
        assert response.json()["client_email"] == "jean.dupont@example.com"

        detail = client.get("/admin/clients/jean.dupont@example.com", headers=admin_headers).json()
        assert detail["status"] == "client"
        assert detail["status_notes"] == "Contrat signé"

    def test_search_and_missing_client(self, client, admin_headers):
        client.post("/public/quote-requests", json=QUOTE_FORM)
        assert len(client.get("/admin/clients?search=dupont", headers=admin_headers).json()) == 1
        assert client.get("/admin/clients?search=zzz", headers=admin_headers).json() == []
        assert client.get("/admin/clients/nobody@example.com", headers=admin_headers).status_code == 404

    def test_quote_request_status_and_delete(self, client, admin_headers):
        quote = client.post("/public/quote-requests", json=QUOTE_FORM).json()
        updated = client.patch(f"/admin/quote-requests/{quote['id']}/status", headers=admin_headers,
                               json={"status": "in_progress"})
        assert updated.json()["status"] == "in_progress"
        assert client.patch(f"/admin/quote-requests/{quote['id']}/status", headers=admin_headers,
                            json={"status": "weird"}).status_code == 422

        assert client.delete(f"/admin/quote-requests/{quote['id']}", headers=admin_headers).status_code == 204
        assert client.delete(f"/admin/quote-requests/{quote['id']}", headers=admin_headers).status_code == 404

    def test_notes_need_an_existing_booking(self, client, admin_headers):
        response = client.put("/admin/call-bookings/missing/notes", headers=admin_headers, json={"call_outcome": "ok"})
        assert response.status_code == 404

    def test_admin_cancel(self, client, admin_headers, mailer):
        booking = client.post("/public/call-bookings", json=BOOKING_FORM).json()
        response = client.post(f"/admin/call-bookings/{booking['id']}/cancel", headers=admin_headers)
        assert response.json()["status"] == "cancelled"
        assert len(mailer.sent) == 4


class TestInvite:
    @pytest.fixture
    def provider(self):
        fake = FakeAuthProvider()
        app.dependency_overrides[get_auth_provider] = lambda: fake
        return fake

    def test_invite_sales_partner(self, client, repo, admin_headers, provider):
        response = client.post("/admin/users/invite", headers=admin_headers,
                               json={"email": "vendeur@example.com", "full_name": "Paul Vendeur", "role": "sales"})
        assert response.status_code == 201
        user_id = response.json()["user_id"]
        assert repo.roles[user_id] == "sales"
        partners = list(repo.tables["sales_partners"].values())
        assert partners[0]["user_id"] == user_id
        assert partners[0]["commission_rate"] == Decimal("20")
        assert provider.invited[0][2].endswith("/auth/callback")

    def test_invite_admin_has_no_partner_row(self, client, repo, admin_headers, provider):
        client.post("/admin/users/invite", headers=admin_headers, json={"email": "boss@example.com", "role": "admin"})
        assert repo.tables["sales_partners"] == {}

    def test_provider_failure(self, client, admin_headers):
        app.dependency_overrides[get_auth_provider] = lambda: FakeAuthProvider(error="User already registered")
        response = client.post("/admin/users/invite", headers=admin_headers, json={"email": "x@example.com"})
        assert response.status_code == 502
        assert response.json()["detail"] == "User already registered"


INVOICE = {
    "client_email": "jean.dupont@example.com",
    "client_name": "Jean Dupont",
    "client_address": "1 rue de Paris, 75001 Paris",
    "issue_date": "2025-03-01",
    "due_date": "2025-03-31",
    "items": [
        {"description": "Site vitrine", "quantity": 2, "unit_price": 100},
        {"description": "Pack légal", "quantity": 1, "unit_price": 50},
    ],
}


class TestInvoices:
    def test_totals_are_computed_server_side(self, client, admin_headers):
        response = client.post("/admin/invoices", headers=admin_headers, json=INVOICE)
        assert response.status_code == 201
        body = response.json()
        assert body["invoice_number"] == "FAC-202503-001"
        assert Decimal(body["amount"]) == Decimal("250.00")
        assert Decimal(body["tax_amount"]) == Decimal("50.00")
        assert Decimal(body["total_amount"]) == Decimal("300.00")
        assert [Decimal(i["total"]) for i in body["items"]] == [Decimal("200.00"), Decimal("50.00")]

        second = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        assert second["invoice_number"] == "FAC-202503-002"

    def test_validation(self, client, admin_headers):
        assert client.post("/admin/invoices", headers=admin_headers, json={**INVOICE, "items": []}).status_code == 422
        early = client.post("/admin/invoices", headers=admin_headers, json={**INVOICE, "due_date": "2025-02-01"})
        assert early.status_code == 400

    def test_update_replaces_items(self, client, admin_headers):
        invoice = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        response = client.put(f"/admin/invoices/{invoice['id']}", headers=admin_headers, json={
            "items": [{"description": "Maintenance", "quantity": 3, "unit_price": "33.33"}],
            "tax_rate": 10,
        })
        body = response.json()
        assert len(body["items"]) == 1
        assert Decimal(body["amount"]) == Decimal("99.99")
        assert Decimal(body["tax_amount"]) == Decimal("10.00")
        assert Decimal(body["total_amount"]) == Decimal("109.99")

    def test_status_machine(self, client, admin_headers):
        invoice = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        url = f"/admin/invoices/{invoice['id']}"

        refused = client.patch(f"{url}/status", headers=admin_headers, json={"status": "paid"})
        assert refused.status_code == 400
        assert refused.json()["detail"].startswith("Transition impossible")

        assert client.patch(f"{url}/status", headers=admin_headers, json={"status": "sent"}).json()["status"] == "sent"
        # only drafts can be edited
        assert client.put(url, headers=admin_headers, json={"notes": "x"}).status_code == 400
        assert client.patch(f"{url}/status", headers=admin_headers, json={"status": "paid"}).json()["status"] == "paid"

    def test_pdf(self, client, admin_headers):
        invoice = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        response = client.get(f"/admin/invoices/{invoice['id']}/pdf", headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="Facture_FAC-202503-001.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_delete(self, client, admin_headers):
        invoice = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        assert client.delete(f"/admin/invoices/{invoice['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"/admin/invoices/{invoice['id']}", headers=admin_headers).status_code == 404

    def test_numbers_are_not_reused_after_a_delete(self, client, admin_headers):
        first = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        second = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        client.delete(f"/admin/invoices/{first['id']}", headers=admin_headers)
        third = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        assert second["invoice_number"] == "FAC-202503-002"
        assert third["invoice_number"] == "FAC-202503-003"

    @pytest.mark.parametrize("field", ["tax_rate", "client_name", "issue_date", "due_date", "items"])
    def test_update_rejects_explicit_nulls(self, client, admin_headers, field):
        invoice = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        response = client.put(f"/admin/invoices/{invoice['id']}", headers=admin_headers, json={field: None})
        assert response.status_code == 422

    def test_update_checks_due_date_against_issue_date(self, client, admin_headers):
        invoice = client.post("/admin/invoices", headers=admin_headers, json=INVOICE).json()
        url = f"/admin/invoices/{invoice['id']}"
        assert client.put(url, headers=admin_headers, json={"due_date": "2025-02-15"}).status_code == 400
        assert client.put(url, headers=admin_headers, json={"issue_date": "2025-04-01"}).status_code == 400
        moved = client.put(url, headers=admin_headers, json={"issue_date": "2025-03-10", "due_date": "2025-04-10"})
        assert moved.status_code == 200
        assert moved.json()["due_date"] == "2025-04-10"


def test_unexpected_errors_become_a_generic_500(repo, admin_headers, client):
    async def broken():
        raise RuntimeError("connection reset")

    repo.list_tasks = broken
    response = TestClient(app, raise_server_exceptions=False).get("/admin/tasks", headers=admin_headers)
    assert response.status_code == 500
    assert response.json() == {"detail": "Erreur interne du serveur"}


def new_opportunity(client, headers, amount, name="Refonte site"):
    return client.post("/admin/opportunities", headers=headers, json={
        "client_email": "jean.dupont@example.com", "client_name": "Jean Dupont", "name": name, "amount": amount,
    }).json()


def move(client, headers, opportunity_id, stage, **extra):
    return client.patch(f"/admin/opportunities/{opportunity_id}/stage", headers=headers, json={"stage": stage, **extra})


class TestOpportunities:
    def test_create_defaults(self, client, admin_headers):
        body = new_opportunity(client, admin_headers, 1000)
        assert body["stage"] == "prospecting"
        assert body["assigned_to"] == ADMIN_ID

    def test_stage_sets_probability(self, client, admin_headers):
        opportunity = new_opportunity(client, admin_headers, 1000)
        assert move(client, admin_headers, opportunity["id"], "qualification").json()["probability"] == 25
        assert move(client, admin_headers, opportunity["id"], "negotiation").status_code == 400

    def test_losing_needs_a_reason(self, client, admin_headers):
        opportunity = new_opportunity(client, admin_headers, 1000)
        assert move(client, admin_headers, opportunity["id"], "closed_lost").status_code == 400
        body = move(client, admin_headers, opportunity["id"], "closed_lost", lost_reason="Budget").json()
        assert body["lost_reason"] == "Budget"
        assert body["actual_close_date"] == date.today().isoformat()
        assert body["probability"] == 0

    def test_pipeline(self, client, admin_headers):
        new_opportunity(client, admin_headers, 1000)
        won = new_opportunity(client, admin_headers, 3000)
        for stage in ("qualification", "proposal", "negotiation", "closed_won"):
            move(client, admin_headers, won["id"], stage)
        lost = new_opportunity(client, admin_headers, 500)
        move(client, admin_headers, lost["id"], "closed_lost", lost_reason="Concurrent")

        stats = client.get("/admin/opportunities/pipeline", headers=admin_headers).json()
        assert stats["total_opportunities"] == 3
        assert Decimal(stats["total_value"]) == Decimal("1000")
        assert Decimal(stats["weighted_value"]) == Decimal("100")
        assert stats["won_count"] == 1 and stats["lost_count"] == 1
        assert Decimal(stats["won_value"]) == Decimal("3000")
        assert Decimal(stats["avg_deal_size"]) == Decimal("3000")
        assert stats["conversion_rate"] == 50.0


class TestProjectsAndTasks:
    def test_project_lifecycle(self, client, admin_headers):
        project = client.post("/admin/projects", headers=admin_headers, json={
            "client_email": "jean.dupont@example.com", "name": "Site restaurant", "budget": 1850,
        }).json()
        assert project["status"] == "planned"
        url = f"/admin/projects/{project['id']}/status"

        assert client.patch(url, headers=admin_headers, json={"status": "delivered"}).status_code == 400
        started = client.patch(url, headers=admin_headers, json={"status": "in_progress"}).json()
        assert started["start_date"] == date.today().isoformat()
        client.patch(url, headers=admin_headers, json={"status": "review"})
        delivered = client.patch(url, headers=admin_headers, json={"status": "delivered"}).json()
        assert delivered["actual_end_date"] == date.today().isoformat()

    def test_project_dates_are_checked(self, client, admin_headers):
        start = date.today()
        response = client.post("/admin/projects", headers=admin_headers, json={
            "client_email": "jean.dupont@example.com", "name": "X",
            "start_date": start.isoformat(), "expected_end_date": (start - timedelta(days=1)).isoformat(),
        })
        assert response.status_code == 400

    def test_kanban(self, client, admin_headers):
        task = client.post("/admin/tasks", headers=admin_headers, json={"content": "  Relancer Jean  "}).json()
        assert task["content"] == "Relancer Jean"
        assert task["column_id"] == "todo"

        moved = client.patch(f"/admin/tasks/{task['id']}", headers=admin_headers, json={"column_id": "done"})
        assert moved.json()["column_id"] == "done"
        assert client.patch("/admin/tasks/missing", headers=admin_headers, json={"column_id": "done"}).status_code == 404

        assert len(client.get("/admin/tasks", headers=admin_headers).json()) == 1
        assert client.delete(f"/admin/tasks/{task['id']}", headers=admin_headers).status_code == 204
        assert client.get("/admin/tasks", headers=admin_headers).json() == []

    def test_blank_task(self, client, admin_headers):
        assert client.post("/admin/tasks", headers=admin_headers, json={"content": "   "}).status_code == 400


def sse_body(*contents):
    lines = [
        'data: {"choices": [{"delta": {"content": "%s"}}]}\n\n' % c for c in contents
    ]
    return ("".join(lines) + "data: [DONE]\n\n").encode()


class TestAssistantRoute:
    def use_assistant(self, handler, api_key="sk-test"):
        assistant = AssistantClient(api_key=api_key, api_url="https://ai.example.com/v1/chat/completions",
                                    model="test-model", transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_assistant] = lambda: assistant

    def test_streams_tokens_then_done(self, client, admin_headers):
        self.use_assistant(lambda request: httpx.Response(200, content=sse_body("Bon", "jour")))
        response = client.post("/admin/ai-assistant", headers=admin_headers,
                               json={"type": "custom_query", "query": "Combien de leads ?"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.text == (
            'data: {"content": "Bon"}\n\n'
            'data: {"content": "jour"}\n\n'
            "data: [DONE]\n\n"
        )

    def test_rate_limit_is_reported(self, client, admin_headers):
        self.use_assistant(lambda request: httpx.Response(429, json={"error": "slow down"}))
        response = client.post("/admin/ai-assistant", headers=admin_headers, json={"type": "insights"})
        assert response.status_code == 429
        assert response.json()["detail"] == "Limite de requêtes atteinte, réessayez plus tard."

    def test_missing_key(self, client, admin_headers):
        self.use_assistant(lambda request: httpx.Response(200), api_key="")
        response = client.post("/admin/ai-assistant", headers=admin_headers, json={"type": "insights"})
        assert response.status_code == 500
        assert response.json()["detail"] == "Service IA non configuré"

    def test_upstream_failure_is_a_bad_gateway(self, client, admin_headers):
        self.use_assistant(lambda request: httpx.Response(503, text="overloaded"))
        response = client.post("/admin/ai-assistant", headers=admin_headers, json={"type": "insights"})
        assert response.status_code == 502
        assert response.json()["detail"] == "Erreur du service IA"


class TestExports:
    def test_quote_requests(self, client, admin_headers):
        client.post("/public/quote-requests", json=QUOTE_FORM)
        response = client.get("/admin/exports/quote-requests", headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert f'filename="export-quotes_{date.today().isoformat()}.csv"' in response.headers["content-disposition"]
        lines = response.content.decode("utf-8-sig").splitlines()
        assert len(lines) == 2
        assert '"Jean Dupont"' in lines[1]

    def test_clients_follow_the_search(self, client, admin_headers):
        client.post("/public/quote-requests", json=QUOTE_FORM)
        client.post("/public/call-bookings", json=BOOKING_FORM)
        everyone = client.get("/admin/exports/clients", headers=admin_headers).content.decode("utf-8-sig")
        assert len(everyone.splitlines()) == 3
        only_marie = client.get("/admin/exports/clients?search=marie", headers=admin_headers)
        assert len(only_marie.content.decode("utf-8-sig").splitlines()) == 2

    def test_admin_only(self, client, sales_headers):
        assert client.get("/admin/exports/clients", headers=sales_headers).status_code == 403
