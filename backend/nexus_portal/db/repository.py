"""
Data access for the CRM: one coroutine per query, rows returned as plain
dicts (ids as strings). Routers depend on CrmRepository through
get_repository so tests can swap in an in-memory implementation.
"""

import textwrap
import uuid
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from .pool import execute, fetch_all, fetch_one, transaction


def _clean(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in row.items()}


def _clean_all(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [_clean(r) for r in rows]


def _set_clause(fields: Dict[str, Any], json_fields: Sequence[str] = ()) -> tuple:
    set_clauses = []
    params: List[Any] = []
    for column, value in fields.items():
        set_clauses.append(f"{column} = %s")
        params.append(Jsonb(value) if column in json_fields else value)
    return set_clauses, params


def document_number(prefix: str, on: date, sequence: int) -> str:
    """FAC-202412-001 style numbers, sequence restarting every month."""
    return f"{prefix}-{on:%Y%m}-{sequence:03d}"


class CrmRepository:

    # ------------------------------------------------------------
    # Roles and sales partners
    # ------------------------------------------------------------

    async def get_user_role(self, user_id: str) -> Optional[str]:
        # admin wins over sales, sales over user
        row = await fetch_one(
            textwrap.dedent("""
                SELECT role FROM user_roles
                WHERE user_id = %s
                ORDER BY CASE role WHEN 'admin' THEN 0 WHEN 'sales' THEN 1 ELSE 2 END
                LIMIT 1
            """),
            (user_id,),
        )
        return row["role"] if row else None

    async def set_user_role(self, user_id: str, role: str) -> None:
        await execute(
            textwrap.dedent("""
                INSERT INTO user_roles (user_id, role) VALUES (%s, %s)
                ON CONFLICT (user_id, role) DO NOTHING
            """),
            (user_id, role),
        )

    async def list_sales_partners(self) -> List[Dict[str, Any]]:
        return _clean_all(await fetch_all("SELECT * FROM sales_partners ORDER BY full_name"))

    async def get_sales_partner_by_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return _clean(await fetch_one("SELECT * FROM sales_partners WHERE user_id = %s", (user_id,)))

    async def create_sales_partner(
        self, user_id: str, email: str, full_name: Optional[str], commission_rate: float
    ) -> Dict[str, Any]:
        row = await fetch_one(
            textwrap.dedent("""
                INSERT INTO sales_partners (user_id, email, full_name, commission_rate)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE SET email = EXCLUDED.email
                RETURNING *
            """),
            (user_id, email, full_name, commission_rate),
        )
        return _clean(row)

    # ------------------------------------------------------------
    # Quote requests
    # ------------------------------------------------------------

    async def create_quote_request(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = await fetch_one(
            textwrap.dedent("""
                INSERT INTO quote_requests
                    (name, email, phone, business_type, services, project_details,
                     budget, timeline, consent_given, status)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, 'pending')
                RETURNING *
            """),
            (
                data["name"], data["email"], data.get("phone"), data.get("business_type"),
                data["services"], data.get("project_details"), data.get("budget"),
                data.get("timeline"), data.get("consent_given", True),
            ),
        )
        return _clean(row)

    async def list_quote_requests(self, limit: int) -> List[Dict[str, Any]]:
        rows = await fetch_all(
            "SELECT * FROM quote_requests ORDER BY created_at DESC, id DESC LIMIT %s", (limit,)
        )
        return _clean_all(rows)

    async def update_quote_request_status(self, quote_id: str, status: str) -> Optional[Dict[str, Any]]:
        row = await fetch_one(
            "UPDATE quote_requests SET status = %s WHERE id = %s RETURNING *", (status, quote_id)
        )
        return _clean(row)

    async def delete_quote_request(self, quote_id: str) -> bool:
        return await execute("DELETE FROM quote_requests WHERE id = %s", (quote_id,)) > 0

    # ------------------------------------------------------------
    # Call bookings and call notes
    # ------------------------------------------------------------

    async def create_call_booking(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = await fetch_one(
            textwrap.dedent("""
                INSERT INTO call_bookings (name, email, phone, booking_date, time_slot, duration, notes, status)
                VALUES (%s, %s, %s, %s, %s, %s, %s, 'pending')
                RETURNING *
            """),
            (
                data["name"], data["email"], data["phone"], data["booking_date"],
                data["time_slot"], data["duration"], data.get("notes"),
            ),
        )
        return _clean(row)

    async def list_call_bookings(self, limit: int) -> List[Dict[str, Any]]:
        rows = await fetch_all(
            "SELECT * FROM call_bookings ORDER BY created_at DESC, id DESC LIMIT %s", (limit,)
        )
        return _clean_all(rows)

    async def get_call_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        return _clean(await fetch_one("SELECT * FROM call_bookings WHERE id = %s", (booking_id,)))

    async def update_call_booking_status(self, booking_id: str, status: str) -> Optional[Dict[str, Any]]:
        row = await fetch_one(
            "UPDATE call_bookings SET status = %s WHERE id = %s RETURNING *", (status, booking_id)
        )
        return _clean(row)

    async def delete_call_booking(self, booking_id: str) -> bool:
        return await execute("DELETE FROM call_bookings WHERE id = %s", (booking_id,)) > 0

    async def list_call_notes(self) -> List[Dict[str, Any]]:
        return _clean_all(await fetch_all("SELECT * FROM call_booking_notes"))

    async def upsert_call_note(self, booking_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        row = await fetch_one(
            textwrap.dedent("""
                INSERT INTO call_booking_notes
                    (call_booking_id, call_outcome, call_summary, next_actions, internal_notes)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (call_booking_id) DO UPDATE SET
                    call_outcome = EXCLUDED.call_outcome,
                    call_summary = EXCLUDED.call_summary,
                    next_actions = EXCLUDED.next_actions,
                    internal_notes = EXCLUDED.internal_notes,
                    updated_at = now()
                RETURNING *
            """),
            (
                booking_id, fields.get("call_outcome"), fields.get("call_summary"),
                fields.get("next_actions"), fields.get("internal_notes"),
            ),
        )
        return _clean(row)

    # ------------------------------------------------------------
    # Client statuses
    # ------------------------------------------------------------

    async def list_client_statuses(self, limit: int) -> List[Dict[str, Any]]:
        rows = await fetch_all(
            "SELECT * FROM client_statuses ORDER BY updated_at DESC LIMIT %s", (limit,)
        )
        return _clean_all(rows)

    async def upsert_client_status(self, email: str, status: str, notes: Optional[str]) -> Dict[str, Any]:
        row = await fetch_one(
            textwrap.dedent("""
                INSERT INTO client_statuses (client_email, status, notes)
                VALUES (lower(%s), %s, %s)
                ON CONFLICT (client_email) DO UPDATE SET
                    status = EXCLUDED.status,
                    notes = EXCLUDED.notes,
                    updated_at = now()
                RETURNING *
            """),
            (email, status, notes),
        )
        return _clean(row)

    # ------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------

    async def list_invoices(self) -> List[Dict[str, Any]]:
        return _clean_all(await fetch_all("SELECT * FROM invoices ORDER BY created_at DESC"))

    async def get_invoice(self, invoice_id: str) -> Optional[Dict[str, Any]]:
        invoice = _clean(await fetch_one("SELECT * FROM invoices WHERE id = %s", (invoice_id,)))
        if invoice is None:
            return None
        items = await fetch_all(
            "SELECT * FROM invoice_items WHERE invoice_id = %s ORDER BY order_index", (invoice_id,)
        )
        invoice["items"] = _clean_all(items)
        return invoice

    async def _insert_items(self, cur, invoice_id: str, items: List[Dict[str, Any]]) -> None:
        for index, item in enumerate(items):
            await cur.execute(
                textwrap.dedent("""
                    INSERT INTO invoice_items (invoice_id, description, quantity, unit_price, total, order_index)
                    VALUES (%s, %s, %s, %s, %s, %s)
                """),
                (invoice_id, item["description"], item["quantity"], item["unit_price"], item["total"], index),
            )

    async def create_invoice(self, data: Dict[str, Any], items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Insert the invoice and its items in one transaction; numbers are FAC-YYYYMM-NNN."""
        async with transaction() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                issue_date: date = data["issue_date"]
                prefix = f"FAC-{issue_date:%Y%m}-"
                # serialize numbering within the month
                await cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (prefix,))
                await cur.execute(
                    "SELECT coalesce(max(split_part(invoice_number, '-', 3)::int), 0) AS n "
                    "FROM invoices WHERE invoice_number LIKE %s", (prefix + "%",)
                )
                sequence = (await cur.fetchone())["n"] + 1
                await cur.execute(
                    textwrap.dedent("""
                        INSERT INTO invoices
                            (project_id, invoice_number, client_email, client_name, client_address,
                             issue_date, due_date, amount, tax_rate, tax_amount, total_amount,
                             status, payment_method, notes)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'draft', %s, %s)
                        RETURNING *
                    """),
                    (
                        data.get("project_id"), document_number("FAC", issue_date, sequence),
                        data["client_email"], data["client_name"], data.get("client_address"),
                        issue_date, data["due_date"], data["amount"], data["tax_rate"],
                        data["tax_amount"], data["total_amount"], data.get("payment_method"),
                        data.get("notes"),
                    ),
                )
                invoice = _clean(await cur.fetchone())
                await self._insert_items(cur, invoice["id"], items)
        return await self.get_invoice(invoice["id"])

    async def update_invoice(
        self, invoice_id: str, fields: Dict[str, Any], items: Optional[List[Dict[str, Any]]] = None
    ) -> Optional[Dict[str, Any]]:
        """Update header fields and, when given, replace every line item atomically."""
        async with transaction() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                set_clauses, params = _set_clause(fields)
                set_clauses.append("updated_at = now()")
                await cur.execute(
                    f"UPDATE invoices SET {', '.join(set_clauses)} WHERE id = %s RETURNING id",
                    (*params, invoice_id),
                )
                if await cur.fetchone() is None:
                    return None
                if items is not None:
                    await cur.execute("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice_id,))
                    await self._insert_items(cur, invoice_id, items)
        return await self.get_invoice(invoice_id)

    async def delete_invoice(self, invoice_id: str) -> bool:
        async with transaction() as conn:
            async with conn.cursor() as cur:
                await cur.execute("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice_id,))
                await cur.execute("DELETE FROM invoices WHERE id = %s", (invoice_id,))
                return cur.rowcount > 0

    # ------------------------------------------------------------
    # Opportunities, projects, tasks
    # ------------------------------------------------------------

    async def _insert(self, table: str, data: Dict[str, Any], json_fields: Sequence[str] = ()) -> Dict[str, Any]:
        columns = list(data.keys())
        values = [Jsonb(data[c]) if c in json_fields else data[c] for c in columns]
        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) RETURNING *"
        )
        return _clean(await fetch_one(query, values))

    async def _update(
        self, table: str, record_id: str, fields: Dict[str, Any],
        json_fields: Sequence[str] = (), touch: bool = True,
    ) -> Optional[Dict[str, Any]]:
        set_clauses, params = _set_clause(fields, json_fields)
        if touch:
            set_clauses.append("updated_at = now()")
        if not set_clauses:
            return _clean(await fetch_one(f"SELECT * FROM {table} WHERE id = %s", (record_id,)))
        query = f"UPDATE {table} SET {', '.join(set_clauses)} WHERE id = %s RETURNING *"
        return _clean(await fetch_one(query, (*params, record_id)))

    async def list_opportunities(self) -> List[Dict[str, Any]]:
        return _clean_all(await fetch_all("SELECT * FROM opportunities ORDER BY created_at DESC"))

    async def get_opportunity(self, opportunity_id: str) -> Optional[Dict[str, Any]]:
        return _clean(await fetch_one("SELECT * FROM opportunities WHERE id = %s", (opportunity_id,)))

    async def create_opportunity(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert("opportunities", data)

    async def update_opportunity(self, opportunity_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._update("opportunities", opportunity_id, fields)

    async def delete_opportunity(self, opportunity_id: str) -> bool:
        return await execute("DELETE FROM opportunities WHERE id = %s", (opportunity_id,)) > 0

    async def list_projects(self) -> List[Dict[str, Any]]:
        return _clean_all(await fetch_all("SELECT * FROM projects ORDER BY created_at DESC"))

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return _clean(await fetch_one("SELECT * FROM projects WHERE id = %s", (project_id,)))

    async def create_project(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert("projects", data)

    async def update_project(self, project_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._update("projects", project_id, fields)

    async def delete_project(self, project_id: str) -> bool:
        return await execute("DELETE FROM projects WHERE id = %s", (project_id,)) > 0

    async def list_tasks(self) -> List[Dict[str, Any]]:
        return _clean_all(await fetch_all("SELECT * FROM admin_tasks ORDER BY created_at"))

    async def create_task(self, content: str, column_id: str) -> Dict[str, Any]:
        return await self._insert("admin_tasks", {"content": content, "column_id": column_id})

    async def move_task(self, task_id: str, column_id: str) -> Optional[Dict[str, Any]]:
        return await self._update("admin_tasks", task_id, {"column_id": column_id}, touch=False)

    async def delete_task(self, task_id: str) -> bool:
        return await execute("DELETE FROM admin_tasks WHERE id = %s", (task_id,)) > 0

    # ------------------------------------------------------------
    # Sales portal: prospects and quotes
    # ------------------------------------------------------------

    async def list_prospects(self, partner_id: str) -> List[Dict[str, Any]]:
        rows = await fetch_all(
            "SELECT * FROM prospects WHERE sales_partner_id = %s ORDER BY created_at DESC", (partner_id,)
        )
        return _clean_all(rows)

    async def get_prospect(self, prospect_id: str) -> Optional[Dict[str, Any]]:
        return _clean(await fetch_one("SELECT * FROM prospects WHERE id = %s", (prospect_id,)))

    async def create_prospect(self, partner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert("prospects", {**data, "sales_partner_id": partner_id, "source": "sales_partner"})

    async def update_prospect(self, prospect_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._update("prospects", prospect_id, fields)

    async def delete_prospect(self, prospect_id: str) -> bool:
        return await execute("DELETE FROM prospects WHERE id = %s", (prospect_id,)) > 0

    async def list_quotes(self, partner_id: str) -> List[Dict[str, Any]]:
        rows = await fetch_all(
            "SELECT * FROM quotes WHERE sales_partner_id = %s ORDER BY created_at DESC", (partner_id,)
        )
        return _clean_all(rows)

    async def get_quote(self, quote_id: str) -> Optional[Dict[str, Any]]:
        return _clean(await fetch_one("SELECT * FROM quotes WHERE id = %s", (quote_id,)))

    async def create_quote(self, data: Dict[str, Any]) -> Dict[str, Any]:
        async with transaction() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                today = date.today()
                prefix = f"DEV-{today:%Y%m}-"
                await cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (prefix,))
                await cur.execute(
                    "SELECT coalesce(max(split_part(quote_number, '-', 3)::int), 0) AS n "
                    "FROM quotes WHERE quote_number LIKE %s", (prefix + "%",)
                )
                sequence = (await cur.fetchone())["n"] + 1
                await cur.execute(
                    textwrap.dedent("""
                        INSERT INTO quotes (quote_number, sales_partner_id, prospect_id, amount, status, content)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        RETURNING *
                    """),
                    (
                        document_number("DEV", today, sequence), data["sales_partner_id"],
                        data.get("prospect_id"), data["amount"], data["status"], Jsonb(data["content"]),
                    ),
                )
                return _clean(await cur.fetchone())

    async def update_quote_status(self, quote_id: str, status: str) -> Optional[Dict[str, Any]]:
        return await self._update("quotes", quote_id, {"status": status}, touch=False)


repository = CrmRepository()


def get_repository() -> CrmRepository:
    return repository
