"""
Client aggregation for the admin dashboard.

There is no persisted client entity: a client is every quote request and call
booking sharing the same e-mail address (case-insensitive), decorated with the
matching client_statuses row. Recomputed from scratch on every read.
"""

from typing import Dict, Iterable, List, Optional

from ..schemas.leads import CallBooking, Client, ClientStats, ClientStatus, QuoteRequest

DEFAULT_STAGE = "lead"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _newest_first(records):
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


def aggregate_clients(
    quotes: Iterable[QuoteRequest],
    bookings: Iterable[CallBooking],
    statuses: Iterable[ClientStatus],
    partners: Optional[Dict[str, str]] = None,
) -> List[Client]:
    """
    Group quote requests and call bookings into one Client per e-mail.

    Inputs are re-sorted newest first so the output does not depend on the
    order they were fetched in. Name and e-mail come from the newest quote
    (newest booking when the client never sent a quote); the phone is the
    newest one found on a quote, backfilled from bookings. A status row whose
    e-mail matches no quote or booking yields no client.
    """
    partners = partners or {}
    status_by_email = {normalize_email(s.client_email): s for s in statuses}
    clients: Dict[str, Client] = {}

    for quote in _newest_first(quotes):
        key = normalize_email(quote.email)
        client = clients.get(key)
        if client is None:
            client = Client(
                email=quote.email,
                name=quote.name,
                phone=quote.phone or None,
                first_contact=quote.created_at,
                last_contact=quote.created_at,
            )
            clients[key] = client
        elif not client.phone and quote.phone:
            client.phone = quote.phone
        client.quotes.append(quote)
        _widen_contact_window(client, quote.created_at)

    for call in _newest_first(bookings):
        key = normalize_email(call.email)
        client = clients.get(key)
        if client is None:
            client = Client(
                email=call.email,
                name=call.name,
                phone=call.phone or None,
                first_contact=call.created_at,
                last_contact=call.created_at,
            )
            clients[key] = client
        client.calls.append(call)
        if not client.phone and call.phone:
            client.phone = call.phone
        _widen_contact_window(client, call.created_at)

    for key, client in clients.items():
        status = status_by_email.get(key)
        client.status = status.status if status else DEFAULT_STAGE
        client.status_notes = status.notes if status else None
        partner_id = next((q.sales_partner_id for q in client.quotes if q.sales_partner_id), None)
        if partner_id and partner_id in partners:
            client.sales_partner_name = partners[partner_id]

    return sorted(
        clients.values(),
        key=lambda c: (-c.last_contact.timestamp(), normalize_email(c.email)),
    )


def _widen_contact_window(client: Client, ts) -> None:
    if ts < client.first_contact:
        client.first_contact = ts
    if ts > client.last_contact:
        client.last_contact = ts


def find_client(clients: Iterable[Client], email: str) -> Optional[Client]:
    key = normalize_email(email)
    return next((c for c in clients if normalize_email(c.email) == key), None)


def filter_clients(clients: List[Client], term: Optional[str]) -> List[Client]:
    if not term:
        return clients
    needle = term.strip().lower()
    return [
        c for c in clients
        if needle in c.name.lower()
        or needle in c.email.lower()
        or (c.phone and needle in c.phone)
    ]


def client_stats(clients: List[Client]) -> ClientStats:
    def count(stage: str) -> int:
        return sum(1 for c in clients if c.status == stage)

    return ClientStats(
        total_clients=len(clients),
        leads=count("lead"),
        prospects=count("prospect"),
        clients_won=count("client"),
        lost=count("lost"),
    )
