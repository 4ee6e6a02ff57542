import random
from datetime import date, datetime, timedelta, timezone

from nexus_portal.schemas.leads import CallBooking, ClientStatus, QuoteRequest
from nexus_portal.services.clients import aggregate_clients, client_stats, filter_clients, find_client

T0 = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


def quote(id, email, name="Jean Dupont", phone=None, minutes=0, partner=None):
    return QuoteRequest(id=id, name=name, email=email, phone=phone, services=["site-vitrine"],
                        sales_partner_id=partner, created_at=T0 + timedelta(minutes=minutes))


def call(id, email, name="Jean Dupont", phone="0600000000", minutes=0):
    return CallBooking(id=id, name=name, email=email, phone=phone, booking_date=date(2025, 3, 10),
                       time_slot="10:00", duration=30, created_at=T0 + timedelta(minutes=minutes))


def test_groups_by_case_insensitive_email():
    clients = aggregate_clients(
        [quote("q1", "Jean@Example.com", minutes=0), quote("q2", "jean@example.com", minutes=5)],
        [call("c1", " JEAN@example.com ", minutes=10)],
        [],
    )
    assert len(clients) == 1
    client = clients[0]
    assert [q.id for q in client.quotes] == ["q2", "q1"]
    assert [c.id for c in client.calls] == ["c1"]
    assert client.first_contact == T0
    assert client.last_contact == T0 + timedelta(minutes=10)
    assert client.status == "lead"


def test_identity_comes_from_newest_quote_and_phone_is_backfilled():
    clients = aggregate_clients(
        [quote("q1", "a@x.fr", name="Ancien Nom", phone="0611111111", minutes=0),
         quote("q2", "a@x.fr", name="Nouveau Nom", minutes=5)],
        [call("c1", "a@x.fr", name="Nom Appel", phone="0622222222", minutes=20)],
        [],
    )
    assert clients[0].name == "Nouveau Nom"
    assert clients[0].phone == "0611111111"


def test_booking_only_client_uses_booking_identity():
    clients = aggregate_clients([], [call("c1", "b@x.fr", name="Marie", phone="0633333333")], [])
    assert clients[0].name == "Marie"
    assert clients[0].phone == "0633333333"
    assert clients[0].quotes == []


def test_every_record_lands_in_exactly_one_client():
    quotes = [quote(f"q{i}", f"user{i % 4}@x.fr", minutes=i) for i in range(12)]
    calls = [call(f"c{i}", f"user{i % 6}@x.fr", minutes=100 + i) for i in range(9)]
    clients = aggregate_clients(quotes, calls, [])
    assert sum(len(c.quotes) for c in clients) == len(quotes)
    assert sum(len(c.calls) for c in clients) == len(calls)
    assert len(clients) == 6
    for c in clients:
        stamps = [q.created_at for q in c.quotes] + [b.created_at for b in c.calls]
        assert c.first_contact == min(stamps)
        assert c.last_contact == max(stamps)


def test_result_does_not_depend_on_input_order():
    quotes = [quote(f"q{i}", f"user{i % 3}@x.fr", minutes=i) for i in range(8)]
    calls = [call(f"c{i}", f"user{i % 2}@x.fr", minutes=50 + i) for i in range(5)]
    first = aggregate_clients(quotes, calls, [])
    shuffled_quotes, shuffled_calls = quotes[:], calls[:]
    random.Random(4).shuffle(shuffled_quotes)
    random.Random(7).shuffle(shuffled_calls)
    assert aggregate_clients(shuffled_quotes, shuffled_calls, []) == first
    assert aggregate_clients(quotes, calls, []) == first


def test_clients_sorted_by_last_contact():
    clients = aggregate_clients(
        [quote("q1", "old@x.fr", minutes=0), quote("q2", "new@x.fr", minutes=30)], [], []
    )
    assert [c.email for c in clients] == ["new@x.fr", "old@x.fr"]


def test_status_and_partner_are_attached():
    clients = aggregate_clients(
        [quote("q1", "c@x.fr", partner="p1")],
        [],
        [ClientStatus(client_email="C@X.FR", status="client", notes="Signé")],
        {"p1": "Camille Martin"},
    )
    assert clients[0].status == "client"
    assert clients[0].status_notes == "Signé"
    assert clients[0].sales_partner_name == "Camille Martin"


def test_status_without_records_yields_no_client():
    clients = aggregate_clients([], [], [ClientStatus(client_email="ghost@x.fr", status="lost")])
    assert clients == []


def test_search_and_lookup():
    clients = aggregate_clients(
        [quote("q1", "jean@x.fr", name="Jean Dupont", phone="0612345678"),
         quote("q2", "marie@y.fr", name="Marie Curie", minutes=1)],
        [], [],
    )
    assert [c.email for c in filter_clients(clients, "dupont")] == ["jean@x.fr"]
    assert [c.email for c in filter_clients(clients, "y.fr")] == ["marie@y.fr"]
    assert [c.email for c in filter_clients(clients, "12345")] == ["jean@x.fr"]
    assert filter_clients(clients, "") == clients
    assert find_client(clients, "MARIE@Y.FR").name == "Marie Curie"
    assert find_client(clients, "nobody@x.fr") is None


def test_stats():
    clients = aggregate_clients(
        [quote("q1", "a@x.fr"), quote("q2", "b@x.fr", minutes=1), quote("q3", "c@x.fr", minutes=2)],
        [],
        [ClientStatus(client_email="b@x.fr", status="client"), ClientStatus(client_email="c@x.fr", status="lost")],
    )
    stats = client_stats(clients)
    assert (stats.total_clients, stats.leads, stats.clients_won, stats.lost, stats.prospects) == (3, 1, 1, 1, 0)
