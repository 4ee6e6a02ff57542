import pytest

from nexus_portal.services import catalog
from nexus_portal.services.wizard import (
    STEP_OPTIONS,
    ServiceType,
    get_step_label,
    get_total_steps,
    get_wizard_config,
)


@pytest.mark.parametrize("service_type", list(ServiceType))
def test_every_flow_starts_with_service_and_ends_with_summary(service_type):
    steps = get_wizard_config(service_type)
    assert steps[0].id == "service"
    assert steps[-1].id == "summary"
    assert len({s.id for s in steps}) == len(steps)


@pytest.mark.parametrize("tag", ["", None, "unknown", "SITE"])
def test_unknown_tags_fall_back_to_vitrine(tag):
    assert get_wizard_config(tag) == get_wizard_config(ServiceType.VITRINE)


def test_tags_are_case_insensitive():
    assert get_total_steps(" Mobile ") == get_total_steps("mobile") == 5


def test_step_counts():
    assert get_total_steps("vitrine") == 6
    assert get_total_steps("identite") == 4
    assert get_total_steps("automatisation") == 5


def test_step_label_is_one_based():
    assert get_step_label("identite", 1) == "Service"
    assert get_step_label("identite", 2) == "Package"
    assert get_step_label("identite", 0) == ""
    assert get_step_label("identite", 5) == ""


def test_returned_list_is_a_copy():
    steps = get_wizard_config("webapp")
    steps.pop()
    assert get_total_steps("webapp") == 6


def test_option_catalogs_only_for_known_steps():
    known = {s.id for t in ServiceType for s in get_wizard_config(t)}
    assert set(STEP_OPTIONS) <= known


class TestCatalog:
    def test_business_plan_is_popular(self):
        sites = catalog.get_category("sites")
        business = catalog.get_plan(sites, "Business")
        assert business.is_popular
        assert catalog.parse_price(business.price) == 1290

    def test_unknown_category_and_plan(self):
        assert catalog.get_category("nope") is None
        assert catalog.get_plan(catalog.get_category("sites"), "Gold") is None

    @pytest.mark.parametrize("text,expected", [
        ("890€", 890), ("1 290€", 1290), ("Dès 990€", 990), ("Dès 5k€", 5000), ("Dès 4k€", 4000),
        ("Sur devis", None), ("", None),
    ])
    def test_parse_price(self, text, expected):
        assert catalog.parse_price(text) == expected

    def test_addons_are_filtered_by_category(self):
        ids = {a.id for a in catalog.addons_for("sites")}
        assert "content" in ids
        assert "brand-guide" not in ids
