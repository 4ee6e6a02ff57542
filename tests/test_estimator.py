import pytest

from nexus_portal.services.estimator import (
    QuoteFormData,
    confidence_label,
    determine_pack_level,
    estimate_quote,
    features_cost,
    format_price,
    options_cost,
)


def form(**kwargs) -> QuoteFormData:
    return QuoteFormData.model_validate(kwargs)


class TestPackLevel:
    @pytest.mark.parametrize("pages,expected", [(1, "essentiel"), (3, "essentiel"), (4, "standard"),
                                                (10, "standard"), (11, "premium"), (40, "premium")])
    def test_site_pack_follows_page_count(self, pages, expected):
        assert determine_pack_level(form(serviceType="vitrine", pagesCount=pages)) == expected

    def test_zero_pages_counts_as_five(self):
        assert determine_pack_level(form(serviceType="vitrine", pagesCount=0)) == "standard"

    @pytest.mark.parametrize("service", ["webapp", "mobile"])
    def test_applications_are_enterprise(self, service):
        assert determine_pack_level(form(serviceType=service, pagesCount=2)) == "enterprise"


class TestSiteEstimate:
    def test_standard_pack_without_extras(self):
        result = estimate_quote(form(serviceType="vitrine", pagesCount=5))
        assert (result.min, result.recommended, result.max) == (1200, 1850, 2500)
        assert result.breakdown.pack_name == "Pack Standard"
        assert result.breakdown.urgency_multiplier == 1.0

    def test_urgency_rounds_half_up(self):
        result = estimate_quote(form(serviceType="vitrine", pagesCount=5, urgency="urgent"))
        # 1850 * 1.25 = 2312.5
        assert result.recommended == 2313

    def test_flexible_discount(self):
        result = estimate_quote(form(serviceType="vitrine", pagesCount=2, urgency="flexible"))
        assert result.recommended == 720

    def test_pages_beyond_premium_are_billed(self):
        result = estimate_quote(form(serviceType="vitrine", pagesCount=25))
        assert result.pack_level == "premium"
        assert result.breakdown.extra_pages == 5 * 80
        assert result.recommended == 4000 + 400

    def test_features_weigh_less_on_min_and_more_on_max(self):
        result = estimate_quote(form(
            serviceType="vitrine", pagesCount=5,
            features={"forms": ["contact"], "auth": ["login"]},
        ))
        assert result.breakdown.features == 550
        assert result.min == 1200 + 385
        assert result.max == 2500 + 715
        assert result.recommended == 1850 + 550

    def test_options(self):
        data = form(multiLanguage=True, languages=["fr", "en", "de"], maintenance=True,
                    seoPriority=True, performanceCritical=True, accessibility=True)
        assert options_cost(data) == 2 * 250 + 250 + 300 + 400 + 600

    def test_single_language_is_free(self):
        assert options_cost(form(multiLanguage=True, languages=["fr"])) == 0

    def test_feature_cost_counts_each_selection(self):
        data = form(features={"integrations": ["stripe", "crm"], "content": ["blog"]})
        assert features_cost(data) == 2 * 500 + 300

    def test_webapp_uses_application_pack(self):
        result = estimate_quote(form(serviceType="webapp", pagesCount=30))
        assert result.pack_level == "enterprise"
        assert result.recommended == 7500
        assert result.breakdown.extra_pages == 0


class TestDedicatedFormulas:
    def test_automation(self):
        result = estimate_quote(form(
            serviceType="automatisation", automationWorkflows=2, automationComplexity="medium",
            automationIntegrations=["stripe", "gmail"], automationSupport=True,
        ))
        assert result.breakdown.pack_base == 1950
        assert result.breakdown.features == 300
        assert result.breakdown.options == 250
        assert (result.min, result.recommended, result.max) == (2125, 2500, 2875)
        assert result.pack_level == "standard"
        assert result.confidence == "high"
        assert result.breakdown.pack_name == "2 workflows (medium)"

    def test_single_simple_workflow(self):
        result = estimate_quote(form(serviceType="automatisation"))
        assert result.recommended == 800
        assert result.pack_level == "essentiel"
        assert result.breakdown.pack_name == "1 workflow (simple)"

    def test_identity_premium_style(self):
        result = estimate_quote(form(serviceType="identite", identityPackage="charte", identityStyle="luxury"))
        assert (result.min, result.recommended, result.max) == (920, 1150, 1380)

    def test_identity_complex_industry(self):
        result = estimate_quote(form(serviceType="identite", identityPackage="logo", identityIndustry="Finance"))
        assert result.recommended == 550

    def test_mobile(self):
        result = estimate_quote(form(
            serviceType="mobile", mobilePlatforms=["ios", "android"], mobileFeatures=["push-notif", "gps"],
            mobileDesignType="custom", mobileBackend="new",
        ))
        assert result.recommended == 10800
        assert (result.min, result.max) == (9180, 12420)
        assert result.breakdown.pack_name == "Application Mobile - 2 plateforme(s)"

    def test_ecommerce(self):
        result = estimate_quote(form(
            serviceType="ecommerce", ecommerceProductCount=100, ecommerceCatalogType="standard",
            ecommercePaymentMethods=["stripe", "card"], ecommerceFeatures=["inventory", "gift-cards"],
        ))
        assert result.recommended == 4200 + 700 + 400 + 200


class TestConfidence:
    def test_empty_form_is_low(self):
        assert estimate_quote(form()).confidence == "low"

    def test_complete_form_is_high(self):
        result = estimate_quote(form(
            serviceType="vitrine", pagesCount=6, urgency="normal", designStyle="moderne",
            budgetRange="2000-5000", standardPages=["accueil"], hasLogo=True, hasCharte=False,
        ))
        assert result.confidence == "high"
        assert confidence_label(result.confidence) == "Estimation fiable"


def test_format_price_groups_thousands():
    assert format_price(1850) == "1 850 €"
    assert format_price(12420) == "12 420 €"
    assert format_price(720) == "720 €"


def test_form_accepts_snake_case_and_ignores_unknown_keys():
    data = QuoteFormData.model_validate({"service_type": "mobile", "whatever": 1})
    assert data.service_type == "mobile"
