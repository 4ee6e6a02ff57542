"""
Quote price estimation from the wizard answers.

Pricing grid 2025: website packs chosen by page count, dedicated formulas for
mobile, e-commerce, visual identity and automation, then feature/option costs
and an urgency multiplier. Amounts are whole euros.
"""

import math
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

PackLevel = Literal["essentiel", "standard", "premium", "enterprise"]
Confidence = Literal["low", "medium", "high"]


class Pack(BaseModel):
    name: str
    min_pages: int
    max_pages: int
    base_min: int
    base_max: int
    base_recommended: int


PACKS = {
    "essentiel": Pack(name="Pack Essentiel", min_pages=1, max_pages=3, base_min=600, base_max=1000, base_recommended=800),
    "standard": Pack(name="Pack Standard", min_pages=4, max_pages=10, base_min=1200, base_max=2500, base_recommended=1850),
    "premium": Pack(name="Pack Premium", min_pages=11, max_pages=20, base_min=2800, base_max=5500, base_recommended=4000),
    "enterprise": Pack(name="Application Web", min_pages=20, max_pages=999, base_min=3500, base_max=15000, base_recommended=7500),
}

OPTION_PRICES = {
    "extra_page": 80,
    "multilingue": 250,
    "seo": 300,
    "performance": 400,
    "accessibility": 600,
    "maintenance": 250,
}

FEATURE_UNIT_PRICES = {
    "forms": 150,
    "auth": 400,
    "ecommerce": 600,
    "content": 300,
    "integrations": 500,
}

URGENCY_MULTIPLIERS = {
    "urgent": 1.25,
    "normal": 1.0,
    "flexible": 0.90,
}

ECOMMERCE_FEATURE_PRICES = {
    "inventory": 400,
    "variants": 300,
    "shipping-calc": 300,
    "shipping-tracking": 400,
    "orders": 300,
    "analytics": 500,
    "customer-account": 400,
    "wishlist": 200,
    "reviews": 300,
    "promo-codes": 350,
}
CATALOG_MULTIPLIERS = {"simple": 1.0, "standard": 1.2, "advanced": 1.4}

MOBILE_ADVANCED_FEATURES = {"ar", "biometric", "bluetooth", "nfc", "in-app-purchase", "subscription"}
MOBILE_MEDIUM_FEATURES = {"push-notif", "payment", "social-login", "messaging"}
MOBILE_BASIC_FEATURES = {"offline", "camera", "gps", "share"}

IDENTITY_PACKAGE_PRICES = {
    "logo": (400, 500, 600),
    "charte": (800, 1000, 1200),
    "complete": (1500, 1750, 2000),
}
IDENTITY_PREMIUM_STYLES = {"luxury", "creative"}
IDENTITY_COMPLEX_INDUSTRIES = ("tech", "technologie", "healthcare", "finance")

AUTOMATION_COMPLEX_INTEGRATIONS = {"stripe", "hubspot", "supabase", "mysql"}
AUTOMATION_COMPLEXITY_MULTIPLIERS = {"simple": 1.0, "medium": 1.3, "complex": 1.6}

CONFIDENCE_LABELS = {
    "low": "Estimation approximative",
    "medium": "Estimation indicative",
    "high": "Estimation fiable",
}


class FeatureSelection(BaseModel):
    forms: List[str] = []
    auth: List[str] = []
    ecommerce: List[str] = []
    content: List[str] = []
    integrations: List[str] = []


class QuoteFormData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    service_type: str = Field("", alias="serviceType")
    is_refonte: bool = Field(False, alias="isRefonte")
    urgency: str = ""

    pages_count: int = Field(5, alias="pagesCount", ge=0)
    standard_pages: List[str] = Field([], alias="standardPages")
    multi_language: bool = Field(False, alias="multiLanguage")
    languages: List[str] = []
    features: FeatureSelection = FeatureSelection()
    has_logo: Optional[bool] = Field(None, alias="hasLogo")
    has_charte: Optional[bool] = Field(None, alias="hasCharte")
    design_style: str = Field("", alias="designStyle")
    seo_priority: bool = Field(False, alias="seoPriority")
    performance_critical: bool = Field(False, alias="performanceCritical")
    accessibility: bool = False
    budget_range: str = Field("", alias="budgetRange")
    maintenance: bool = False
    launch_date: str = Field("", alias="launchDate")

    automation_workflows: Optional[int] = Field(None, alias="automationWorkflows", ge=1)
    automation_complexity: Optional[Literal["simple", "medium", "complex"]] = Field(None, alias="automationComplexity")
    automation_integrations: List[str] = Field([], alias="automationIntegrations")
    automation_support: bool = Field(False, alias="automationSupport")

    identity_package: Optional[Literal["logo", "charte", "complete"]] = Field(None, alias="identityPackage")
    identity_style: Optional[str] = Field(None, alias="identityStyle")
    identity_industry: Optional[str] = Field(None, alias="identityIndustry")

    mobile_platforms: List[str] = Field([], alias="mobilePlatforms")
    mobile_features: List[str] = Field([], alias="mobileFeatures")
    mobile_design_type: Literal["native", "custom"] = Field("native", alias="mobileDesignType")
    mobile_backend: Literal["existing", "new", "none"] = Field("none", alias="mobileBackend")

    ecommerce_product_count: Optional[int] = Field(None, alias="ecommerceProductCount", ge=0)
    ecommerce_catalog_type: Literal["simple", "standard", "advanced"] = Field("standard", alias="ecommerceCatalogType")
    ecommerce_payment_methods: List[str] = Field([], alias="ecommercePaymentMethods")
    ecommerce_multi_currency: bool = Field(False, alias="ecommerceMultiCurrency")
    ecommerce_features: List[str] = Field([], alias="ecommerceFeatures")


class PriceBreakdown(BaseModel):
    pack_base: int
    pack_name: str
    extra_pages: int
    features: int
    options: int
    urgency_multiplier: float


class QuoteEstimate(BaseModel):
    min: int
    max: int
    recommended: int
    breakdown: PriceBreakdown
    confidence: Confidence
    pack_level: PackLevel


class _Range(BaseModel):
    base_min: int
    base_max: int
    base_recommended: int


def _round(value: float) -> int:
    # half-up, matching the front-end's rounding of displayed estimates
    return int(math.floor(value + 0.5))


def _spread(subtotal: int) -> _Range:
    return _Range(base_min=_round(subtotal * 0.85), base_max=_round(subtotal * 1.15), base_recommended=subtotal)


def _urgency(form: QuoteFormData) -> float:
    return URGENCY_MULTIPLIERS.get(form.urgency, 1.0)


def pages_or_default(form: QuoteFormData) -> int:
    return form.pages_count or 5


def determine_pack_level(form: QuoteFormData) -> PackLevel:
    if form.service_type in ("webapp", "mobile"):
        return "enterprise"
    pages = pages_or_default(form)
    if pages <= PACKS["essentiel"].max_pages:
        return "essentiel"
    if pages <= PACKS["standard"].max_pages:
        return "standard"
    return "premium"


def features_cost(form: QuoteFormData) -> int:
    selected = form.features.model_dump()
    return sum(len(selected[group]) * price for group, price in FEATURE_UNIT_PRICES.items())


def options_cost(form: QuoteFormData) -> int:
    total = 0
    if form.multi_language and len(form.languages) > 1:
        total += OPTION_PRICES["multilingue"] * (len(form.languages) - 1)
    if form.maintenance:
        total += OPTION_PRICES["maintenance"]
    if form.seo_priority:
        total += OPTION_PRICES["seo"]
    if form.performance_critical:
        total += OPTION_PRICES["performance"]
    if form.accessibility:
        total += OPTION_PRICES["accessibility"]
    return total


def confidence_for(form: QuoteFormData) -> Confidence:
    answered = [
        bool(form.service_type),
        form.pages_count > 0,
        bool(form.urgency),
        bool(form.design_style),
        bool(form.budget_range),
        len(form.standard_pages) > 0,
        features_cost(form) > 0,
        form.has_logo is not None,
        form.has_charte is not None,
        bool(form.launch_date),
    ]
    completeness = sum(answered) / len(answered)
    if completeness >= 0.7:
        return "high"
    if completeness >= 0.4:
        return "medium"
    return "low"


def ecommerce_price(form: QuoteFormData) -> _Range:
    products = form.ecommerce_product_count or 50
    if products <= 50:
        base = 2000
    elif products <= 200:
        base = 3500
    elif products <= 500:
        base = 5500
    else:
        base = 7000
    base = _round(base * CATALOG_MULTIPLIERS[form.ecommerce_catalog_type])

    payment = 0
    methods = set(form.ecommerce_payment_methods)
    if methods & {"stripe", "paypal"}:
        payment += 700
    elif "card" in methods:
        payment += 500
    if form.ecommerce_multi_currency:
        payment += 500

    features = sum(ECOMMERCE_FEATURE_PRICES.get(f, 200) for f in form.ecommerce_features)
    return _spread(base + payment + features)


def mobile_price(form: QuoteFormData) -> _Range:
    base = 4000
    if len(form.mobile_platforms) >= 2:
        base += 2000 * (len(form.mobile_platforms) - 1)

    features = 0
    for feature in form.mobile_features:
        if feature in MOBILE_ADVANCED_FEATURES:
            features += 500
        elif feature in MOBILE_MEDIUM_FEATURES:
            features += 300
        elif feature in MOBILE_BASIC_FEATURES:
            features += 200

    design = 1.2 if form.mobile_design_type == "custom" else 1.0
    backend = 3000 if form.mobile_backend == "new" else 0
    return _spread(_round((base + features) * design + backend))


def identity_price(form: QuoteFormData) -> _Range:
    low, recommended, high = IDENTITY_PACKAGE_PRICES[form.identity_package or "logo"]
    multiplier = 1.0
    if form.identity_style in IDENTITY_PREMIUM_STYLES:
        multiplier = 1.15
    industry = (form.identity_industry or "").lower()
    if industry and any(term in industry for term in IDENTITY_COMPLEX_INDUSTRIES):
        multiplier *= 1.1
    return _Range(
        base_min=_round(low * multiplier),
        base_max=_round(high * multiplier),
        base_recommended=_round(recommended * multiplier),
    )


def _estimate_automation(form: QuoteFormData) -> QuoteEstimate:
    workflows = form.automation_workflows or 1
    base = 800 if workflows == 1 else 1500 if workflows <= 3 else 2500
    complexity = form.automation_complexity or "simple"
    base = _round(base * AUTOMATION_COMPLEXITY_MULTIPLIERS[complexity])

    integrations = sum(
        200 if name in AUTOMATION_COMPLEX_INTEGRATIONS else 100
        for name in form.automation_integrations
    )
    support = 250 if form.automation_support else 0
    subtotal = base + integrations + support
    urgency = _urgency(form)

    return QuoteEstimate(
        min=_round(subtotal * 0.85 * urgency),
        max=_round(subtotal * 1.15 * urgency),
        recommended=_round(subtotal * urgency),
        breakdown=PriceBreakdown(
            pack_base=base,
            pack_name=f"{workflows} workflow{'s' if workflows > 1 else ''} ({complexity})",
            extra_pages=0,
            features=integrations,
            options=support,
            urgency_multiplier=urgency,
        ),
        confidence="high",
        pack_level={"simple": "essentiel", "medium": "standard"}.get(complexity, "premium"),
    )


def estimate_quote(form: QuoteFormData) -> QuoteEstimate:
    if form.service_type == "automatisation":
        return _estimate_automation(form)

    pack_level = determine_pack_level(form)
    pages = pages_or_default(form)
    extra_pages_cost = 0

    if form.service_type == "mobile":
        pricing = mobile_price(form)
        pack_name = f"Application Mobile - {len(form.mobile_platforms) or 1} plateforme(s)"
    elif form.service_type == "ecommerce":
        pricing = ecommerce_price(form)
        pack_name = f"E-commerce - {form.ecommerce_product_count or 50} produits"
    elif form.service_type == "identite":
        pricing = identity_price(form)
        pack_name = f"Identité Visuelle - {form.identity_package or 'logo'}"
    else:
        pack = PACKS[pack_level]
        pricing = _Range(base_min=pack.base_min, base_max=pack.base_max, base_recommended=pack.base_recommended)
        pack_name = pack.name
        if pack_level != "enterprise" and pages > pack.max_pages:
            extra_pages_cost = (pages - pack.max_pages) * OPTION_PRICES["extra_page"]

    feature_total = features_cost(form)
    option_total = options_cost(form)
    urgency = _urgency(form)
    subtotal = pricing.base_recommended + extra_pages_cost + feature_total + option_total

    return QuoteEstimate(
        min=_round((pricing.base_min + extra_pages_cost + feature_total * 0.7 + option_total) * urgency),
        max=_round((pricing.base_max + extra_pages_cost + feature_total * 1.3 + option_total) * urgency),
        recommended=_round(subtotal * urgency),
        breakdown=PriceBreakdown(
            pack_base=pricing.base_recommended,
            pack_name=pack_name,
            extra_pages=extra_pages_cost,
            features=feature_total,
            options=option_total,
            urgency_multiplier=urgency,
        ),
        confidence=confidence_for(form),
        pack_level=pack_level,
    )


def format_price(amount: float) -> str:
    """French euro formatting without decimals, e.g. '1 850 €'."""
    return f"{_round(amount):,}".replace(",", " ") + " €"


def confidence_label(confidence: Confidence) -> str:
    return CONFIDENCE_LABELS[confidence]
