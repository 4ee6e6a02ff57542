"""
Quote wizard configuration: which steps the multi-step quote form shows for
each service type, plus the option catalogs those steps render.
"""

from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Union


class ServiceType(str, Enum):
    VITRINE = "vitrine"
    WEBAPP = "webapp"
    MOBILE = "mobile"
    ECOMMERCE = "ecommerce"
    IDENTITE = "identite"
    AUTOMATISATION = "automatisation"

    @classmethod
    def parse(cls, tag: Union["ServiceType", str, None]) -> Optional["ServiceType"]:
        if isinstance(tag, cls):
            return tag
        try:
            return cls((tag or "").strip().lower())
        except ValueError:
            return None


class WizardStep(NamedTuple):
    id: str
    label: str
    component: str


SERVICE_STEP = WizardStep("service", "Service", "ServiceStep")
SUMMARY_STEP = WizardStep("summary", "Récapitulatif", "SummaryStep")

_SITE_STEPS = [
    SERVICE_STEP,
    WizardStep("structure", "Structure", "StructureStep"),
    WizardStep("features", "Fonctionnalités", "FeaturesStep"),
    WizardStep("design", "Design", "DesignStep"),
    WizardStep("technical", "Technique", "TechnicalStep"),
    SUMMARY_STEP,
]

WIZARD_CONFIGS: Dict[ServiceType, List[WizardStep]] = {
    ServiceType.VITRINE: _SITE_STEPS,
    ServiceType.WEBAPP: _SITE_STEPS,
    ServiceType.AUTOMATISATION: [
        SERVICE_STEP,
        WizardStep("automation-type", "Type", "AutomationTypeStep"),
        WizardStep("automation-integrations", "Intégrations", "AutomationIntegrationsStep"),
        WizardStep("automation-complexity", "Complexité", "AutomationComplexityStep"),
        SUMMARY_STEP,
    ],
    ServiceType.IDENTITE: [
        SERVICE_STEP,
        WizardStep("identity-package", "Package", "IdentityPackageStep"),
        WizardStep("identity-style", "Style", "IdentityStyleStep"),
        SUMMARY_STEP,
    ],
    ServiceType.MOBILE: [
        SERVICE_STEP,
        WizardStep("mobile-platforms", "Plateformes", "MobilePlatformsStep"),
        WizardStep("mobile-features", "Fonctionnalités", "MobileFeaturesStep"),
        WizardStep("mobile-design", "Design", "MobileDesignStep"),
        SUMMARY_STEP,
    ],
    ServiceType.ECOMMERCE: [
        SERVICE_STEP,
        WizardStep("ecommerce-catalog", "Catalogue", "EcommerceCatalogStep"),
        WizardStep("ecommerce-payment", "Paiement", "EcommercePaymentStep"),
        WizardStep("ecommerce-features", "Fonctionnalités", "EcommerceFeaturesStep"),
        SUMMARY_STEP,
    ],
}

DEFAULT_SERVICE_TYPE = ServiceType.VITRINE


def get_wizard_config(service_type: Union[ServiceType, str, None]) -> List[WizardStep]:
    """Steps for a service type; unknown tags get the vitrine flow."""
    parsed = ServiceType.parse(service_type) or DEFAULT_SERVICE_TYPE
    return list(WIZARD_CONFIGS[parsed])


def get_total_steps(service_type: Union[ServiceType, str, None]) -> int:
    return len(get_wizard_config(service_type))


def get_step_label(service_type: Union[ServiceType, str, None], step_index: int) -> str:
    """Label of the 1-based step, or '' when out of range."""
    steps = get_wizard_config(service_type)
    if 1 <= step_index <= len(steps):
        return steps[step_index - 1].label
    return ""


# ------------------------------------------------------------
# Option catalogs rendered by the service-specific steps
# ------------------------------------------------------------

AUTOMATION_TYPES = {
    "administrative": {
        "label": "Gestion Administrative",
        "options": [
            {"value": "devis_auto", "label": "Devis automatiques", "description": "Génération et envoi automatique de devis"},
            {"value": "facturation_auto", "label": "Facturation automatique", "description": "Création et envoi de factures"},
            {"value": "reporting", "label": "Reporting automatique", "description": "Export et envoi de rapports périodiques"},
            {"value": "archivage", "label": "Archivage documents", "description": "Organisation automatique dans Drive/Dropbox"},
        ],
    },
    "marketing": {
        "label": "Marketing & Communication",
        "options": [
            {"value": "email_marketing", "label": "Email marketing", "description": "Campagnes email automatisées"},
            {"value": "sms_auto", "label": "SMS automatiques", "description": "Envoi de SMS (confirmations, rappels)"},
            {"value": "lead_nurturing", "label": "Lead nurturing", "description": "Séquences email pour prospects"},
            {"value": "social_posting", "label": "Publication réseaux sociaux", "description": "Planification et auto-post"},
        ],
    },
    "integrations": {
        "label": "Intégrations & Sync",
        "options": [
            {"value": "crm_sync", "label": "Sync CRM", "description": "Synchronisation avec CRM externe"},
            {"value": "backup_auto", "label": "Backup automatique", "description": "Sauvegarde quotidienne base de données"},
            {"value": "compta_sync", "label": "Sync comptabilité", "description": "Export vers logiciel comptable"},
            {"value": "notifications", "label": "Notifications équipe", "description": "Alertes Slack/Discord"},
        ],
    },
    "tasks": {
        "label": "Tâches Répétitives",
        "options": [
            {"value": "rappels_auto", "label": "Rappels automatiques", "description": "Relances factures, RDV"},
            {"value": "classement_auto", "label": "Classement automatique", "description": "Organisation emails/fichiers"},
            {"value": "content_generation", "label": "Génération contenu AI", "description": "Posts/articles automatiques"},
        ],
    },
}

INTEGRATION_OPTIONS = [
    {"value": "gmail", "label": "Gmail", "category": "Email"},
    {"value": "outlook", "label": "Outlook", "category": "Email"},
    {"value": "stripe", "label": "Stripe", "category": "Paiement"},
    {"value": "paypal", "label": "PayPal", "category": "Paiement"},
    {"value": "google_sheets", "label": "Google Sheets", "category": "Stockage"},
    {"value": "google_drive", "label": "Google Drive", "category": "Stockage"},
    {"value": "dropbox", "label": "Dropbox", "category": "Stockage"},
    {"value": "hubspot", "label": "HubSpot", "category": "CRM"},
    {"value": "notion", "label": "Notion", "category": "Outils"},
    {"value": "airtable", "label": "Airtable", "category": "Outils"},
    {"value": "slack", "label": "Slack", "category": "Communication"},
    {"value": "discord", "label": "Discord", "category": "Communication"},
    {"value": "supabase", "label": "Supabase", "category": "Database"},
    {"value": "mysql", "label": "MySQL", "category": "Database"},
]

IDENTITY_PACKAGES = [
    {
        "value": "logo",
        "label": "Logo Essentiel",
        "price_range": "400€ - 600€",
        "features": ["Logo principal (3 propositions)", "Déclinaison N&B", "Fichiers PNG, JPG, SVG", "2 révisions incluses"],
    },
    {
        "value": "charte",
        "label": "Logo + Charte",
        "price_range": "800€ - 1 200€",
        "features": ["Tout Package Essentiel", "Charte graphique complète", "Guidelines PDF", "Carte de visite + papier en-tête"],
    },
    {
        "value": "complete",
        "label": "Identité Complète",
        "price_range": "1 500€ - 2 000€",
        "features": ["Tout Package Charte", "Kit réseaux sociaux", "Signature email", "Templates PowerPoint/Canva", "Mockups produits"],
    },
]

IDENTITY_STYLES = [
    {"value": "minimal", "label": "Minimaliste", "description": "Épuré, simple, moderne"},
    {"value": "vintage", "label": "Vintage/Rétro", "description": "Nostalgique, intemporel"},
    {"value": "modern", "label": "Moderne/Tech", "description": "Futuriste, innovant"},
    {"value": "corporate", "label": "Corporate/Pro", "description": "Sérieux, professionnel"},
    {"value": "creative", "label": "Créatif/Artistique", "description": "Original, expressif"},
    {"value": "luxury", "label": "Luxe/Premium", "description": "Élégant, haut de gamme"},
]

STEP_OPTIONS = {
    "automation-type": AUTOMATION_TYPES,
    "automation-integrations": INTEGRATION_OPTIONS,
    "identity-package": IDENTITY_PACKAGES,
    "identity-style": IDENTITY_STYLES,
}
