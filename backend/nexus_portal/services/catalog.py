"""
Static pricing catalog: public plans per category and the add-ons a sales
partner can attach when generating a quote.
"""

import re
from typing import List, Optional
from pydantic import BaseModel


class PricingPlan(BaseModel):
    name: str
    price: str
    description: str
    features: List[str]
    is_popular: bool = False
    button_text: Optional[str] = None
    additional_info: Optional[str] = None
    target_audience: Optional[str] = None


class Category(BaseModel):
    id: str
    label: str
    icon: str
    plans: List[PricingPlan]


class Addon(BaseModel):
    id: str
    name: str
    description: str
    price: int
    categories: List[str] = []


PRICING: List[Category] = [
    Category(id="sites", label="Sites Vitrine", icon="🌐", plans=[
        PricingPlan(
            name="Essential", price="890€",
            description="Votre présence digitale professionnelle clé en main.",
            features=[
                "Design responsive mobile-first",
                "Formulaire de contact sécurisé",
                "Optimisation SEO de base",
                "Certificat SSL inclus",
                "Hébergement rapide",
                "Support technique dédié",
            ],
            additional_info="Hébergement 50€/mois après 3 mois offerts",
            target_audience="Entrepreneurs & Indépendants",
        ),
        PricingPlan(
            name="Business", price="1 290€",
            description="L'excellence visuelle pour convertir vos visiteurs.",
            features=[
                "Site multi-pages immersion",
                "Animations fluides & interactives",
                "SEO avancé & performance top-tier",
                "Intégration réseaux & analytics",
                "Blog / Actualités dynamique",
                "Formation à la gestion du contenu",
                "Support prioritaire 24/7",
            ],
            is_popular=True,
            additional_info="Hébergement 90€/mois après 3 mois offerts",
            target_audience="PME & Entreprises en croissance",
        ),
        PricingPlan(
            name="Premium", price="1 990€",
            description="Une identité numérique unique et sur-mesure.",
            features=[
                "UI/UX Design exclusif (Figma)",
                "Fonctionnalités avancées custom",
                "Référencement local stratégique",
                "CMS personnalisé intuitif",
                "Maintenance préventive incluse",
                "Formation équipe complète",
                "Support VIP dédié",
            ],
            additional_info="Hébergement 150€/mois après 3 mois offerts",
            target_audience="Marques & Projets ambitieux",
        ),
    ]),
    Category(id="automatisation", label="Automatisation", icon="⚡", plans=[
        PricingPlan(
            name="Audit & Stratégie", price="490€",
            description="Comprendre vos goulots d'étranglement pour libérer du temps.",
            features=[
                "Analyse complète de vos processus",
                "Identification des tâches 'perte de temps'",
                "Plan d'action d'automatisation",
                "Recommandation d'outils (No-Code/IA)",
                "Estimation du ROI potentiel",
                "Restitution vidéo ou visio",
                "Déductible si devis validé",
            ],
            button_text="Réserver mon audit",
            additional_info="Prix fixe unique, sans engagement",
            target_audience="Pour savoir par où commencer",
        ),
        PricingPlan(
            name="Workflow Custom", price="Sur devis",
            description="Mise en place concrète de vos automatisations.",
            features=[
                "Design des scénarios (Make/Zapier/n8n)",
                "Connexion de vos outils (CRM, Mail, etc.)",
                "Tests & Recette complets",
                "Documentation technique",
                "Formation à l'utilisation",
                "Maintenance & Monitoring",
                "Support réactif inclus",
            ],
            is_popular=True,
            additional_info="Tarif selon complexité du workflow",
            target_audience="Pour gagner des heures chaque semaine",
        ),
    ]),
    Category(id="webapp", label="Applications Web", icon="💻", plans=[
        PricingPlan(
            name="MVP Starter", price="Dès 5k€",
            description="Lancez votre idée rapidement pour tester le marché.",
            features=[
                "Fonctionnalités essentielles (MVP)",
                "Interface utilisateur propre",
                "Base de données sécurisée",
                "Authentification utilisateurs",
                "Hébergement cloud scalable",
                "Code maintenable & évolutif",
            ],
            additional_info="Délai moyen : 4 à 6 semaines",
            target_audience="Startups & Nouveaux projets",
        ),
        PricingPlan(
            name="SaaS & Platform", price="Sur devis",
            description="Une solution robuste pour votre business model.",
            features=[
                "Architecture technique avancée",
                "Tableaux de bord complexes",
                "Paiements (Stripe/LemonSqueezy)",
                "Emails transactionnels & Notifs",
                "API & Webhooks",
                "Tests unitaires & E2E",
                "Support & SLA garantis",
            ],
            is_popular=True,
            target_audience="Plateformes SaaS & Outils métiers",
        ),
    ]),
    Category(id="mobile", label="Applications Mobiles", icon="📱", plans=[
        PricingPlan(
            name="App Hybride", price="Dès 4k€",
            description="Une app performante iOS & Android à coût maîtrisé.",
            features=[
                "Technologie React Native / Expo",
                "Code unique pour 2 plateformes",
                "Design adaptatif natif",
                "Notifications push",
                "Publication Stores incluse",
                "Maintenance simplifiée",
            ],
            target_audience="Le meilleur rapport qualité/prix",
        ),
        PricingPlan(
            name="App Native / Complexe", price="Sur devis",
            description="Performance maximale et fonctionnalités avancées.",
            features=[
                "Architecture complexe sur-mesure",
                "Utilisation capteurs (GPS, Caméra...)",
                "Mode hors-ligne avancé",
                "Bluetooth / IoT",
                "Animations natives 60fps",
                "Analytics & Tracking poussés",
            ],
            is_popular=True,
            target_audience="Projets techniques ambitieux",
        ),
    ]),
    Category(id="identite", label="Identité Visuelle", icon="🎨", plans=[
        PricingPlan(
            name="Logo & Basics", price="Dès 990€",
            description="Les fondations solides de votre image de marque.",
            features=[
                "Création de Logo (3 pistes)",
                "Déclinaisons (Noir/Blanc, Favicon)",
                "Palette de couleurs & Typos",
                "Cartes de visite design",
                "Cession des droits incluse",
            ],
            target_audience="Pour démarrer pro",
        ),
        PricingPlan(
            name="Branding 360", price="Sur devis",
            description="Un univers de marque complet et cohérent.",
            features=[
                "Charte graphique complète",
                "Brand Book & Guidelines",
                "Templates Réseaux Sociaux",
                "Signatures email & Papeterie",
                "Illustrations ou Iconographie",
                "Direction artistique shooting",
            ],
            is_popular=True,
            target_audience="Pour une image inoubliable",
        ),
    ]),
]

ADDONS: List[Addon] = [
    Addon(id="seo-master", name="Rédaction & SEO Advanced", price=450, categories=["sites"],
          description="Optimisation complète du contenu pour les moteurs de recherche."),
    Addon(id="training-admin", name="Formation Administration", price=150, categories=["sites"],
          description="1h de formation pour apprendre à gérer votre site."),
    Addon(id="maintenance-yearly", name="Maintenance Annuelle", price=400, categories=["sites"],
          description="Mises à jour, sauvegardes et sécurité pendant 1 an."),
    Addon(id="auto-invoice", name="Générateur de devis et facture", price=500, categories=["automatisation"],
          description="Création automatique de vos documents comptables."),
    Addon(id="auto-reminder", name="Relance client automatique", price=350, categories=["automatisation"],
          description="Séquence emailing pour relancer les impayés/devis."),
    Addon(id="auto-crm", name="Connexion CRM", price=400, categories=["automatisation"],
          description="Synchronisation bidirectionnelle avec votre CRM."),
    Addon(id="webapp-payment", name="Module de Paiement", price=800, categories=["webapp"],
          description="Intégration Stripe/Paypal sécurisée."),
    Addon(id="webapp-admin", name="Panel Admin Avancé", price=1200, categories=["webapp"],
          description="Gestion complète des données et utilisateurs."),
    Addon(id="webapp-auth", name="Système Comptes Utilisateurs", price=600, categories=["webapp"],
          description="Inscription, Connexion, Profils, Sécurité."),
    Addon(id="ecom-import", name="Import Catalogue CSV", price=400, categories=["ecommerce"],
          description="Importation en masse de vos produits."),
    Addon(id="ecom-blog", name="Blog Intégré", price=300, categories=["ecommerce"],
          description="Pour votre content marketing et SEO."),
    Addon(id="ecom-loyalty", name="Programme de Fidélité", price=500, categories=["ecommerce"],
          description="Points récompenses et codes promo automatiques."),
    Addon(id="mobile-publish", name="Publication Stores", price=600, categories=["mobile"],
          description="Gestion des comptes et validation Apple/Google."),
    Addon(id="mobile-push", name="Notifications Push", price=450, categories=["mobile"],
          description="Envoi de notifications ciblées aux utilisateurs."),
    Addon(id="mobile-offline", name="Mode Hors-ligne", price=800, categories=["mobile"],
          description="Fonctionnement de l'app sans connexion internet."),
    Addon(id="brand-guide", name="Brand Guide PDF", price=400, categories=["identite"],
          description="Document complet des normes graphiques."),
    Addon(id="social-kit", name="Pack Réseaux Sociaux", price=300, categories=["identite"],
          description="Bannières et templates de posts (Insta/LinkedIn)."),
    Addon(id="print-assets", name="Supports Imprimés", price=250, categories=["identite"],
          description="Design de cartes de visite, flyers, papier à en-tête."),
    Addon(id="content", name="Création de Contenu", price=450, categories=["sites", "ecommerce", "webapp"],
          description="Rédaction optimisée des textes de votre site."),
    Addon(id="legal", name="Pack Légal (RGPD)", price=250, categories=["sites", "ecommerce", "webapp", "mobile"],
          description="Mise en conformité, mentions légales, cookie bar."),
    Addon(id="booking", name="Module de Réservation", price=300, categories=["sites", "webapp"],
          description="Système de prise de rendez-vous en ligne (Calendly/Cal.com)."),
]

_PRICE_RE = re.compile(r"(\d[\d\s]*?)\s*([kK])?€")


def get_category(category_id: str) -> Optional[Category]:
    return next((c for c in PRICING if c.id == category_id), None)


def get_plan(category: Category, plan_name: str) -> Optional[PricingPlan]:
    return next((p for p in category.plans if p.name == plan_name), None)


def addons_for(category_id: str) -> List[Addon]:
    return [a for a in ADDONS if not a.categories or category_id in a.categories]


def parse_price(price: str) -> Optional[int]:
    """
    Starting amount of a display price: '1 290€' -> 1290, 'Dès 5k€' -> 5000.
    Plans priced 'Sur devis' carry no amount and give None.
    """
    match = _PRICE_RE.search(price or "")
    if not match:
        return None
    amount = int(re.sub(r"\s", "", match.group(1)))
    return amount * 1000 if match.group(2) else amount
