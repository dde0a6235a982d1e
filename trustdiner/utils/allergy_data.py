"""
Canonical allergen and question vocabulary: single source of truth for the
review engine, the seeding script and the read layer.

Two vocabularies coexist:
  * client codes  : what the frontend sends and expects back (ALLERGEN_ORDER)
  * storage codes : what the `allergens` reference table holds (CANONICAL_ALLERGENS)
"""

# REQUIRED CLIENT ORDER: the frontend renders scores in exactly this order
ALLERGEN_ORDER = [
    "milk", "eggs", "peanuts", "tree_nuts", "gluten", "fish",
    "crustaceans", "molluscs", "soybeans", "sesame", "mustard",
    "celery", "sulfites", "lupin",
]

# Storage codes held by the allergens table
CANONICAL_ALLERGENS = [
    "milk", "eggs", "peanuts", "nuts", "gluten", "fish",
    "crustaceans", "molluscs", "soybeans", "sesame", "mustard",
    "celery", "sulphites", "lupin",
]

# Client code → storage code. Bidirectional: every pair round-trips.
CLIENT_TO_CANONICAL: dict[str, str] = {
    "tree_nuts": "nuts",
    "sulfites": "sulphites",
}

CANONICAL_TO_CLIENT: dict[str, str] = {v: k for k, v in CLIENT_TO_CANONICAL.items()}

# Retired client codes still sent by older app builds → current client code.
# Input only; never produced on the read path.
LEGACY_CLIENT_SYNONYMS: dict[str, str] = {
    "dairy": "milk",
    "egg": "eggs",
    "peanut": "peanuts",
    "nut": "tree_nuts",
    "soy": "soybeans",
    "soya": "soybeans",
    "shellfish": "crustaceans",
    "sulphites": "sulfites",
}

ALLERGEN_DISPLAY_NAMES: dict[str, str] = {
    "milk":        "Milk",
    "eggs":        "Eggs",
    "peanuts":     "Peanuts",
    "tree_nuts":   "Tree Nuts",
    "gluten":      "Gluten",
    "fish":        "Fish",
    "crustaceans": "Crustaceans",
    "molluscs":    "Molluscs",
    "soybeans":    "Soybeans",
    "sesame":      "Sesame",
    "mustard":     "Mustard",
    "celery":      "Celery",
    "sulfites":    "Sulphites",
    "lupin":       "Lupin",
}

# Default active question bank (code → prompt), version 1
DEFAULT_QUESTIONS: dict[str, str] = {
    "allergen_menu": "Did the restaurant have an allergen menu?",
    "staff_confident": "Were staff confident answering allergy questions?",
    "staff_notify_kitchen": "Did staff notify the kitchen about your allergy?",
    "kitchen_adjust": "Was the kitchen able to adjust dishes for you?",
    "separate_preparation_area": "Is there a separate preparation area?",
    "staff_allergy_trained": "Are staff trained in allergy handling?",
}

MIN_SCORE = 1
MAX_SCORE = 5

MODERATION_STATUSES = ("approved", "rejected")
