from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

SEVERITIES = ("None", "Medium", "High")


@dataclass(frozen=True)
class DiseaseCatalogEntry:
    name: str
    symptoms: str
    treatment: str
    severity: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "symptoms": self.symptoms,
            "treatment": self.treatment,
            "severity": self.severity,
        }


# Order is significant: it breaks confidence ties and names the fallback entry.
COTTON_DISEASES: Tuple[DiseaseCatalogEntry, ...] = (
    DiseaseCatalogEntry(
        name="Cotton Leaf Curl Disease",
        symptoms="Leaf curling, yellowing, stunted growth, reduced fiber quality",
        treatment="Use resistant varieties, control whitefly vectors, apply systemic insecticides",
        severity="High",
    ),
    DiseaseCatalogEntry(
        name="Bacterial Blight",
        symptoms="Water-soaked spots on leaves, angular lesions, defoliation",
        treatment="Copper-based bactericides, crop rotation, resistant varieties",
        severity="Medium",
    ),
    DiseaseCatalogEntry(
        name="Fusarium Wilt",
        symptoms="Yellowing of lower leaves, wilting, vascular discoloration",
        treatment="Resistant varieties, soil fumigation, proper drainage",
        severity="High",
    ),
    DiseaseCatalogEntry(
        name="Healthy Cotton",
        symptoms="No visible symptoms, normal growth pattern",
        treatment="Continue regular monitoring and preventive care",
        severity="None",
    ),
)

# Reference material for other crops; never used for classification.
GENERAL_PLANT_DISEASES: List[Dict[str, object]] = [
    {
        "crop": "Tomato",
        "diseases": [
            {
                "name": "Late Blight",
                "symptoms": "Dark lesions on leaves and fruits, white fungal growth",
                "treatment": "Fungicides, proper spacing, avoid overhead watering",
            },
            {
                "name": "Early Blight",
                "symptoms": "Concentric ring spots on leaves, yellowing",
                "treatment": "Crop rotation, fungicide application, resistant varieties",
            },
        ],
    },
    {
        "crop": "Wheat",
        "diseases": [
            {
                "name": "Rust Disease",
                "symptoms": "Orange/brown pustules on leaves and stems",
                "treatment": "Fungicide application, resistant varieties, proper timing",
            },
            {
                "name": "Powdery Mildew",
                "symptoms": "White powdery coating on leaves",
                "treatment": "Fungicides, adequate spacing, sulfur applications",
            },
        ],
    },
    {
        "crop": "Rice",
        "diseases": [
            {
                "name": "Blast Disease",
                "symptoms": "Diamond-shaped lesions on leaves, neck rot",
                "treatment": "Silicon application, resistant varieties, water management",
            },
            {
                "name": "Bacterial Leaf Blight",
                "symptoms": "Water-soaked lesions, yellowing margins",
                "treatment": "Copper bactericides, seed treatment, balanced nutrition",
            },
        ],
    },
]


def find_entry(name: str,
               catalog: Sequence[DiseaseCatalogEntry] = COTTON_DISEASES) -> Optional[DiseaseCatalogEntry]:
    for entry in catalog:
        if entry.name == name:
            return entry
    return None


def healthy_entry(catalog: Sequence[DiseaseCatalogEntry] = COTTON_DISEASES) -> Optional[DiseaseCatalogEntry]:
    for entry in catalog:
        if entry.severity == "None":
            return entry
    return None
