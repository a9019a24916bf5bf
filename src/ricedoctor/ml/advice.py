"""Treatment advice for each diagnosis label."""

from __future__ import annotations

from types import MappingProxyType

DEFAULT_ADVICE = "Please consult an agricultural expert."

DISEASE_ADVICE = MappingProxyType(
    {
        "Bacterial Leaf Blight": "Treatment: Use copper-based sprays. Avoid excessive Nitrogen.",
        "Brown Spot": "Treatment: Improve soil fertility (Potassium/Calcium). Treat seeds.",
        "Leaf Blast": "Treatment: Apply Tricyclazole. Maintain water level.",
        "Leaf Scald": "Treatment: Use clean seeds. Avoid high Nitrogen.",
        "Sheath Blight": "Treatment: Apply Azoxystrobin. Reduce plant density.",
        "Healthy Rice Leaf": "Good News: Your crop looks healthy!",
        "NOT_A_RICE_LEAF": "Unknown: Please try a clearer photo.",
    }
)


def lookup_advice(label: str) -> str:
    """Return the advice for ``label``, or a generic fallback for unknown labels."""
    return DISEASE_ADVICE.get(label, DEFAULT_ADVICE)
