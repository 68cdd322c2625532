"""
backend/agenda/utils/weekdays.py

Presentation labels for weekday integers (0 = Sunday .. 6 = Saturday).
Not used by slot calculation.
"""

DAY_LABELS = {
    "fr": ["Dimanche", "Lundi", "Mardi", "Mercredi", "Jeudi", "Vendredi", "Samedi"],
    "en": ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"],
}
DEFAULT_LANG = "fr"


def weekday_label(day_of_week: int, lang: str = DEFAULT_LANG) -> str:
    """Full day name, falls back to French for unknown languages."""
    labels = DAY_LABELS.get(lang) or DAY_LABELS[DEFAULT_LANG]
    return labels[day_of_week % 7]
