"""
Registry of recognized country names.

Names are kept in a fixed, alphabetical enumeration order. Country extraction
scans in this order and returns the first registry entry found in the text,
so "Is Peru east of Brazil?" yields "Brazil".
"""
import random
import re
from typing import Iterator, List, Optional, Pattern, Sequence, Tuple

COUNTRIES: Tuple[str, ...] = (
    "Afghanistan", "Albania", "Algeria", "Andorra", "Angola",
    "Argentina", "Armenia", "Australia", "Austria", "Azerbaijan",
    "Bahamas", "Bahrain", "Bangladesh", "Barbados", "Belarus",
    "Belgium", "Belize", "Benin", "Bhutan", "Bolivia",
    "Botswana", "Brazil", "Brunei", "Bulgaria", "Burkina Faso",
    "Burundi", "Cambodia", "Cameroon", "Canada", "Chad",
    "Chile", "China", "Colombia", "Comoros", "Costa Rica",
    "Croatia", "Cuba", "Cyprus", "Czech Republic", "Denmark",
    "Djibouti", "Dominica", "Dominican Republic", "Ecuador", "Egypt",
    "El Salvador", "Estonia", "Ethiopia", "Fiji", "Finland",
    "France", "Gabon", "Gambia", "Georgia", "Germany",
    "Ghana", "Greece", "Grenada", "Guatemala", "Guinea",
    "Guyana", "Haiti", "Honduras", "Hungary", "Iceland",
    "India", "Indonesia", "Iran", "Iraq", "Ireland",
    "Israel", "Italy", "Jamaica", "Japan", "Jordan",
    "Kazakhstan", "Kenya", "Kiribati", "Kuwait", "Laos",
    "Latvia", "Lebanon", "Lesotho", "Liberia", "Libya",
    "Liechtenstein", "Lithuania", "Luxembourg", "Madagascar", "Malawi",
    "Malaysia", "Maldives", "Mali", "Malta", "Mexico",
    "Monaco", "Mongolia", "Morocco", "Mozambique", "Myanmar",
    "Namibia", "Nauru", "Nepal", "Netherlands", "New Zealand",
    "Nicaragua", "Niger", "Nigeria", "Norway", "Oman",
    "Pakistan", "Palau", "Panama", "Paraguay", "Peru",
    "Philippines", "Poland", "Portugal", "Qatar", "Romania",
    "Russia", "Rwanda", "Saint Kitts and Nevis", "Saint Lucia", "Saint Vincent and the Grenadines",
    "Samoa", "San Marino", "Sao Tome and Principe", "Saudi Arabia", "Senegal",
    "Serbia", "Seychelles", "Sierra Leone", "Singapore", "Slovakia",
    "Slovenia", "Somalia", "South Africa", "South Korea", "Spain",
    "Sri Lanka", "Sudan", "Suriname", "Sweden", "Switzerland",
    "Syria", "Taiwan", "Tajikistan", "Tanzania", "Thailand",
    "Togo", "Tonga", "Trinidad and Tobago", "Tunisia", "Turkey",
    "Turkmenistan", "Tuvalu", "Uganda", "Ukraine", "United Arab Emirates",
    "United Kingdom", "United States", "Uruguay", "Uzbekistan", "Vanuatu",
    "Vatican City", "Venezuela", "Vietnam", "Yemen", "Zambia",
    "Zimbabwe",
)


class CountryRegistry:
    """Immutable, ordered set of country names with case-insensitive lookups."""

    def __init__(self, names: Sequence[str] = COUNTRIES):
        self._names: Tuple[str, ...] = tuple(names)
        self._lookup = {name.lower() for name in self._names}
        # Whole-word patterns, compiled once in enumeration order
        self._patterns: List[Tuple[str, Pattern]] = [
            (name, re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE))
            for name in self._names
        ]

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, text: object) -> bool:
        return isinstance(text, str) and self.is_country(text)

    def is_country(self, text: str) -> bool:
        """Check whether text is exactly a known country name, ignoring case."""
        if not text:
            return False
        return text.strip().lower() in self._lookup

    def extract_country(self, text: str) -> Optional[str]:
        """
        Find the first registry country mentioned in text.

        Args:
            text: Free text such as a question

        Returns:
            The registry spelling of the first matching country in
            enumeration order, or None if no country is mentioned
        """
        if not text:
            return None
        for name, pattern in self._patterns:
            if pattern.search(text):
                return name
        return None

    def sample_distractors(
        self,
        correct_answer: str,
        count: int = 3,
        rng: Optional[random.Random] = None
    ) -> List[str]:
        """
        Pick distinct countries to use as wrong answers.

        Args:
            correct_answer: Answer to exclude, compared case-insensitively
            count: Number of distractors wanted
            rng: Random generator used for sampling

        Returns:
            List of up to count country names, sampled without replacement
        """
        excluded = (correct_answer or "").strip().lower()
        candidates = [name for name in self._names if name.lower() != excluded]
        return (rng or random).sample(candidates, min(count, len(candidates)))
