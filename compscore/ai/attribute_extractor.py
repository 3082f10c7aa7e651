"""Rule-based attribute extraction from comp listing titles."""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from compscore.models import CandidateRecord

logger = logging.getLogger(__name__)


class AttributeExtractor:
    """
    Extract variant attributes from marketplace titles.

    Fills gaps in a comp's extracted_data so the variant validator has
    fields to compare against. Values already present are never replaced.

    Uses rule-based extraction only:
    - Storage capacity (256GB, 1TB)
    - Card grade (PSA 10, BGS 9.5, CGC 9.8)
    - Size (Size 10, sz 10.5, W32 L34)
    - Edition keywords, release year, color
    - Watch reference numbers
    """

    STORAGE_PATTERN = re.compile(r'\b(\d{2,4})\s*(GB|TB)\b', re.IGNORECASE)

    GRADE_PATTERN = re.compile(r'\b(PSA|BGS|CGC|SGC|BECKETT)\s*(\d{1,2}(?:\.\d)?)\b', re.IGNORECASE)

    SIZE_PATTERNS = [
        re.compile(r'\b(?:size|sz)\s*:?\s*(\d{1,2}(?:\.5)?)\b', re.IGNORECASE),
        re.compile(r'\b(W\d{2}\s*L\d{2})\b', re.IGNORECASE),
        re.compile(r'\b(\d{1,2}(?:\.5)?)\s*(?:M|W|US)\b'),
        re.compile(r'\b(XXS|XS|S|M|L|XL|XXL|XXXL)\b'),
    ]

    EDITION_KEYWORDS = [
        "limited edition", "special edition", "collector's edition", "collectors edition",
        "digital edition", "disc edition", "anniversary edition", "1st edition", "first edition",
        "shadowless", "unlimited", "retro", "og", "pro", "slim", "oled", "lite",
    ]

    YEAR_PATTERN = re.compile(r'\b(19[5-9]\d|20[0-4]\d)\b')

    REF_NUMBER_PATTERN = re.compile(r'\b(?:ref\.?|reference)\s*:?\s*([A-Z0-9]{3,}[/-]?[A-Z0-9]*)\b', re.IGNORECASE)

    COLOR_PATTERN = re.compile(
        r'\b(black|white|red|blue|green|yellow|orange|purple|pink|brown|gray|grey|'
        r'silver|gold|bronze|beige|navy|cream|tan|rose gold|space gray)\b',
        re.IGNORECASE,
    )

    def extract_with_rules(self, title: str) -> Dict[str, Any]:
        """
        Extract attributes using rule-based patterns.

        Args:
            title: Listing title

        Returns:
            Dictionary of extracted attributes (only keys that were found)
        """
        if not title:
            return {}

        attributes: Dict[str, Any] = {}

        storage = self._extract_storage(title)
        if storage:
            attributes["storage"] = storage

        grade = self._extract_grade(title)
        if grade:
            attributes["grade"] = grade

        size = self._extract_size(title)
        if size:
            attributes["size"] = size

        edition = self._extract_edition(title)
        if edition:
            attributes["edition"] = edition

        year = self._extract_year(title)
        if year:
            attributes["year"] = year

        ref_number = self._extract_ref_number(title)
        if ref_number:
            attributes["refNumber"] = ref_number

        color = self._extract_color(title)
        if color:
            attributes["color"] = color

        return attributes

    def _extract_storage(self, text: str) -> Optional[str]:
        match = self.STORAGE_PATTERN.search(text)
        if match:
            return f"{match.group(1)}{match.group(2).upper()}"
        return None

    def _extract_grade(self, text: str) -> Optional[str]:
        match = self.GRADE_PATTERN.search(text)
        if match:
            return f"{match.group(1).upper()} {match.group(2)}"
        return None

    def _extract_size(self, text: str) -> Optional[str]:
        for pattern in self.SIZE_PATTERNS:
            match = pattern.search(text)
            if match:
                return re.sub(r'\s+', ' ', match.group(1)).upper()
        return None

    def _extract_edition(self, text: str) -> Optional[str]:
        text_lower = text.lower()
        for keyword in self.EDITION_KEYWORDS:
            if re.search(rf'\b{re.escape(keyword)}\b', text_lower):
                return keyword
        return None

    def _extract_year(self, text: str) -> Optional[str]:
        match = self.YEAR_PATTERN.search(text)
        return match.group(1) if match else None

    def _extract_ref_number(self, text: str) -> Optional[str]:
        match = self.REF_NUMBER_PATTERN.search(text)
        return match.group(1).upper() if match else None

    def _extract_color(self, text: str) -> Optional[str]:
        match = self.COLOR_PATTERN.search(text)
        return match.group(1).lower() if match else None

    def enrich_comp(self, comp: CandidateRecord) -> CandidateRecord:
        """
        Fill missing extracted_data keys from the comp title.

        The listing condition is left as-is; the condition validator reads
        a missing condition as used.

        Args:
            comp: Comp record

        Returns:
            New record when something was added, otherwise the same record
        """
        found = self.extract_with_rules(comp.title)
        additions = {k: v for k, v in found.items() if not comp.extracted_data.get(k)}
        if not additions:
            return comp

        logger.debug(f"Comp {comp.id}: extracted {sorted(additions)} from title")
        return comp.with_extracted(**additions)

    def enrich_comps(self, comps: Sequence[CandidateRecord]) -> List[CandidateRecord]:
        return [self.enrich_comp(comp) for comp in comps]


# Global attribute extractor instance
attribute_extractor = AttributeExtractor()
