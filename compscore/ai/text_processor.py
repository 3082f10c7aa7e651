"""Text normalization and fuzzy string similarity for listing titles and attributes."""

import re
from typing import List, Optional

import Levenshtein

_WHITESPACE = re.compile(r'\s+')
_PUNCTUATION = re.compile(r'[^\w\s]')


class TextProcessor:
    """
    Text helpers shared by the criterion validators.

    Features:
    - Normalization (lowercase, trim, collapse whitespace)
    - Similarity in [0, 1] with containment shortcut and Levenshtein fallback
    - Title tokenization for common-term extraction
    """

    def normalize_string(self, text: Optional[str]) -> str:
        """
        Normalize text for comparison.

        Args:
            text: Input text (None is treated as empty)

        Returns:
            Lowercased text with whitespace runs collapsed and ends trimmed
        """
        if not text:
            return ""
        return _WHITESPACE.sub(' ', str(text).lower()).strip()

    def levenshtein(self, a: str, b: str) -> int:
        """Edit distance (insert, delete, substitute) between two strings."""
        return Levenshtein.distance(a, b)

    def similarity(self, a: Optional[str], b: Optional[str]) -> float:
        """
        Fuzzy similarity between two strings.

        Args:
            a: First string
            b: Second string

        Returns:
            0.0 if either side is empty, 1.0 on equality, len(shorter)/len(longer)
            when one contains the other, else 1 - levenshtein/max_len
        """
        s1 = self.normalize_string(a)
        s2 = self.normalize_string(b)

        if not s1 or not s2:
            return 0.0
        if s1 == s2:
            return 1.0

        if s1 in s2 or s2 in s1:
            shorter, longer = sorted((len(s1), len(s2)))
            return shorter / longer

        max_len = max(len(s1), len(s2))
        return 1.0 - self.levenshtein(s1, s2) / max_len

    def tokenize_title(self, title: Optional[str], min_length: int = 3) -> List[str]:
        """
        Split a listing title into lowercase tokens.

        Args:
            title: Listing title
            min_length: Shortest token kept

        Returns:
            Tokens with punctuation replaced by spaces, in title order
        """
        if not title:
            return []
        cleaned = _PUNCTUATION.sub(' ', title.lower())
        return [token for token in cleaned.split() if len(token) >= min_length]


# Global text processor instance
text_processor = TextProcessor()

normalize_string = text_processor.normalize_string
levenshtein = text_processor.levenshtein
similarity = text_processor.similarity
tokenize_title = text_processor.tokenize_title
