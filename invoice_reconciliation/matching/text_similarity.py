"""
Text similarity for line item descriptions.

Provides case-insensitive normalized Levenshtein similarity used by the
line item scorer to compare invoice and purchase order descriptions.
"""


class TextSimilarity:
    """
    Normalized edit-distance similarity between two strings.

    ``similarity = 1 - distance / max(len(a), len(b))`` on lower-cased input.
    Distance runs in O(len(a) * len(b)) time and keeps only two rows of the
    edit matrix, O(min(len(a), len(b))) space.
    """

    def levenshtein_distance(self, s1: str, s2: str) -> int:
        """
        Calculate Levenshtein distance between two strings.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Levenshtein distance (number of edits needed)
        """
        if not s1:
            return len(s2)
        if not s2:
            return len(s1)

        # Iterate over the longer string so the row is the shorter one
        if len(s1) < len(s2):
            s1, s2 = s2, s1

        previous = list(range(len(s2) + 1))
        for i, c1 in enumerate(s1, start=1):
            current = [i] + [0] * len(s2)
            for j, c2 in enumerate(s2, start=1):
                cost = 0 if c1 == c2 else 1
                current[j] = min(
                    previous[j] + 1,         # deletion
                    current[j - 1] + 1,      # insertion
                    previous[j - 1] + cost   # substitution
                )
            previous = current

        return previous[-1]

    def similarity(self, s1: str, s2: str) -> float:
        """
        Calculate case-insensitive Levenshtein similarity (0.0 to 1.0).

        Args:
            s1: First string
            s2: Second string

        Returns:
            Similarity score (1.0 = identical, 0.0 = completely different).
            Two empty strings are identical.
        """
        s1 = (s1 or "").lower()
        s2 = (s2 or "").lower()

        max_len = max(len(s1), len(s2))
        if max_len == 0:
            return 1.0

        distance = self.levenshtein_distance(s1, s2)
        return 1.0 - (distance / max_len)


_default = TextSimilarity()


def similarity(a: str, b: str) -> float:
    """Case-insensitive normalized Levenshtein similarity of ``a`` and ``b``."""
    return _default.similarity(a, b)
