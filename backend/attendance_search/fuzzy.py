from typing import List, Optional

from .commands import Command
from .schemas import SearchResult


class FuzzySearchEngine:
    """
    Plain fuzzy matching over registered commands.

    This is the fallback for everything the structured parser declines or
    fails on, and also scores commands for text-search clauses inside
    structured queries.

    Score contributions (summed, capped at 1.0; an exact label match is 1.0):
      - label starts with query          +0.9
      - label contains query             +0.7
      - description contains query       +0.5
      - any keyword contains query       +0.6
      - in-order character subsequence   ratio * 0.4
      - first-letter abbreviation        ratio * 0.3
    """

    def __init__(self, commands: Optional[List[Command]] = None, threshold: float = 0.3, should_sort: bool = True):
        self.commands: List[Command] = list(commands or [])
        self.threshold = threshold
        self.should_sort = should_sort

    def update_commands(self, commands: List[Command]) -> None:
        self.commands = list(commands)

    def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        if not query.strip():
            return self.get_recent_commands(limit)

        query_lower = query.lower()
        results: List[SearchResult] = []
        for command in self.commands:
            score = self.calculate_score(command, query_lower)
            if score < self.threshold:
                continue
            results.append(
                SearchResult(
                    command=command,
                    score=score,
                    matched_text=command.label,
                    highlights=self.get_highlights(command.label, query_lower),
                )
            )

        if self.should_sort:
            # Stable: ties keep registration order
            results.sort(key=lambda r: r.score, reverse=True)

        return results[:limit]

    def calculate_score(self, command: Command, query: str) -> float:
        label = command.label.lower()
        description = (command.description or "").lower()
        keywords = [k.lower() for k in command.keywords]

        if label == query:
            return 1.0

        score = 0.0
        if label.startswith(query):
            score += 0.9
        if query in label:
            score += 0.7
        if query in description:
            score += 0.5
        if any(query in keyword for keyword in keywords):
            score += 0.6

        # Typos and abbreviations ("msp" for "mark students present")
        score += fuzzy_match(label, query) * 0.4
        score += abbreviation_match(label, query) * 0.3

        return min(score, 1.0)

    def get_highlights(self, text: str, query: str) -> List[int]:
        highlights: List[int] = []
        if not query:
            return highlights
        text_lower = text.lower()
        index = text_lower.find(query)
        while index != -1:
            highlights.extend(range(index, index + len(query)))
            index = text_lower.find(query, index + 1)
        return highlights

    def get_recent_commands(self, limit: int) -> List[SearchResult]:
        return [
            SearchResult(command=command, score=1.0, matched_text=command.label, highlights=[])
            for command in self.commands[:limit]
        ]


def fuzzy_match(text: str, query: str) -> float:
    """Fraction of `query` found in `text` as an in-order subsequence; 0 unless all of it is."""
    if len(query) > len(text):
        return 0.0
    if len(query) == len(text):
        return 1.0 if text == query else 0.0

    query_index = 0
    for char in text:
        if query_index == len(query):
            break
        if char == query[query_index]:
            query_index += 1

    return 1.0 if query_index == len(query) else 0.0


def abbreviation_match(text: str, query: str) -> float:
    first_letters = "".join(word[0] for word in text.split())
    if first_letters and query in first_letters:
        return len(query) / len(first_letters)
    return 0.0
