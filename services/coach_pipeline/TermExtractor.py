"""Query term extraction for the heuristic relevance path."""

import re

from shared.models.search import SearchTermSet

# Curated Canvas LMS vocabulary, Dutch and English
CANVAS_VOCABULARY = (
    "canvas", "opdracht", "opdrachten", "assignment", "assignments",
    "cursist", "student", "cursisten", "studenten", "leerling", "leerlingen",
    "punt", "punten", "score", "scores", "cijfer", "cijfers", "beoordeling", "beoordelen",
    "automatisch", "standaard", "default", "instellingen", "configuratie", "instellen",
    "rubric", "feedback", "evalueren", "evaluatie", "toets", "toetsen", "quiz",
    "groep", "groepen", "module", "modules", "cursus", "course", "vak",
    "inleveren", "indiening", "deadline", "datum", "tijd",
    "nul", "zero", "0", "leeg", "niet ingeleverd", "gemist",
    "automatisch toekennen", "auto-assign", "bulk", "massa",
    "gradebook", "cijferboek", "rapportage", "overzicht",
)

ACTION_WORDS = (
    "maak", "maken", "stel", "stellen", "wijzig", "wijzigen",
    "verander", "veranderen", "zet", "zetten",
    "create", "make", "change", "configure",
)

_NUMBER_PATTERN = re.compile(r"\b\d+\b")
_QUOTED_PATTERN = re.compile(r'"([^"]+)"')


class TermExtractor:
    """Derives the search terms of a question. Pure and deterministic."""

    def __init__(self, vocabulary: tuple[str, ...] = CANVAS_VOCABULARY, action_words: tuple[str, ...] = ACTION_WORDS):
        self.vocabulary = vocabulary
        self.action_words = action_words

    def extract_terms(self, question: str) -> SearchTermSet:
        """Collect vocabulary hits, numbers, quoted phrases and action verbs, in that order.

        Vocabulary terms and action verbs match as substrings of the lower-cased
        question. Quoted phrases are kept verbatim without their quotes.

        Args:
            question (str): The user's question. May be empty.

        Returns:
            SearchTermSet: Deduplicated case-insensitively, in discovery order.
        """
        lower_question = (question or "").lower()
        terms: list[str] = [term for term in self.vocabulary if term in lower_question]
        terms.extend(_NUMBER_PATTERN.findall(question or ""))
        terms.extend(phrase for phrase in _QUOTED_PATTERN.findall(question or "") if phrase.strip())
        terms.extend(word for word in self.action_words if word in lower_question)
        return SearchTermSet.from_terms(terms)
