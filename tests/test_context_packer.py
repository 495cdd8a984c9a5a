"""Tests for the context packer."""

import pytest

from services.coach_pipeline.ContextPacker import ContextPacker, document_type_label, priority_tier
from shared.exceptions import BudgetExceededAtInputError, InvalidArgumentError
from shared.models.document import ScoredDocument
from shared.models.search import RankedResults, RankingMeta, SearchTermSet, SmartSearchResult

QUESTION = "Hoe maak ik een opdracht?"
TERMS = SearchTermSet.from_terms(["opdracht", "maak"])


@pytest.fixture
def packer(helper_config):
    return ContextPacker(helper_config)


@pytest.fixture
def scored(make_document):
    def _make(name: str, text: str, score: int) -> ScoredDocument:
        return ScoredDocument(document=make_document(name, text), score=score)
    return _make


def test_pack_empty_document_set(packer):
    context = packer.pack([], QUESTION, TERMS, 180000)

    assert len(context.text) <= 180000
    assert QUESTION in context.text
    assert "TOTAL DOCUMENTS: 0" in context.text
    assert "NO DOCUMENTS AVAILABLE" in context.text
    assert context.included == ()
    assert context.omitted == ()


def test_pack_orders_by_descending_score(packer, scored):
    docs = [scored("low.txt", "laag", 5), scored("high.txt", "hoog", 60), scored("mid.txt", "midden", 30)]

    context = packer.pack(docs, QUESTION, TERMS, 10000)

    assert context.included == ("high.txt", "mid.txt", "low.txt")
    assert context.text.index("START OF high.txt") < context.text.index("START OF mid.txt") < context.text.index("START OF low.txt")
    assert "SEARCH PRIORITY: HIGH" in context.text
    assert "SEARCH PRIORITY: MEDIUM" in context.text
    assert "SEARCH PRIORITY: LOW" in context.text


def test_pack_ties_keep_input_order(packer, scored):
    docs = [scored("a.txt", "alpha", 5), scored("b.txt", "beta", 9), scored("c.txt", "gamma", 5)]

    context = packer.pack(docs, QUESTION, TERMS, 10000)

    assert context.included == ("b.txt", "a.txt", "c.txt")


def test_pack_is_deterministic(packer, scored):
    docs = [scored(f"doc{i}.txt", f"tekst {i} " * 50, i % 3) for i in range(6)]

    assert packer.pack(docs, QUESTION, TERMS, 2500).text == packer.pack(docs, QUESTION, TERMS, 2500).text


def test_pack_budget_manifest_fallback(packer, scored):
    """10 documents of 30k characters into 100k: at most 3 blocks, the rest in the manifest."""
    docs = [scored(f"handleiding-{i:02d}.pdf", "x" * 30000, 100 - i) for i in range(10)]

    context = packer.pack(docs, QUESTION, TERMS, 100000)

    assert len(context.text) <= 100000
    assert len(context.included) <= 3
    assert len(context.omitted) >= 7
    assert context.manifest_included
    for name in context.omitted:
        assert f"- {name} (30.0k chars, score: " in context.text
        assert f"START OF {name}" not in context.text


def test_pack_single_oversized_document_is_never_truncated(packer, scored):
    docs = [scored("groot.pdf", "y" * 5000, 80)]

    context = packer.pack(docs, QUESTION, TERMS, 3000)

    assert len(context.text) <= 3000
    assert context.included == ()
    assert context.omitted == ("groot.pdf",)
    assert "START OF groot.pdf" not in context.text
    assert "yyyy" not in context.text
    assert "- groot.pdf (5.0k chars, score: 80)" in context.text


def test_pack_manifest_dropped_when_it_does_not_fit(packer, scored):
    docs = [scored("groot.pdf", "y" * 5000, 80)]
    header_length = len(packer.build_header(QUESTION, TERMS, 1))

    context = packer.pack(docs, QUESTION, TERMS, header_length + 10)

    assert context.text == packer.build_header(QUESTION, TERMS, 1)
    assert not context.manifest_included


@pytest.mark.parametrize("budget", [1000, 2000, 5000, 20000, 50000])
def test_pack_never_exceeds_budget(packer, scored, budget):
    docs = [scored(f"doc{i}.md", "inhoud " * (i * 300 + 1), i * 7) for i in range(8)]

    context = packer.pack(docs, QUESTION, TERMS, budget)

    assert len(context.text) <= budget
    assert len(context) == len(context.text)


def test_pack_rejects_non_positive_budget(packer):
    with pytest.raises(InvalidArgumentError):
        packer.pack([], QUESTION, TERMS, 0)


def test_pack_header_over_budget(packer):
    with pytest.raises(BudgetExceededAtInputError) as exc_info:
        packer.pack([], QUESTION, TERMS, 100)

    assert exc_info.value.max_chars == 100
    assert exc_info.value.required_chars > 100


def test_pack_judgements(packer, make_handle):
    ranked = RankedResults(
        results=[
            SmartSearchResult(
                document=make_handle("Evalueren.pdf"),
                relevance_score=72,
                confidence=90,
                relevant_sections=["Ga naar Instellingen > Cijfers."],
                summary="Beschrijft het cijferbeleid.",
                key_points=["Zet 'missend' op 0"],
            ),
            SmartSearchResult(document=make_handle("Basis.pdf"), relevance_score=30, confidence=60, summary="Basis"),
        ],
        meta=RankingMeta(average_confidence=75, highest_score=72),
    )

    context = packer.pack_judgements(ranked, QUESTION, 10000)

    assert context.included == ("Evalueren.pdf", "Basis.pdf")
    assert "Ga naar Instellingen > Cijfers." in context.text
    assert "- Zet 'missend' op 0" in context.text
    assert "CONFIDENCE: 90%" in context.text


def test_pack_judgements_empty(packer):
    context = packer.pack_judgements(RankedResults(), QUESTION, 10000)

    assert "NO RELEVANT DOCUMENTS FOUND" in context.text


def test_document_type_label_and_tiers():
    assert document_type_label("Canvas Evalueren.pdf") == "Evaluatie & Beoordeling"
    assert document_type_label("Webinar tips.docx") == "Webinar & Extra Tips"
    assert document_type_label("Basis.pdf") == "Basis Functionaliteiten"
    assert document_type_label("Extra.pdf") == "Extra Functionaliteiten"
    assert document_type_label("Overig.pdf") == "Canvas Handleiding"
    assert priority_tier(51) == "HIGH"
    assert priority_tier(50) == "MEDIUM"
    assert priority_tier(21) == "MEDIUM"
    assert priority_tier(20) == "LOW"
