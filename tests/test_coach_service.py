"""Tests for the end-to-end prompt preparation of the coach service."""

import json
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.coach_pipeline.CoachService import CoachService
from shared.credentials.InMemoryCredentialProvider import InMemoryCredentialProvider
from shared.exceptions import BudgetExceededAtInputError, CredentialExpiredError, InvalidArgumentError
from shared.models.search import CoachMode, StreamEvent, StreamEventKind

QUESTION = "Hoe maak ik een opdracht?"

FILES = {
    "/canvas/modules.txt": "Modules ordenen je cursus per week en per thema.",
    "/canvas/opdrachten.txt": "Een opdracht maken: ga naar Opdrachten en klik op + Opdracht. Kies daarna een inleverwijze.",
}

JUDGEMENTS = {
    "opdrachten.txt": {"relevanceScore": 90, "confidence": 90, "summary": "Stappen voor een nieuwe opdracht.", "keyPoints": ["Klik op + Opdracht"]},
    "modules.txt": {"relevanceScore": 30, "confidence": 50, "summary": "Over modules."},
}


@pytest.fixture
def dms_client():
    client = MagicMock()

    async def _download(credential, locator_path):
        return FILES[locator_path].encode("utf-8")

    client.do_download_bytes = AsyncMock(side_effect=_download)
    return client


@pytest.fixture
def llm_client():
    client = MagicMock()
    client.judge_model = "judge-model"

    async def _generate(prompt, json_mode=False, model=None):
        name = re.search(r"File name: (\S+)", prompt).group(1)
        return json.dumps(JUDGEMENTS[name])

    client.do_generate = AsyncMock(side_effect=_generate)
    return client


@pytest.fixture
def service(helper_config, dms_client, llm_client):
    return CoachService(helper_config, dms_client, llm_client)


@pytest.fixture
def handles(make_handle):
    return [make_handle("modules.txt"), make_handle("opdrachten.txt")]


@pytest.fixture
def credentials():
    return InMemoryCredentialProvider("token")


@pytest.mark.asyncio
async def test_heuristic_prompt_ranks_sources(service, handles, credentials, llm_client):
    prepared = await service.do_prepare_prompt(QUESTION, handles, credentials)

    assert prepared.mode == CoachMode.HEURISTIC
    assert not prepared.no_relevant_sources
    assert prepared.documents_loaded == 2
    assert prepared.search_terms == ["opdracht", "maak"]
    assert [s.name for s in prepared.sources] == ["opdrachten.txt", "modules.txt"]
    assert prepared.prompt.startswith("You are Canvas Coach Maike")
    assert "USER QUESTION: Hoe maak ik een opdracht?" in prepared.prompt
    assert FILES["/canvas/opdrachten.txt"] in prepared.prompt
    assert prepared.prompt.index("opdrachten.txt") < prepared.prompt.index("modules.txt")
    assert len(prepared.prompt) <= service.max_context_chars
    llm_client.do_generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_smart_prompt_uses_judgements(service, handles, credentials):
    prepared = await service.do_prepare_prompt(QUESTION, handles, credentials, mode=CoachMode.SMART)

    assert [s.name for s in prepared.sources] == ["opdrachten.txt", "modules.txt"]
    # 90 * 0.9 and 30 * 0.5, half up
    assert [s.score for s in prepared.sources] == [81, 15]
    assert prepared.ranking.highest_score == 81
    assert prepared.ranking.average_confidence == 70
    assert "CONFIDENCE: 90%" in prepared.prompt
    assert "- Klik op + Opdracht" in prepared.prompt


@pytest.mark.asyncio
async def test_smart_prompt_without_relevant_documents(service, handles, credentials, llm_client):
    async def _irrelevant(prompt, json_mode=False, model=None):
        return json.dumps({"relevanceScore": 0, "confidence": 100})

    llm_client.do_generate.side_effect = _irrelevant

    prepared = await service.do_prepare_prompt(QUESTION, handles, credentials, mode=CoachMode.SMART)

    assert prepared.no_relevant_sources
    assert prepared.sources == []
    assert prepared.documents_loaded == 2
    assert "No relevant source document was found" in prepared.prompt


@pytest.mark.asyncio
async def test_prompt_respects_context_budget(helper_config, dms_client, llm_client, make_handle, credentials, monkeypatch):
    monkeypatch.setenv("COACH_MAX_CONTEXT_CHARS", "4000")
    async def _download(credential, locator_path):
        return ("opdracht " * 2000).encode("utf-8")

    dms_client.do_download_bytes.side_effect = _download
    service = CoachService(helper_config, dms_client, llm_client)

    prepared = await service.do_prepare_prompt(QUESTION, [make_handle("groot.txt")], credentials)

    assert len(prepared.prompt) <= 4000
    assert prepared.sources == []


@pytest.mark.asyncio
async def test_budget_too_small_fails_before_download(helper_config, dms_client, llm_client, handles, credentials, monkeypatch):
    monkeypatch.setenv("COACH_MAX_CONTEXT_CHARS", "500")
    service = CoachService(helper_config, dms_client, llm_client)

    with pytest.raises(BudgetExceededAtInputError):
        await service.do_prepare_prompt(QUESTION, handles, credentials)

    dms_client.do_download_bytes.assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_credential_is_cleared(service, dms_client, handles, credentials):
    dms_client.do_download_bytes.side_effect = CredentialExpiredError("DMS/Dropbox")

    with pytest.raises(CredentialExpiredError):
        await service.do_prepare_prompt(QUESTION, handles, credentials)

    assert credentials.get() is None


@pytest.mark.asyncio
async def test_invalid_input(service, handles, credentials, dms_client):
    with pytest.raises(InvalidArgumentError):
        await service.do_prepare_prompt("  ", handles, credentials)
    with pytest.raises(InvalidArgumentError):
        await service.do_prepare_prompt(QUESTION, handles, InMemoryCredentialProvider())
    with pytest.raises(InvalidArgumentError):
        await service.do_prepare_prompt(QUESTION, handles, credentials, mode=CoachMode.UPLOADED)

    dms_client.do_download_bytes.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_documents_gives_no_source_prompt(service, credentials):
    prepared = await service.do_prepare_prompt(QUESTION, [], credentials)

    assert prepared.no_relevant_sources
    assert prepared.documents_loaded == 0
    assert prepared.prompt.startswith("You are Canvas Coach Maike")


@pytest.mark.asyncio
async def test_uploaded_prompt(service, make_document, dms_client):
    documents = [
        make_document("notities.md", "Notities over de cursusindeling."),
        make_document("opdracht.pdf", "Een opdracht maak je via het menu Opdrachten."),
    ]

    prepared = await service.do_prepare_uploaded_prompt(QUESTION, documents)

    assert prepared.mode == CoachMode.UPLOADED
    assert [s.name for s in prepared.sources] == ["opdracht.pdf", "notities.md"]
    dms_client.do_download_bytes.assert_not_awaited()


@pytest.mark.asyncio
async def test_smart_search_report(service, handles, credentials):
    report = await service.do_smart_search(QUESTION, handles, credentials)

    assert report.query == QUESTION
    assert report.total_files == 2
    assert report.relevant_files == 2
    assert report.ranked.results[0].document.display_name == "opdrachten.txt"


@pytest.mark.asyncio
async def test_answer_streams_prepared_prompt(service, llm_client, credentials, handles):
    seen = []

    async def _stream(prompt, model=None):
        seen.append(prompt)
        yield StreamEvent(kind=StreamEventKind.TOKEN, text="Ga naar Opdrachten.")
        yield StreamEvent(kind=StreamEventKind.DONE)

    llm_client.do_stream_generate = _stream
    prepared = await service.do_prepare_prompt(QUESTION, handles, credentials)

    updates = [update async for update in service.do_answer(prepared)]

    assert seen == [prepared.prompt]
    assert updates[-1].complete
    assert updates[-1].text == "Ga naar Opdrachten."
