"""Tests for environment configuration and engine selection."""

import pytest

from shared.clients.dms.DMSClientManager import DMSClientManager
from shared.clients.dms.dropbox.DMSClientDropbox import DMSClientDropbox
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.llm.gemini.LLMClientGemini import LLMClientGemini


def test_string_values(helper_config, monkeypatch):
    monkeypatch.setenv("COACH_NAME", "  Maike ")
    monkeypatch.setenv("COACH_BLANK", "   ")

    assert helper_config.get_string_val("coach_name") == "Maike"
    assert helper_config.get_string_val("COACH_BLANK", default="fallback") == "fallback"
    with pytest.raises(ValueError, match="COACH_MISSING"):
        helper_config.get_string_val("COACH_MISSING")


def test_numeric_values(helper_config, monkeypatch):
    monkeypatch.setenv("COACH_RATIO", "0.5")
    monkeypatch.setenv("COACH_COUNT", "7")
    monkeypatch.setenv("COACH_BAD", "seven")

    assert helper_config.get_number_val("COACH_RATIO") == 0.5
    assert helper_config.get_int_val("COACH_COUNT", minimum=1) == 7
    assert helper_config.get_int_val("COACH_UNSET", default=3) == 3
    with pytest.raises(ValueError):
        helper_config.get_number_val("COACH_BAD")
    with pytest.raises(ValueError):
        helper_config.get_int_val("COACH_RATIO")
    with pytest.raises(ValueError):
        helper_config.get_int_val("COACH_COUNT", minimum=10)


def test_bool_and_list_values(helper_config, monkeypatch):
    monkeypatch.setenv("COACH_FLAG", "Yes")
    monkeypatch.setenv("COACH_LIST", "[ .pdf, .md ,]")
    monkeypatch.setenv("COACH_NOT_A_LIST", ".pdf,.md")

    assert helper_config.get_bool_val("COACH_FLAG") is True
    assert helper_config.get_bool_val("COACH_OTHER_FLAG", default=False) is False
    assert helper_config.get_list_val("COACH_LIST") == [".pdf", ".md"]
    assert helper_config.get_list_val("COACH_NO_LIST", default=["a"]) == ["a"]
    with pytest.raises(ValueError):
        helper_config.get_list_val("COACH_NOT_A_LIST")


def test_engine_managers_load_configured_clients(helper_config):
    assert isinstance(DMSClientManager(helper_config).get_client(), DMSClientDropbox)
    assert isinstance(LLMClientManager(helper_config).get_client(), LLMClientGemini)


def test_unknown_engine(helper_config, monkeypatch):
    monkeypatch.setenv("DMS_ENGINE", "paperclip")

    with pytest.raises(ValueError, match="paperclip"):
        DMSClientManager(helper_config)


def test_missing_gemini_key(helper_config, monkeypatch):
    monkeypatch.delenv("LLM_GEMINI_API_KEY")

    with pytest.raises(ValueError, match="LLM_GEMINI_API_KEY"):
        LLMClientGemini(helper_config)
