from __future__ import annotations

import pytest

from marketlens.models.jobs import ParentDocument, ResearchParams
from marketlens.research.prompts import bucket_status, build_prompt


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Searching the web for NVDA", "Researching..."),
        ("Finding sources", "Researching..."),
        ("Looking at 10-K filings", "Researching..."),
        ("Writing section 2", "Finalizing..."),
        ("Compiling results", "Finalizing..."),
        ("Generating charts", "Finalizing..."),
        ("Uploading document", "Finalizing..."),
        ("Starting workflow", "Starting..."),
        ("Initializing agent", "Starting..."),
        ("Planning approach", "Starting..."),
        ("Pondering", None),
    ],
)
def test_bucket_status(message, expected):
    assert bucket_status(message) == expected


def test_bucket_order_prefers_researching():
    assert bucket_status("Started searching") == "Researching..."


def test_library_only_prompt():
    prompt = build_prompt(ResearchParams(framework="SWOT Analysis", context="Microsoft"))

    assert prompt.startswith("Framework: SWOT Analysis")
    assert "Context: Microsoft" in prompt
    assert "do NOT add to any collection" in prompt


def test_workspace_prompt_names_collection():
    params = ResearchParams(framework="Head-to-Head", workspace_id="c-1", workspace_name="EVs")

    assert 'add the document to collection ID: c-1 (named "EVs")' in build_prompt(params)


def test_follow_up_prompt_and_job_name():
    parent = ParentDocument(id="doc-9", title="Deep Research: Apple supply chain exposure in Asia")
    params = ResearchParams(framework="Geographic Exposure", parent_doc=parent)

    prompt = build_prompt(params)

    assert prompt.startswith("FOLLOW-UP RESEARCH REQUEST")
    assert 'parent_document_id: "doc-9"' in prompt
    assert "Context: General analysis" in prompt
    assert params.job_name() == "Follow-up: Deep Research: Apple supply ch..."
