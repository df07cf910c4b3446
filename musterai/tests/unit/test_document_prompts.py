from __future__ import annotations

from musterai.agent.document_prompts import (
    CLOSING_INSTRUCTIONS,
    EMPTY_SECTION_NOTE,
    find_section,
    render_section_request,
    render_system_prompt,
    role_instruction,
    section_search_query,
)
from musterai.domain.models import DocumentProject, GeneratedDocument
from musterai.services.retrieval import CorpusEntry


def _document(**overrides) -> GeneratedDocument:
    fields = dict(
        id="doc-1",
        organization_id="org-1",
        project_id="proj-1",
        type="sop",
        title="Standard Operating Procedures",
        version="1.0",
        status="draft",
        sections=[
            {"id": "s1", "title": "Normal Procedures", "content": ""},
            {"id": "s2", "title": "Emergency Procedures", "content": "Land immediately."},
        ],
        local_context={},
        cross_references=[],
    )
    fields.update(overrides)
    return GeneratedDocument(**fields)


def _project(**overrides) -> DocumentProject:
    fields = dict(
        id="proj-1",
        organization_id="org-1",
        name="Pipeline Survey",
        client_name="Northern Energy",
        description="BVLOS corridor inspection",
        shared_context={},
    )
    fields.update(overrides)
    return DocumentProject(**fields)


def test_rendering_is_deterministic() -> None:
    entries = [CorpusEntry(id="kb-1", title="Lost Link", content="Return home.", tags=("emergency",))]
    first = render_system_prompt(_document(), _project(), entries)
    second = render_system_prompt(_document(), _project(), entries)
    assert first == second


def test_omitted_project_description_removes_its_line() -> None:
    with_description = render_system_prompt(_document(), _project())
    without_description = render_system_prompt(_document(), _project(description=None))

    assert "Description: BVLOS corridor inspection" in with_description
    assert "Description:" not in without_description
    assert "Client: Northern Energy" in without_description


def test_empty_optional_blocks_are_dropped_with_their_heading() -> None:
    prompt = render_system_prompt(_document(), _project())

    assert "## Shared Context" not in prompt
    assert "## Regulatory References" not in prompt
    assert "## Reference Documents from Knowledge Base" not in prompt
    assert "## Cross-References to Other Documents" not in prompt
    assert prompt.endswith(CLOSING_INSTRUCTIONS)


def test_sections_and_context_render_in_order() -> None:
    document = _document(
        local_context={
            "specific_requirements": "Cover fly-away events.",
            "regulatory_references": ["CAR 901.23"],
        },
        cross_references=[{"target_document_id": "doc-2", "reference_text": "See the SMS manual."}],
    )
    project = _project(
        shared_context={"aircraft_types": ["M300", "Wingtra One"], "regulations": ["CARs Part IX"]}
    )
    prompt = render_system_prompt(document, project)

    assert "1. Normal Procedures (empty)\n2. Emergency Procedures (has content)" in prompt
    assert "Aircraft Types: M300, Wingtra One" in prompt
    assert "Applicable Regulations: CARs Part IX" in prompt
    assert "## Document-Specific Requirements\nCover fly-away events." in prompt
    assert "## Regulatory References\nCAR 901.23" in prompt
    assert "## Cross-References to Other Documents\n- See the SMS manual." in prompt
    assert prompt.index("## Project Context") < prompt.index("## Shared Context")
    assert prompt.index("## Regulatory References") < prompt.index("## Cross-References")


def test_reference_excerpts_are_truncated() -> None:
    entries = [
        CorpusEntry(id="kb-1", title="Long", content="x" * 20, tags=()),
        CorpusEntry(id="kb-2", title="Empty", content="", tags=()),
    ]
    prompt = render_system_prompt(_document(), _project(), entries, excerpt_chars=10)

    assert "### Long\n" + "x" * 10 + "..." in prompt
    assert "### Empty\nNo content" in prompt


def test_unknown_document_type_falls_back_to_sop() -> None:
    assert role_instruction("mystery") == role_instruction("sop")


def test_section_request_mentions_empty_section() -> None:
    document = _document()
    section = find_section(document, "s1")
    assert section is not None
    request = render_section_request(section, "Add a pre-flight checklist")

    assert request.startswith('Generate comprehensive content for the "Normal Procedures" section.')
    assert "User instructions: Add a pre-flight checklist" in request
    assert EMPTY_SECTION_NOTE in request
    assert section_search_query(section, "checklist") == "Normal Procedures checklist"


def test_section_request_includes_existing_content() -> None:
    section = find_section(_document(), "s2")
    assert section is not None
    request = render_section_request(section, "Expand")
    assert "Current section content to expand/improve:\nLand immediately." in request
    assert find_section(_document(), "missing") is None
