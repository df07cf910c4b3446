from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Sequence

from musterai.domain.models import DocumentProject, GeneratedDocument
from musterai.services.retrieval import CorpusEntry


DEFAULT_EXCERPT_CHARS = 1000
DEFAULT_MAX_REFERENCES = 5


class DocumentType(str, Enum):
    SMS = "sms"
    TRAINING_MANUAL = "training_manual"
    MAINTENANCE_PLAN = "maintenance_plan"
    OPS_MANUAL = "ops_manual"
    SAFETY_DECLARATION = "safety_declaration"
    HSE_MANUAL = "hse_manual"
    RISK_ASSESSMENT = "risk_assessment"
    SOP = "sop"
    ERP = "erp"
    COMPLIANCE_MATRIX = "compliance_matrix"


DOCUMENT_TYPE_PROMPTS: dict[DocumentType, str] = {
    DocumentType.SMS: (
        "You are an expert aviation safety consultant specializing in Safety Management Systems (SMS).\n"
        "You help create comprehensive SMS documentation that complies with ICAO standards and regulatory requirements.\n"
        "Focus on: Safety Policy, Safety Risk Management, Safety Assurance, and Safety Promotion.\n"
        "Use clear, professional language appropriate for regulatory documentation."
    ),
    DocumentType.TRAINING_MANUAL: (
        "You are an expert aviation training specialist.\n"
        "You help create comprehensive training manuals covering ground training, flight training, "
        "proficiency standards, and recurrent training requirements.\n"
        "Ensure all content aligns with regulatory training requirements and industry best practices."
    ),
    DocumentType.MAINTENANCE_PLAN: (
        "You are an expert aviation maintenance specialist.\n"
        "You help create maintenance program documentation including policies, schedules, procedures, "
        "and record-keeping requirements.\n"
        "Ensure compliance with manufacturer recommendations and regulatory requirements."
    ),
    DocumentType.OPS_MANUAL: (
        "You are an expert aviation operations consultant.\n"
        "You help create operations manuals covering organizational structure, flight operations, "
        "emergency procedures, and SOPs.\n"
        "Focus on practical, actionable procedures that ensure safe and efficient operations."
    ),
    DocumentType.SAFETY_DECLARATION: (
        "You are an expert in aviation safety declarations and risk assessment.\n"
        "You help create safety declarations that clearly articulate the scope of operations, "
        "risk assessments, and commitment to safety.\n"
        "Ensure clarity and completeness for regulatory review."
    ),
    DocumentType.HSE_MANUAL: (
        "You are an expert in Health, Safety, and Environment (HSE) management.\n"
        "You help create comprehensive HSE manuals covering policies, hazard management, "
        "incident procedures, and PPE requirements.\n"
        "Focus on practical workplace safety measures."
    ),
    DocumentType.RISK_ASSESSMENT: (
        "You are an expert in aviation risk assessment and hazard management.\n"
        "You help create thorough risk assessments with hazard identification, risk analysis, "
        "and mitigation measures.\n"
        "Use structured risk matrices and clear evaluation criteria."
    ),
    DocumentType.SOP: (
        "You are an expert in creating Standard Operating Procedures (SOPs).\n"
        "You help create clear, step-by-step procedures that ensure consistent, safe operations.\n"
        "Focus on clarity, completeness, and practical applicability."
    ),
    DocumentType.ERP: (
        "You are an expert in emergency response planning.\n"
        "You help create comprehensive emergency response plans including procedures, contacts, "
        "and communication protocols.\n"
        "Ensure plans are actionable and cover all relevant scenarios."
    ),
    DocumentType.COMPLIANCE_MATRIX: (
        "You are an expert in regulatory compliance management.\n"
        "You help create compliance matrices that track regulatory requirements, compliance status, "
        "and evidence documentation.\n"
        "Ensure thorough coverage of all applicable regulations."
    ),
}

CLOSING_INSTRUCTIONS = "\n".join(
    [
        "## Instructions",
        "- Generate professional, compliance-ready documentation",
        "- Use clear, precise language appropriate for regulatory review",
        "- Maintain consistency with existing document content",
        "- Reference applicable regulations and standards where appropriate",
        "- Format content in markdown for easy editing",
        "- When generating section content, provide complete, well-structured text",
        "- Ask clarifying questions if requirements are unclear",
    ]
)

SECTION_REQUIREMENTS = "\n".join(
    [
        "Requirements:",
        "- Generate well-structured, professional content",
        "- Use markdown formatting (headers, lists, tables as appropriate)",
        "- Ensure compliance with applicable regulations",
        "- Be thorough but concise",
        "- Include specific, actionable content where appropriate",
    ]
)

EMPTY_SECTION_NOTE = "This section is currently empty. Generate complete content."


def role_instruction(document_type: str | None) -> str:
    # Unrecognized types fall back to the SOP instruction.
    try:
        resolved = DocumentType((document_type or "").strip().lower())
    except ValueError:
        resolved = DocumentType.SOP
    return DOCUMENT_TYPE_PROMPTS[resolved]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _labelled(label: str, value: Any) -> str | None:
    text = _text(value)
    return f"{label}: {text}" if text else None


def _joined(label: str, values: Iterable[Any] | None) -> str | None:
    items = [_text(item) for item in (values or []) if _text(item)]
    return f"{label}: {', '.join(items)}" if items else None


def _block(heading: str, lines: Sequence[str | None]) -> str | None:
    # A block with no surviving lines is dropped along with its heading.
    kept = [line for line in lines if line]
    if not kept:
        return None
    return "\n".join([heading, *kept])


def _excerpt(content: str, limit: int) -> str:
    if not content:
        return "No content"
    if len(content) <= limit:
        return content
    return f"{content[:limit]}..."


def _section_lines(sections: Sequence[dict[str, Any]]) -> list[str]:
    lines = []
    for index, section in enumerate(sections, start=1):
        marker = "(has content)" if _text(section.get("content")) else "(empty)"
        lines.append(f"{index}. {_text(section.get('title'))} {marker}")
    return lines or ["No sections defined"]


def render_system_prompt(
    document: GeneratedDocument,
    project: DocumentProject,
    entries: Sequence[CorpusEntry] = (),
    *,
    max_references: int = DEFAULT_MAX_REFERENCES,
    excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
) -> str:
    """Render the document-assistant system instruction.

    Pure and deterministic: identical inputs yield byte-identical text, and
    optional fields that are empty are omitted rather than rendered blank.
    """
    shared = project.shared_context or {}
    local = document.local_context or {}

    blocks: list[str | None] = [
        role_instruction(document.type),
        _block(
            "## Current Document Context",
            [
                _labelled("Document Type", document.type),
                _labelled("Document Title", document.title),
                _labelled("Version", document.version),
                _labelled("Status", document.status),
            ],
        ),
        "\n".join(["## Document Sections", *_section_lines(document.sections or [])]),
        _block(
            "## Project Context",
            [
                _labelled("Client", project.client_name),
                _labelled("Project", project.name),
                _labelled("Description", project.description),
            ],
        ),
        _block(
            "## Shared Context",
            [
                _labelled("Company Profile", shared.get("company_profile")),
                _labelled("Operations Scope", shared.get("operations_scope")),
                _joined("Aircraft Types", shared.get("aircraft_types")),
                _joined("Applicable Regulations", shared.get("regulations")),
                _labelled("Additional Context", shared.get("custom_context")),
            ],
        ),
        _block("## Document-Specific Requirements", [_text(local.get("specific_requirements"))]),
        _block(
            "## Regulatory References",
            [_text(ref) for ref in (local.get("regulatory_references") or [])],
        ),
    ]

    references = list(entries)[:max_references]
    if references:
        rendered = [f"### {entry.title}\n{_excerpt(entry.content, excerpt_chars)}" for entry in references]
        blocks.append("## Reference Documents from Knowledge Base\n" + "\n\n".join(rendered))

    cross_references = [
        _text(ref.get("reference_text")) for ref in (document.cross_references or []) if isinstance(ref, dict)
    ]
    blocks.append(
        _block("## Cross-References to Other Documents", [f"- {text}" for text in cross_references if text])
    )
    blocks.append(CLOSING_INSTRUCTIONS)

    return "\n\n".join(block for block in blocks if block)


def find_section(document: GeneratedDocument, section_id: str) -> dict[str, Any] | None:
    for section in document.sections or []:
        if section.get("id") == section_id:
            return section
    return None


def render_section_request(section: dict[str, Any], instructions: str) -> str:
    title = _text(section.get("title"))
    content = _text(section.get("content"))
    current = (
        f"Current section content to expand/improve:\n{content}" if content else EMPTY_SECTION_NOTE
    )
    return "\n\n".join(
        [
            f'Generate comprehensive content for the "{title}" section.',
            f"User instructions: {instructions}",
            current,
            SECTION_REQUIREMENTS,
        ]
    )


def section_search_query(section: dict[str, Any], instructions: str) -> str:
    return f"{_text(section.get('title'))} {instructions}"
