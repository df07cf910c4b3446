from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
import sys

from musterai.domain.models import DocumentProject, GeneratedDocument, KnowledgeBaseEntry, Membership
from musterai.persistence.db import SessionLocal


DEMO_ORGANIZATION_ID = "org-demo"
DEMO_PROJECT_ID = "proj-demo"
DEMO_DOCUMENT_ID = "doc-demo-sop"


@dataclass(frozen=True)
class DemoEntry:
    id: str
    title: str
    content: str
    tags: tuple[str, ...]


def build_demo_entries() -> tuple[DemoEntry, ...]:
    return (
        DemoEntry(
            id="kb-demo-1",
            title="Pre-flight Inspection Checklist",
            content="Inspect propellers, battery health, airframe integrity and control link before every flight.",
            tags=("preflight", "checklist", "inspection"),
        ),
        DemoEntry(
            id="kb-demo-2",
            title="Lost Link Procedure",
            content="On loss of command and control link the aircraft returns home at the configured altitude.",
            tags=("emergency", "lost-link"),
        ),
        DemoEntry(
            id="kb-demo-3",
            title="CAR 901 Summary",
            content="Part IX of the Canadian Aviation Regulations governs RPAS operations up to 25 kg.",
            tags=("regulations", "cars"),
        ),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed a demo organization, project and SOP document")
    parser.add_argument("--subject", required=True, help="Subject id to enroll as an active operator")
    parser.add_argument("--role", default="operator", help="Membership role: admin|management|operator|viewer")
    return parser


async def seed_demo(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        await session.merge(
            Membership(
                subject_id=args.subject,
                organization_id=DEMO_ORGANIZATION_ID,
                role=args.role,
                status="active",
            )
        )
        if await session.get(DocumentProject, DEMO_PROJECT_ID) is None:
            session.add(
                DocumentProject(
                    id=DEMO_PROJECT_ID,
                    organization_id=DEMO_ORGANIZATION_ID,
                    name="BVLOS Pipeline Survey",
                    client_name="Northern Energy",
                    description="Beyond visual line of sight inspection of a gas pipeline corridor.",
                    shared_context={
                        "company_profile": "Small RPAS operator based in Alberta.",
                        "operations_scope": "BVLOS linear infrastructure inspection.",
                        "aircraft_types": ["DJI Matrice 300", "Wingtra One"],
                        "regulations": ["CARs Part IX", "SORA 2.0"],
                    },
                )
            )
            await session.flush()
        if await session.get(GeneratedDocument, DEMO_DOCUMENT_ID) is None:
            session.add(
                GeneratedDocument(
                    id=DEMO_DOCUMENT_ID,
                    organization_id=DEMO_ORGANIZATION_ID,
                    project_id=DEMO_PROJECT_ID,
                    type="sop",
                    title="Standard Operating Procedures",
                    sections=[
                        {"id": "s1", "title": "Normal Procedures", "content": ""},
                        {"id": "s2", "title": "Emergency Procedures", "content": ""},
                    ],
                    local_context={
                        "specific_requirements": "Cover lost link and fly-away scenarios.",
                        "regulatory_references": ["CAR 901.23"],
                    },
                    cross_references=[],
                )
            )
        for entry in build_demo_entries():
            await session.merge(
                KnowledgeBaseEntry(
                    id=entry.id,
                    organization_id=DEMO_ORGANIZATION_ID,
                    title=entry.title,
                    content=entry.content,
                    tags=list(entry.tags),
                )
            )
        await session.commit()

    print(f"Seeded organization {DEMO_ORGANIZATION_ID} with document {DEMO_DOCUMENT_ID}.")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(seed_demo(args))
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
