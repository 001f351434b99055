from __future__ import annotations

import asyncio
from dataclasses import dataclass
from uuid import uuid4

from sqlalchemy import select

from modcore.domain.models import ReportReason
from modcore.domain.scope import Scope
from modcore.persistence.db import SessionLocal


@dataclass(frozen=True)
class SeedReason:
    name: str
    description: str
    display_order: int


DEFAULT_REASONS: tuple[SeedReason, ...] = (
    SeedReason("Spam", "Unsolicited advertising or repetitive content", 10),
    SeedReason("Harassment", "Targeted abuse or intimidation of another user", 20),
    SeedReason("Hate speech", "Attacks on people based on protected characteristics", 30),
    SeedReason("Off-topic", "Content unrelated to the space it was posted in", 40),
    SeedReason("Other", "Anything not covered above; explain in the details", 100),
)


async def seed() -> None:
    # Insert global reasons by name; rerunning leaves existing rows untouched.
    scope = Scope.global_scope()
    async with SessionLocal() as session:
        existing = set(
            (
                await session.execute(
                    select(ReportReason.name).where(
                        ReportReason.scope_key == scope.key,
                        ReportReason.is_deleted.is_(False),
                    )
                )
            ).scalars()
        )
        created = 0
        for reason in DEFAULT_REASONS:
            if reason.name in existing:
                continue
            session.add(
                ReportReason(
                    id=uuid4().hex,
                    name=reason.name,
                    description=reason.description,
                    scope_key=scope.key,
                    display_order=reason.display_order,
                    is_deleted=False,
                )
            )
            created += 1
        await session.commit()
    print(f"seeded_report_reasons={created}")


if __name__ == "__main__":
    asyncio.run(seed())
