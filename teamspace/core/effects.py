"""
Post-mutation effect pipeline.

After a primary mutation (task created, task updated, comment added, member
added) the owning service registers the follow-up effects in the order they
must run: activity logging, then workspace membership repair, then
notification fan-out. Each effect runs inside its own SAVEPOINT; a failing
effect is rolled back to that savepoint, logged and skipped, so neither the
primary mutation nor earlier effects are undone.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

Effect = Callable[[], Awaitable[Any]]


@dataclass
class EffectOutcome:
    name: str
    succeeded: bool
    error: str | None = None


@dataclass
class EffectReport:
    label: str
    outcomes: list[EffectOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [o.name for o in self.outcomes if not o.succeeded]

    @property
    def ok(self) -> bool:
        return not self.failed


class PostMutationEffects:
    """Ordered list of independent, failure-isolated follow-up effects."""

    def __init__(self, db: AsyncSession, label: str) -> None:
        self.db = db
        self.label = label
        self._effects: list[tuple[str, Effect]] = []

    def add(self, name: str, effect: Effect) -> PostMutationEffects:
        self._effects.append((name, effect))
        return self

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._effects]

    async def run(self) -> EffectReport:
        report = EffectReport(label=self.label)
        for name, effect in self._effects:
            try:
                async with self.db.begin_nested():
                    await effect()
            except Exception as exc:
                logger.exception("Effect %r of %s failed; continuing", name, self.label)
                report.outcomes.append(EffectOutcome(name=name, succeeded=False, error=str(exc)))
            else:
                report.outcomes.append(EffectOutcome(name=name, succeeded=True))
        return report
