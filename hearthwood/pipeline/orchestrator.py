"""Day-cycle orchestrator — runs one simulated day end-to-end.

Cycle flow:
  0. Read the world; a paused world fails with "world paused" (no lock touched).
  1. Acquire the per-day lock; none → "busy".
  2. A journal entry for the day already exists → release as complete,
     fail with "already processed".
  3. Health-check the LLM; unhealthy or forced → degraded (templates only).
  4. Phases, strictly in sequence:
       collect   living characters, location map, active events (read-only)
       analyze   event tensions; to-process = living minus in_conversation
       execute   one decision per character, marked processed in the lock
                 before moving on; failures become skips
       resolve   persist outcomes, relationships, milestones, recalculations
       notify    day summary → notifier (failure recorded, not fatal)
       log       exactly one journal entry for the day
  5. Success → world day + 1, lock released as complete. Once the day is
     committed a failed release is only logged; the stale reclaim frees the lock.
     Failure inside the phases → lock released as failed, best-effort failure
     notification, structured failure result. This includes a failed journal
     check in step 2. Errors reading the world before the lock decision
     propagate to the caller.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime

from hearthwood.engine.actions import apply_outcome, build_context, decide, update_relationships
from hearthwood.engine.destiny import (
    find_reached_milestone,
    mark_milestone_reached,
    recalculate_destiny,
    should_recalculate,
)
from hearthwood.engine.validation import validate_summary
from hearthwood.errors import DuplicateJournalError, ResponseValidationError, TransportError
from hearthwood.llm import GenerationParams, Generator
from hearthwood.models import ActionSummary, JournalDetails, JournalEntry, utcnow
from hearthwood.notify import Notifier
from hearthwood.pipeline.lock import CycleLockManager
from hearthwood.pipeline.results import (
    AnalyzeOutput,
    AppliedOutcome,
    CollectOutput,
    CycleResult,
    Decision,
    ExecuteOutput,
    LogOutput,
    NotifyOutput,
    ReachedMilestone,
    Recalculation,
    RelationshipUpdate,
    ResolveOutput,
    Skip,
    Tension,
)
from hearthwood.prompts import PromptError, summary_prompts
from hearthwood.storage import Storage

logger = logging.getLogger(__name__)

SUMMARY_PARAMS = GenerationParams(max_tokens=500, temperature=0.7)


def template_summary(day: int, decisions: int, degraded: bool) -> str:
    note = " (degraded mode)" if degraded else ""
    return f"Day {day} in Hearthwood{note}. {decisions} inhabitants lived their day."


def fallback_summary(day: int) -> str:
    return f"Day {day} in Hearthwood. The inhabitants lived their day."


def format_day_message(day: int, summary: str, degraded: bool) -> str:
    emoji = "⚠️" if degraded else "☀️"
    return f"{emoji} **Day {day}**\n\n{summary}"


class Orchestrator:
    def __init__(
        self,
        storage: Storage,
        generator: Generator,
        notifier: Notifier,
        locks: CycleLockManager | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.generator = generator
        self.notifier = notifier
        self.locks = locks or CycleLockManager(storage, clock=clock)
        self.rng = rng or random.Random()
        self.clock = clock

    async def run_cycle(self, force_degraded: bool = False) -> CycleResult:
        world = self.storage.get_world()
        day = world.day

        if world.paused:
            logger.info("Day %d not run: world paused", day)
            return CycleResult.failure(day, "world paused")

        lock = await self.locks.acquire(day)
        if lock is None:
            return CycleResult.failure(day, "busy")

        result = CycleResult(day=day)
        try:
            if self.storage.journal_exists(day):
                logger.info("Day %d already has a journal entry", day)
                await self.locks.release(lock.id, "complete")
                return CycleResult.failure(day, "already processed")

            degraded = force_degraded or not await self.generator.check_health()
            if degraded:
                logger.warning("Day %d running in degraded mode", day)
            result.degraded = degraded

            result.state = "collecting"
            result.collect = self.collect(day)

            result.analyze = self.analyze(result.collect)
            result.state = "analyzed"

            result.execute = await self.execute(result.collect, result.analyze, lock.id, day, degraded)
            result.state = "executed"

            result.resolve = await self.resolve(result.execute, day, degraded)
            result.state = "resolved"

            result.notify = await self.notify(result.collect, result.execute, day, degraded)
            result.state = "notified"

            result.log = self.log(result.collect, result.execute, result.notify.summary, day, degraded)

            world = self.storage.get_world()
            world.day = day + 1
            world.last_cycle_at = self.clock()
            self.storage.save_world(world)
        except Exception as e:
            logger.exception("Day %d failed while %s", day, result.state)
            result.state = "failed"
            result.error = str(e) or type(e).__name__
            await self._release_failed(lock.id)
            await self._notify_failure(day, result.error)
            return result

        # The day is committed; a lock left running is reclaimed once stale
        try:
            await self.locks.release(lock.id, "complete")
        except Exception:
            logger.exception("Day %d complete but lock %s was not released", day, lock.id)

        result.state = "complete"
        result.success = True
        logger.info(
            "Day %d complete: %d decisions, %d skipped",
            day, len(result.execute.decisions), len(result.execute.skipped),
        )
        return result

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def collect(self, day: int) -> CollectOutput:
        return CollectOutput(
            day=day,
            characters=self.storage.get_living_characters(),
            locations=self.storage.get_location_map(),
            active_events=self.storage.get_active_events(),
        )

    def analyze(self, collect: CollectOutput) -> AnalyzeOutput:
        tensions = []
        for event in collect.active_events:
            for place in event.locations:
                affected = [c.name for c in collect.characters if c.location == place]
                if affected:
                    tensions.append(Tension(
                        description=f"{event.kind} affects {place}",
                        location=place,
                        characters=affected,
                    ))

        # in_conversation is owned by the session layer; read it, never recompute it
        to_process = [c.id for c in collect.characters if not c.in_conversation]
        return AnalyzeOutput(tensions=tensions, to_process=to_process)

    async def execute(
        self,
        collect: CollectOutput,
        analyze: AnalyzeOutput,
        lock_id: str,
        day: int,
        degraded: bool,
    ) -> ExecuteOutput:
        out = ExecuteOutput()
        to_process = set(analyze.to_process)

        for character in collect.characters:
            if character.id not in to_process:
                out.skipped.append(Skip(character_id=character.id, name=character.name, reason="in_conversation"))
                continue

            if self.locks.is_processed(lock_id, character.id):
                out.skipped.append(Skip(character_id=character.id, name=character.name, reason="already_processed"))
                continue

            try:
                context = build_context(self.storage, character)
                action = await decide(character, context, day, self.generator, degraded=degraded, rng=self.rng)
            except Exception:
                logger.exception("Decision failed for %s", character.name)
                out.skipped.append(Skip(character_id=character.id, name=character.name, reason="error"))
                continue

            await self.locks.mark_processed(lock_id, character.id)
            out.decisions.append(Decision(
                character_id=character.id,
                name=character.name,
                context=context,
                action=action,
            ))
            logger.debug("%s: %s → %s (%s)", character.name, action.action, action.location, action.source)

        return out

    async def resolve(self, execute: ExecuteOutput, day: int, degraded: bool) -> ResolveOutput:
        out = ResolveOutput()
        for decision in execute.decisions:
            try:
                await self._resolve_one(decision, day, degraded, out)
            except Exception:
                logger.exception("Resolution failed for %s", decision.name)
                out.failures.append(decision.character_id)
        return out

    async def _resolve_one(self, decision: Decision, day: int, degraded: bool, out: ResolveOutput) -> None:
        action = decision.action
        character = self.storage.get_character(decision.character_id)
        updated = apply_outcome(self.storage, character, action, day)
        out.applied.append(AppliedOutcome(
            character_id=updated.id, location=action.location, action=action.action,
        ))

        if action.target:
            target = next((c for c in decision.context.present if c.name == action.target), None)
            if target is not None:
                rel, _ = update_relationships(self.storage, updated, target)
                out.relationships.append(RelationshipUpdate(
                    a=updated.name, b=target.name, kind=rel.kind, intensity=rel.intensity,
                ))

        # Re-read to pick up every write made above
        character = self.storage.get_character(decision.character_id)
        if not character.alive:
            return

        index = find_reached_milestone(character, day, action.action, action.location)
        if index is not None:
            destiny = mark_milestone_reached(self.storage, character, index)
            out.milestones.append(ReachedMilestone(
                character_id=character.id,
                name=character.name,
                description=destiny.milestones[index].description,
            ))
            character = self.storage.get_character(character.id)

        check = should_recalculate(character, day)
        if not check.needed:
            return
        if degraded:
            logger.info("Recalculation for %s deferred: degraded mode", character.name)
            return

        old_end = character.destiny.end_state if character.destiny else "unknown"
        try:
            destiny = await recalculate_destiny(self.storage, self.generator, character, check.reason, day)
        except (TransportError, ResponseValidationError, PromptError) as e:
            logger.warning("Recalculation for %s skipped: %s", character.name, e)
            return
        out.recalculations.append(Recalculation(
            character_id=character.id,
            name=character.name,
            reason=check.reason,
            old_end_state=old_end,
            new_end_state=destiny.end_state,
        ))

    async def notify(
        self,
        collect: CollectOutput,
        execute: ExecuteOutput,
        day: int,
        degraded: bool,
    ) -> NotifyOutput:
        decisions = execute.decisions
        if degraded or not decisions:
            summary = template_summary(day, len(decisions), degraded)
        else:
            summary = await self._generate_summary(collect, execute, day, degraded)

        message = format_day_message(day, summary, degraded)
        sent = await self._dispatch(message)
        return NotifyOutput(summary=summary, message=message, sent=sent)

    async def _generate_summary(
        self,
        collect: CollectOutput,
        execute: ExecuteOutput,
        day: int,
        degraded: bool,
    ) -> str:
        pairs = [(d.context.character, d.action) for d in execute.decisions]
        try:
            system, prompt = summary_prompts(day, pairs, len(collect.active_events), degraded)
            raw = await self.generator.generate_json("summary", system, prompt, SUMMARY_PARAMS)
            return validate_summary(raw)
        except (TransportError, ResponseValidationError, PromptError) as e:
            logger.warning("Summary generation failed for day %d: %s", day, e)
            return fallback_summary(day)

    def log(
        self,
        collect: CollectOutput,
        execute: ExecuteOutput,
        summary: str,
        day: int,
        degraded: bool,
    ) -> LogOutput:
        if self.storage.journal_exists(day):
            raise DuplicateJournalError(f"Journal entry for day {day} already exists")

        details = JournalDetails(
            characters_processed=len(execute.decisions),
            active_events=len(collect.active_events),
            actions=[
                ActionSummary(name=d.name, action=d.action.action, location=d.action.location)
                for d in execute.decisions
            ],
        )
        entry = self.storage.insert_journal(JournalEntry(
            day=day, summary=summary, degraded=degraded, details=details,
        ))
        return LogOutput(journal_id=entry.id, characters_updated=len(execute.decisions))

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _dispatch(self, message: str) -> bool:
        try:
            await self.notifier(message)
        except Exception as e:
            logger.warning("Notification failed: %s", e)
            return False
        return True

    async def _release_failed(self, lock_id: str) -> None:
        try:
            await self.locks.release(lock_id, "failed")
        except Exception:
            logger.exception("Could not release lock %s", lock_id)

    async def _notify_failure(self, day: int, error: str) -> None:
        await self._dispatch(f"Cycle day {day} failed: {error}")
