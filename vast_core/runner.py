"""
Headless scenario runner.

Wires one BeliefStore, RevisionEngine, DecisionEngine, GaugeMonitor and
AuditLog around a Scenario and executes the decision cycle per tick:

    1. apply the tick's evidence (revision)
    2. rank candidate actions (decision)
    3. score the resulting state (gauges)
    4. append the tick to the audit log

All components share one injected clock, so runs driven by a ManualClock
are reproducible and can be compared against golden logs.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

from .audit_log import AuditLog
from .beliefs import BeliefStore
from .clock import Clock, ManualClock, system_clock
from .config import VASTConfig, create_config, validate_config
from .decision import DecisionEngine, DecisionResult
from .errors import ValidationError, vast_error, VAST_E_CONFIG
from .gauges import GaugeMonitor
from .revision import RevisionEngine
from .rules import ViolationRuleTable
from .scenarios import TOP_RANKED, Scenario
from .types import BeliefDelta, LogEntry, RevisionMetrics

logger = logging.getLogger("vast_core.runner")


class ScenarioRunner:
    def __init__(
        self,
        scenario: Scenario,
        config: Optional[VASTConfig] = None,
        clock: Optional[Clock] = None,
        rules: Optional[ViolationRuleTable] = None,
    ) -> None:
        config = config or create_config()
        errors = validate_config(config)
        if errors:
            raise vast_error(ValidationError, VAST_E_CONFIG, "; ".join(errors), errors=errors)
        self.scenario = scenario
        self.config = config
        self.clock: Clock = clock or system_clock

        self.store = BeliefStore(clock=self.clock)
        self.revision = RevisionEngine(config.jwmc, clock=self.clock)
        self.decision = DecisionEngine(config.eeucc, scenario.constraints, rules=rules, clock=self.clock)
        self.monitor = GaugeMonitor(
            config.gauges.thresholds,
            window_size=config.gauges.window_size,
            alert_cooldown_ms=config.gauges.alert_cooldown_ms,
            clock=self.clock,
        )
        self.log = AuditLog(scenario.id, clock=self.clock, constraints=scenario.constraints)
        self.last_result: Optional[DecisionResult] = None

        for action in scenario.actions:
            self.store.create(action.id, action.credence, action.confidence, action.justification)

    def run(self, max_ticks: Optional[int] = None) -> AuditLog:
        ticks = max_ticks if max_ticks is not None else self.config.loop.max_ticks
        if ticks is None:
            ticks = max((e.tick for e in self.scenario.evidence), default=0) + 1
        if not isinstance(ticks, int) or ticks < 1:
            raise vast_error(ValidationError, VAST_E_CONFIG, f"max_ticks must be an integer >= 1, got {ticks}")

        delay_ms = float(self.config.loop.tick_delay_ms)
        logger.info("Running scenario %s for %d ticks", self.scenario.id, ticks)
        for i in range(ticks):
            if i > 0 and delay_ms > 0:
                self._wait(delay_ms)
            self.step(i)
        return self.log

    def step(self, tick: int) -> LogEntry:
        """Run one decision cycle, applying the evidence scheduled for `tick`."""
        beliefs_before = self.store.all()
        deltas = self._apply_evidence(tick)

        result = self.decision.evaluate(self.scenario.action_ids, self.store, self.scenario.context)
        self.last_result = result
        reading = self.monitor.calculate(
            self.store.as_map(),
            result.selected_action,
            self.decision.constraints,
            self.scenario.context,
        )

        chosen = result.breakdowns[0] if result.breakdowns else None
        params = self.revision.params
        return self.log.append(
            beliefs_before=beliefs_before,
            beliefs_after=self.store.all(),
            jwmc_metrics=RevisionMetrics(alpha=params.alpha, beta=params.beta, gamma=params.gamma, deltas=deltas),
            candidate_actions=self.scenario.action_ids,
            eeucc_breakdown=result.breakdowns,
            chosen_action=result.selected_action or "",
            justification_chain=chosen.justification_chain if chosen else [],
            gauge_scores=reading.scores,
            alerts=reading.alerts,
            seed=self.scenario.seed,
            perception=self.scenario.perception,
        )

    def _apply_evidence(self, tick: int) -> List[BeliefDelta]:
        deltas: List[BeliefDelta] = []
        for event in self.scenario.evidence_for_tick(tick):
            target = event.proposition
            if target == TOP_RANKED:
                target = self.last_result.selected_action if self.last_result else None
                if not target:
                    logger.warning("Tick %d: evidence %r targets the top-ranked action but none is ranked yet", tick, event.title)
                    continue
            if not self.store.has(target):
                logger.warning("Tick %d: evidence %r targets unknown proposition %s", tick, event.title, target)
                continue
            _, delta = self.revision.revise_stored(self.store, target, event.evidence)
            deltas.append(delta)
        return deltas

    def _wait(self, delay_ms: float) -> None:
        if isinstance(self.clock, ManualClock):
            self.clock.advance(delay_ms)
        else:
            time.sleep(delay_ms / 1000.0)
