"""One Conclave tick: fetch status, decide, act at most once, notify."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import traceback
from typing import Any, Dict, Optional, Sequence

from .alerting import Notifier
from .allocation import build_allocation, find_self_option, format_plan, to_payload
from .classifier import (
    MECHANISM_MARKER,
    build_comment,
    build_content,
    classify,
    derive_ticker,
)
from .client import ConclaveClient
from .config import ConfigurationError, Settings, get_settings, is_on
from .models import ApiResponse, Debate, Option, Status, TickOutcome, snip
from .selector import RankingPolicy, attempt_join, select_order

logger = logging.getLogger(__name__)


class TickRunner:
    """Runs a single self-contained tick against the Conclave API."""

    def __init__(
        self,
        settings: Settings,
        client: ConclaveClient,
        notifier: Notifier,
        *,
        dry_run: bool = False,
    ) -> None:
        self.settings = settings
        self.client = client
        self.notifier = notifier
        self.dry_run = dry_run
        self.policy = RankingPolicy.from_settings(settings)

    def run(self) -> TickOutcome:
        status_res = self.client.status()
        if not status_res.ok or not isinstance(status_res.json, dict):
            return self._hard_error("status_error", f"/status {status_res.status}", status_res)

        status = Status.from_payload(status_res.json)
        logger.debug(
            "inDebate=%s phase=%s debate=%s", status.in_debate, status.phase, status.debate_id
        )

        if not status.in_debate:
            return self._join_a_debate()
        if status.phase == "allocation":
            return self._handle_allocation(status)
        if status.phase == "debate":
            return self._handle_debate(status)
        return TickOutcome(action="noop", detail=f"phase={status.phase or 'unknown'}")

    # -- joining -------------------------------------------------------

    def _join_a_debate(self) -> TickOutcome:
        debates_res = self.client.list_debates()
        if not debates_res.ok or debates_res.json is None:
            return self._hard_error("debates_error", f"/debates {debates_res.status}", debates_res)

        raw = debates_res.json.get("debates") if isinstance(debates_res.json, dict) else debates_res.json
        debates = [Debate.from_payload(item) for item in (raw or []) if isinstance(item, dict)]
        logger.debug("debates=%d", len(debates))
        if not debates:
            return TickOutcome(action="noop", detail="no debates listed")

        ordered = select_order(debates, self.policy)
        outcome = attempt_join(
            ordered,
            self._join,
            self.build_join_payload,
            max_attempts=self.settings.max_join_attempts,
            soft_markers=self.settings.soft_rejection_markers,
        )
        metadata = {"attempts": outcome.attempts, "skipped": list(outcome.skipped)}

        if outcome.status == "joined" and outcome.debate is not None:
            message = f"joined debate id={outcome.debate.id} {outcome.response.snippet(160)}"
            return self._action("joined", message, metadata)
        if outcome.status == "failed" and outcome.debate is not None:
            return self._hard_error(
                "join_error",
                f"join {outcome.response.status} id={outcome.debate.id}",
                outcome.response,
                metadata,
            )
        return TickOutcome(
            action="no_debate_available",
            detail=f"{len(ordered)} eligible, none accepted",
            metadata=metadata,
        )

    def build_join_payload(self, debate: Debate) -> Optional[Dict[str, Any]]:
        """Proposal sent with a join; ``None`` skips the debate."""

        if not self.settings.generate_proposals:
            return {
                "name": self.settings.agent_name,
                "ticker": self.settings.agent_ticker or self.settings.default_ticker,
                "description": self.settings.agent_description,
            }
        category = classify(debate.text)
        content = build_content(
            debate.text,
            category,
            max_length=self.settings.max_content_length,
            excerpt_length=self.settings.excerpt_length,
        )
        if content is None:
            return None
        return {
            "name": self.settings.agent_name,
            "ticker": self.settings.agent_ticker or derive_ticker(debate.text, seed=debate.id),
            "description": content,
        }

    def _join(self, debate: Debate, payload: Dict[str, Any]) -> ApiResponse:
        if self.dry_run:
            logger.info("[dry-run] would join debate %s as %s", debate.id, payload.get("ticker"))
            return ApiResponse(status=200, text="dry-run")
        response = self.client.join(str(debate.id), payload)
        logger.debug("join %s id=%s", response.status, debate.id)
        return response

    # -- allocation ----------------------------------------------------

    def _self_option(self, status: Status) -> Optional[Option]:
        return find_self_option(
            status.ideas,
            idea_id=status.idea_id or self.settings.self_idea_id,
            self_ticker=self.settings.self_ticker,
        )

    def _handle_allocation(self, status: Status) -> TickOutcome:
        self_option = self._self_option(status)
        allocation = build_allocation(
            status.ideas,
            self_id=self_option.id if self_option else None,
            self_percent=self.settings.self_percent,
            max_percent=self.settings.max_percent,
            min_targets=self.settings.min_targets,
            max_targets=self.settings.max_targets,
        )
        if allocation is None:
            message = (
                f"allocation phase is live but no valid allocation could be built "
                f"from {len(status.ideas)} ideas."
            )
            notified = self.notifier.notify(event="anomaly", message=message, severity="warning")
            return TickOutcome(action="allocation_invalid", detail=message, notified=notified)

        plan = format_plan(allocation, status.ideas)
        if not self.settings.auto_allocate:
            message = (
                "needed: allocation phase is live. Suggested plan: "
                f"{plan}. Reply with your allocation plan (percentages) and I will submit it."
            )
            metadata = {"allocation": allocation, "debateId": status.debate_id}
            notified = self.notifier.notify(
                event="approval", message=message, severity="warning", metadata=metadata
            )
            return TickOutcome(
                action="approval_requested", detail=plan, notified=notified, metadata=metadata
            )

        if self.dry_run:
            logger.info("[dry-run] would allocate %s", plan)
            return TickOutcome(action="allocated", detail=plan, metadata={"allocation": allocation})

        response = self.client.allocate(to_payload(allocation))
        if not response.ok:
            return self._hard_error("allocate_error", f"allocate {response.status}", response)
        return self._action("allocated", f"allocated {plan}", {"allocation": allocation})

    # -- debate phase --------------------------------------------------

    def _handle_debate(self, status: Status) -> TickOutcome:
        if self.settings.auto_refine:
            outcome = self._maybe_refine(status)
            if outcome is not None:
                return outcome
        if self.settings.auto_comment:
            outcome = self._maybe_comment(status)
            if outcome is not None:
                return outcome
        return TickOutcome(action="noop", detail="debate phase")

    def _maybe_refine(self, status: Status) -> Optional[TickOutcome]:
        own = self._self_option(status)
        if own is None or MECHANISM_MARKER in own.description:
            return None
        category = classify(status.brief or own.text)
        content = build_content(
            status.brief or own.text,
            category,
            max_length=self.settings.max_content_length,
            excerpt_length=self.settings.excerpt_length,
        )
        if content is None:
            logger.debug("Refine skipped: brief is unclassified")
            return None

        payload = {"ideaId": own.id, "description": content}
        if self.dry_run:
            logger.info("[dry-run] would refine idea %s", own.id)
            return TickOutcome(action="refined", detail=str(own.id))
        response = self.client.refine(payload)
        if not response.ok:
            return self._hard_error("refine_error", f"refine {response.status}", response)
        return self._action("refined", f"refined idea {own.label}", {"category": category.value})

    def comment_target(self, status: Status) -> Optional[tuple[Option, str]]:
        """Most active other idea we have not commented on, with its comment."""

        own = self._self_option(status)
        name = self.settings.agent_name.lower()
        candidates = [
            option
            for option in status.ideas
            if option.id
            and (own is None or option.id != own.id)
            and option.author.lower() != name
            and name not in {author.lower() for author in option.comment_authors}
        ]
        candidates.sort(key=lambda option: -option.activity)
        for option in candidates:
            category = classify(option.text)
            comment = build_comment(
                option.text,
                category,
                label=option.label,
                max_length=self.settings.comment_max_length,
            )
            if comment:
                return option, comment
        return None

    def _maybe_comment(self, status: Status) -> Optional[TickOutcome]:
        target = self.comment_target(status)
        if target is None:
            return None
        option, comment = target
        payload = {"ideaId": option.id, "ticker": option.ticker, "message": comment}
        if self.dry_run:
            logger.info("[dry-run] would comment on %s", option.label)
            return TickOutcome(action="commented", detail=option.label)
        response = self.client.comment(payload)
        if not response.ok:
            return self._hard_error("comment_error", f"comment {response.status}", response)
        return self._action("commented", f"commented on {option.label}", {"ideaId": option.id})

    # -- outcomes ------------------------------------------------------

    def _action(self, action: str, message: str, metadata: Dict[str, Any]) -> TickOutcome:
        logger.info("Conclave action: %s", message)
        notified = False
        if self.settings.notify_on_action:
            notified = self.notifier.notify(event="action", message=message, metadata=metadata)
        return TickOutcome(action=action, detail=message, notified=notified, metadata=metadata)

    def _hard_error(
        self,
        action: str,
        summary: str,
        response: ApiResponse,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TickOutcome:
        message = f"{summary} {response.snippet(self.settings.snippet_length)}".strip()
        logger.warning("Conclave error: %s", message)
        notified = self.notifier.notify(event="error", message=message, severity="error")
        return TickOutcome(
            action=action, detail=message, notified=notified, metadata=dict(metadata or {})
        )


def run_tick(settings: Settings, *, dry_run: bool = False) -> TickOutcome:
    """Build fresh collaborators and run one tick."""

    runner = TickRunner(
        settings,
        ConclaveClient.from_settings(settings),
        Notifier.from_settings(settings),
        dry_run=dry_run,
    )
    return runner.run()


def report_crash(exc: BaseException, settings: Optional[Settings]) -> None:
    """Best-effort ``crash`` notification; delivery problems are only logged."""

    if settings is None:
        return
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    try:
        Notifier.from_settings(settings).notify(
            event="crash",
            message=f"tick failed:\n{snip(detail, 3500)}",
            severity="critical",
        )
    except Exception:
        logger.exception("Also failed to send crash notification")


def main(argv: Optional[Sequence[str]] = None, env: Optional[Dict[str, str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run one Conclave tick.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the chosen mutation instead of sending it",
    )
    args = parser.parse_args(argv)

    source = os.environ if env is None else env
    logging.basicConfig(
        level=logging.DEBUG if is_on(source.get("CONCLAVE_TICK_DEBUG")) else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        settings = get_settings(source)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    try:
        outcome = run_tick(settings, dry_run=args.dry_run)
    except Exception as exc:
        logger.exception("Conclave tick failed")
        report_crash(exc, settings)
        return 1

    logger.info("Tick finished: %s %s", outcome.action, outcome.detail)
    return 0


__all__ = ["TickRunner", "main", "report_crash", "run_tick"]


if __name__ == "__main__":
    sys.exit(main())
