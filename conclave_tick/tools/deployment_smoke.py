"""Deployment smoke checks for the Conclave tick."""
from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Iterable, List, Mapping

from ..config import REQUIRED_ENV, ConfigurationError, get_settings


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: str
    detail: str


IDENTITY_VARS = ["CONCLAVE_SELF_IDEA_ID", "CONCLAVE_SELF_TICKER"]


def _status(level: str, name: str, detail: str) -> CheckResult:
    return CheckResult(name=name, status=level, detail=detail)


def run_checks(env: Mapping[str, str]) -> List[CheckResult]:
    results: List[CheckResult] = []

    for key in REQUIRED_ENV:
        if (env.get(key) or "").strip():
            results.append(_status("ok", key, "present"))
        else:
            results.append(_status("error", key, "missing"))

    try:
        settings = get_settings(env)
    except ConfigurationError as exc:
        invalid = [problem for problem in exc.problems if "_MISSING" not in problem]
        for problem in invalid:
            results.append(_status("error", "settings", problem))
        if not invalid:
            results.append(_status("warning", "settings", "not loaded until required values are set"))
        return results

    results.append(_status("ok", "settings", f"api base {settings.api_base}"))

    if any((env.get(var) or "").strip() for var in IDENTITY_VARS):
        results.append(_status("ok", "self_identity", "self idea identifier configured"))
    elif settings.self_percent > 0:
        results.append(
            _status(
                "warning",
                "self_identity",
                "self percent set without CONCLAVE_SELF_IDEA_ID/TICKER; relying on the API to report our idea",
            )
        )
    else:
        results.append(_status("ok", "self_identity", "no self allocation requested"))

    if settings.auto_allocate:
        results.append(_status("ok", "allocation_mode", "allocations submitted automatically"))
    else:
        results.append(_status("ok", "allocation_mode", "allocation waits for operator approval"))

    if settings.alert_webhook_urls:
        results.append(_status("ok", "alert_routing", "telegram plus webhook fan-out"))
    else:
        results.append(_status("ok", "alert_routing", "telegram only"))

    return results


def _print_table(results: Iterable[CheckResult]) -> None:
    header = f"{'Check':<32} {'Status':<8} Detail"
    print(header)
    print("-" * len(header))
    for result in results:
        print(f"{result.name:<32} {result.status:<8} {result.detail}")


def main(argv: Iterable[str] | None = None) -> int:  # pragma: no cover - CLI entry point
    parser = argparse.ArgumentParser(description="Run deployment smoke checks for the Conclave tick.")
    parser.parse_args(argv)
    results = run_checks(os.environ)
    _print_table(results)
    if any(result.status == "error" for result in results):
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
