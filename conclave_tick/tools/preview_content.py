"""Preview how a debate brief would be classified and answered."""
from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, Optional, Sequence

from ..classifier import build_content, classify, derive_ticker, describe


def preview(
    text: str, *, seed: Optional[str] = None, max_length: int = 1400
) -> Dict[str, Any]:
    category = classify(text)
    summary = describe(text)
    content = build_content(text, category, max_length=max_length)
    return {
        "category": category.value,
        "keywords": summary["keywords"],
        "ticker": derive_ticker(text, seed=seed),
        "content": content,
        "skipped": content is None,
    }


def render(result: Dict[str, Any]) -> str:
    lines = [
        f"Category: {result['category']}",
        f"Keywords: {result['keywords'] or '-'}",
        f"Ticker:   {result['ticker']}",
        "",
    ]
    if result["skipped"]:
        lines.append("No proposal: the brief did not match a known topic, the debate would be skipped.")
    else:
        lines.append(result["content"])
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Preview generated proposal content.")
    parser.add_argument("text", nargs="?", help="Debate brief (defaults to stdin)")
    parser.add_argument("--seed", help="Stable identifier used for the fallback ticker")
    parser.add_argument("--max-length", type=int, default=1400)
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    args = parser.parse_args(argv)

    text = args.text if args.text is not None else sys.stdin.read()
    result = preview(text, seed=args.seed, max_length=args.max_length)
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(render(result))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
