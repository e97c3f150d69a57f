#!/usr/bin/env python3
"""Build a draft plan from a setup JSON file and print it with the quality-gate warnings.
Usage: python scripts/generate_draft_plan.py setup.json  (AI_PLAN_BUILDER_AI_MODE=llm to route through the LLM)"""
import asyncio
import json
import logging
import sys

from plan_builder.core.errors import PlanBuilderError
from plan_builder.core.rate_limit import close_redis
from plan_builder.services.ai.router import build_router
from plan_builder.services.draft_generator import plan_to_json
from plan_builder.services.draft_plan import generate_draft
from plan_builder.services.http_client import close_http_client, init_http_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("generate_draft_plan")


async def main(path: str) -> int:
    with open(path, encoding="utf-8") as f:
        raw_setup = json.load(f)

    init_http_client(timeout=30.0)
    try:
        result = await generate_draft(raw_setup, build_router())
    except PlanBuilderError as e:
        logger.error("Draft plan failed: %s", e.message)
        print(json.dumps(e.to_dict(), indent=2, default=str))
        return 1
    finally:
        await close_http_client()
        await close_redis()

    print(plan_to_json(result.plan))
    if result.warnings:
        print("Warnings:")
        for w in result.warnings:
            week = f" (week {w.week_index})" if w.week_index is not None else ""
            print(f"  {w.code}{week}: {w.message}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/generate_draft_plan.py <setup.json>")
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
