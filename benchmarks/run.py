"""Score DeepSearch answers on the sample questions.

  python -m benchmarks.run -n 1 -m openai/gpt-4o-mini
"""
from __future__ import annotations

import argparse
import asyncio

from dotenv import load_dotenv

from benchmarks.base import BenchmarkTask, CitationBenchmark

SAMPLE_TASKS = [
    BenchmarkTask(id="typescript-version", query="What is the latest version of TypeScript?"),
    BenchmarkTask(id="nextjs-15", query="What are the main features of Next.js 15?"),
    BenchmarkTask(
        id="ai-july-2025",
        query="What are the latest developments in AI and machine learning in July 2025?",
    ),
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Citation-quality benchmark for DeepSearch answers")
    parser.add_argument("-n", "--limit", type=int, help="only run the first N tasks")
    parser.add_argument("-m", "--model", help="model id (defaults to the configured model)")
    parser.add_argument("-o", "--output", default="benchmarks/results", help="directory for JSON reports")
    return parser


async def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    load_dotenv()
    from deepsearch.llm_client import get_model

    await CitationBenchmark(SAMPLE_TASKS).run(
        model=args.model or get_model(),
        limit=args.limit,
        output_dir=args.output,
    )


if __name__ == "__main__":
    asyncio.run(main())
