"""DeepSearch - iterative web research agent

Simple CLI for asking one question.
"""

import argparse
import asyncio

from deepsearch.deep_search import stream_from_deep_search
from deepsearch.models.context import RequestHints
from deepsearch.models.events import Observation, ObservationType


def print_observation(observation: Observation) -> None:
    if observation.type is ObservationType.QUERY_PLAN:
        print(f"\n[*] Research Plan: {observation.plan[:200]}")
        for i, query in enumerate(observation.queries, 1):
            print(f"  {i}. {query.query}")
            print(f"     Purpose: {query.purpose or 'N/A'}")

    elif observation.type is ObservationType.SEARCH_SOURCES:
        print(f"\n[~] Found {len(observation.sources)} sources")
        for source in observation.sources[:10]:
            print(f"  - {source.title[:70]} ({source.url})")

    elif observation.type is ObservationType.NEW_ACTION:
        action = observation.action
        print(f"\n[+] Next action: {action.type} - {action.reasoning[:160]}")
        if action.feedback:
            print(f"    Feedback: {action.feedback[:200]}")

    elif observation.type is ObservationType.TOKEN_USAGE:
        print(f"\n[*] Tokens used so far: {observation.total_tokens}")


async def run_research(
    question: str,
    model: str | None = None,
    city: str | None = None,
    country: str | None = None,
):
    """Run research on the given question."""
    print(f"Question: {question}")
    print("-" * 50)

    hints = RequestHints(city=city, country=country) if (city or country) else None
    stream = await stream_from_deep_search(
        [{"role": "user", "content": question}],
        on_observation=print_observation,
        request_hints=hints,
        model=model,
    )

    print(f"\n{'='*50}")
    print("ANSWER:" if not stream.is_final else "ANSWER (best effort, step limit reached):")
    print(f"{'='*50}")
    async for chunk in stream:
        print(chunk, end="", flush=True)
    print()


def main():
    parser = argparse.ArgumentParser(description="DeepSearch research agent")
    parser.add_argument("--query", "-q", required=True, help="Question to research")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--city", help="City hint for location-scoped questions")
    parser.add_argument("--country", help="Country hint for location-scoped questions")

    args = parser.parse_args()

    asyncio.run(run_research(args.query, args.model, args.city, args.country))


if __name__ == "__main__":
    main()
