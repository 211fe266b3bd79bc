"""Citation benchmark harness: run questions through DeepSearch and score the answers."""
from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from statistics import fmean
from typing import Any

from benchmarks.citations import score_all


@dataclass
class BenchmarkTask:
    id: str
    query: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class EvalResult:
    task_id: str
    score: float  # mean of all scorers, 0.0 - 1.0
    details: dict[str, Any] = field(default_factory=dict)
    response: str = ""
    elapsed_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return "error" in self.details


@dataclass
class BenchmarkReport:
    benchmark_name: str
    model: str
    timestamp: str
    results: list[EvalResult]
    total_tasks: int = 0

    @property
    def scored(self) -> list[EvalResult]:
        return [r for r in self.results if not r.failed]

    @property
    def completed_tasks(self) -> int:
        return len(self.scored)

    @property
    def avg_score(self) -> float:
        return fmean(r.score for r in self.results) if self.results else 0.0

    @property
    def scores_by_scorer(self) -> dict[str, float]:
        scored = self.scored
        if not scored:
            return {}
        return {name: fmean(r.details[name] for r in scored) for name in scored[0].details}

    def to_dict(self) -> dict[str, Any]:
        return {
            "benchmark": self.benchmark_name,
            "model": self.model,
            "timestamp": self.timestamp,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "avg_score": round(self.avg_score, 4),
            "scores_by_scorer": {k: round(v, 4) for k, v in self.scores_by_scorer.items()},
            "results": [asdict(r) for r in self.results],
        }

    def save(self, output_dir: str | Path) -> Path:
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{self.benchmark_name}_{self.model.replace('/', '_')}_{self.timestamp}.json"
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path

    def summary_lines(self) -> list[str]:
        lines = [
            f"{self.benchmark_name} | model={self.model}",
            f"completed {self.completed_tasks}/{self.total_tasks}, average {self.avg_score:.1%}",
        ]
        ranked = sorted(self.scores_by_scorer.items(), key=lambda item: item[1], reverse=True)
        lines.extend(f"  {name:<28} {score:.1%}" for name, score in ranked)
        return lines


def evaluate_response(task: BenchmarkTask, response: str) -> EvalResult:
    scores = score_all(response)
    return EvalResult(
        task_id=task.id,
        score=fmean(scores.values()),
        details=scores,
        response=response[:500],
    )


class CitationBenchmark:
    """Answers each task with `ask_deep_search` and scores the citations."""

    name: str = "citations"

    def __init__(self, tasks: list[BenchmarkTask]):
        self.tasks = tasks

    async def run_task(self, task: BenchmarkTask, model: str) -> EvalResult:
        from deepsearch.deep_search import ask_deep_search

        started = time.monotonic()
        try:
            answer = await ask_deep_search([{"role": "user", "content": task.query}], model=model)
        except Exception as e:
            return EvalResult(
                task_id=task.id,
                score=0.0,
                details={"error": str(e) or e.__class__.__name__},
                elapsed_seconds=time.monotonic() - started,
            )
        result = evaluate_response(task, answer)
        result.elapsed_seconds = time.monotonic() - started
        return result

    async def run(
        self,
        model: str,
        limit: int | None = None,
        output_dir: str = "benchmarks/results",
    ) -> BenchmarkReport:
        tasks = self.tasks[:limit] if limit else list(self.tasks)
        print(f"Running {self.name} benchmark: {len(tasks)} task(s), model={model}")

        results: list[EvalResult] = []
        for index, task in enumerate(tasks, 1):
            print(f"  [{index}/{len(tasks)}] {task.query[:80]}")
            result = await self.run_task(task, model)
            status = f"ERROR {result.details['error']}" if result.failed else f"{result.score:.1%}"
            print(f"      {status} ({result.elapsed_seconds:.1f}s)")
            results.append(result)

        report = BenchmarkReport(
            benchmark_name=self.name,
            model=model,
            timestamp=datetime.now().strftime("%Y%m%d_%H%M%S"),
            results=results,
            total_tasks=len(tasks),
        )
        path = report.save(output_dir)
        print("\n".join(report.summary_lines()))
        print(f"Saved {path}")
        return report
