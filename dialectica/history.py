"""Bounded, newest-first ledger of completed runs with an injected durable store."""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from dialectica.models import (
    AgentResult,
    AnalysisMode,
    AnalysisRequest,
    Citation,
    Failed,
    Ok,
    OrchestrationRun,
    Outcome,
    RunState,
)

logger = logging.getLogger(__name__)

MAX_HISTORY_ITEMS = 5
DEFAULT_KEY = "dialectic_history"


class HistoryStore(Protocol):
    """Durable key-value capability: a bounded list of JSON-able dicts per key."""

    def get(self, key: str) -> list[dict[str, Any]] | None: ...

    def set(self, key: str, items: list[dict[str, Any]]) -> None: ...


class InMemoryHistoryStore:
    def __init__(self) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}

    def get(self, key: str) -> list[dict[str, Any]] | None:
        items = self._data.get(key)
        return list(items) if items is not None else None

    def set(self, key: str, items: list[dict[str, Any]]) -> None:
        self._data[key] = list(items)


class JsonFileHistoryStore:
    """Keeps every key in one JSON file, rewritten atomically on each set."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("History file %s is corrupt, starting empty: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> list[dict[str, Any]] | None:
        items = self._read_all().get(key)
        return items if isinstance(items, list) else None

    def set(self, key: str, items: list[dict[str, Any]]) -> None:
        data = self._read_all()
        data[key] = items
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".history-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _outcome_to_dict(outcome: Outcome) -> dict[str, Any]:
    if isinstance(outcome, Ok):
        return {
            "status": "ok",
            "text": outcome.text,
            "citations": [{"uri": c.uri, "title": c.title} for c in outcome.citations],
        }
    return {"status": "failed", "reason": outcome.reason, "kind": outcome.kind}


def _outcome_from_dict(raw: dict[str, Any]) -> Outcome:
    if raw["status"] == "ok":
        return Ok(
            text=raw["text"],
            citations=tuple(Citation(uri=c["uri"], title=c["title"]) for c in raw.get("citations", [])),
        )
    return Failed(reason=raw["reason"], kind=raw.get("kind", "Error"))


def run_to_dict(run: OrchestrationRun) -> dict[str, Any]:
    return {
        "id": run.id,
        "topic": run.request.topic,
        "mode": run.request.mode.value,
        "selected": list(run.request.selected),
        "state": run.state.value,
        "agent_results": {pid: _outcome_to_dict(r.outcome) for pid, r in run.agent_results.items()},
        "synthesis": _outcome_to_dict(run.synthesis) if run.synthesis is not None else None,
        "started_at": run.started_at.isoformat(),
        "completed_at": run.completed_at.isoformat(),
        "failure": run.failure,
    }


def run_from_dict(raw: dict[str, Any]) -> OrchestrationRun:
    request = AnalysisRequest(
        topic=raw["topic"],
        mode=AnalysisMode(raw["mode"]),
        selected=tuple(raw["selected"]),
    )
    return OrchestrationRun(
        id=int(raw["id"]),
        request=request,
        state=RunState(raw["state"]),
        agent_results={
            pid: AgentResult(pid, _outcome_from_dict(outcome))
            for pid, outcome in raw["agent_results"].items()
        },
        synthesis=_outcome_from_dict(raw["synthesis"]) if raw.get("synthesis") else None,
        started_at=datetime.fromisoformat(raw["started_at"]),
        completed_at=datetime.fromisoformat(raw["completed_at"]),
        failure=raw.get("failure"),
    )


def summarize(run: OrchestrationRun) -> str:
    """One-line label for history listings, e.g. 'Dialectic: CHOLA vs MALANDRA'."""
    selected = run.request.selected
    if run.request.mode is AnalysisMode.FULL_DIALECTIC:
        return f"Dialectic: {selected[0]} vs {selected[1]}"
    if run.request.mode is AnalysisMode.DISRUPTION:
        return f"Disruption: {selected[0]} Hybrid"
    return f"Panel: {', '.join(selected)}"


class HistoryLedger:
    """Capacity-bounded FIFO-by-age record of runs, newest first.

    Appends are serialized with a lock and written through to the store.
    """

    def __init__(
        self,
        store: HistoryStore,
        capacity: int = MAX_HISTORY_ITEMS,
        key: str = DEFAULT_KEY,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be >= 1, got {capacity}")
        self._store = store
        self._capacity = capacity
        self._key = key
        self._lock = threading.Lock()
        self._runs: list[OrchestrationRun] = self._load()

    @property
    def capacity(self) -> int:
        return self._capacity

    def _load(self) -> list[OrchestrationRun]:
        runs: list[OrchestrationRun] = []
        for raw in self._store.get(self._key) or []:
            try:
                runs.append(run_from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable history entry: %s", exc)
        return runs[: self._capacity]

    def _commit(self, runs: list[OrchestrationRun]) -> None:
        # Store first: memory only changes once the write succeeded
        self._store.set(self._key, [run_to_dict(r) for r in runs])
        self._runs = runs

    def append(self, run: OrchestrationRun) -> None:
        with self._lock:
            runs = [run, *self._runs]
            if len(runs) > self._capacity:
                logger.debug("History evicted %d oldest run(s)", len(runs) - self._capacity)
            self._commit(runs[: self._capacity])

    def list(self) -> tuple[OrchestrationRun, ...]:
        with self._lock:
            return tuple(self._runs)

    def clear(self) -> None:
        with self._lock:
            self._commit([])

    def __len__(self) -> int:
        return len(self._runs)
