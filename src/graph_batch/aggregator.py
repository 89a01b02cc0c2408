from __future__ import annotations
from typing import Any, Dict, List, Union

from .models import FailureEntry, ResultEntry
from .utils import to_json

class ResultAggregator:
    """
    Collects pages and failures per original request id.
    Items for one id are kept in arrival order: first page, then each
    continuation page as its fetch completes. Output follows caller input order.
    """

    def __init__(self, order: List[str]):
        self.order = list(order)
        self._pages: Dict[str, List[Any]] = {}
        self._failures: Dict[str, FailureEntry] = {}

    def add_page(self, origin_id: str, items: List[Any]) -> None:
        self._pages.setdefault(origin_id, []).extend(items)

    def add_failure(self, entry: FailureEntry) -> None:
        self._failures[entry["id"]] = entry

    def results(self) -> List[ResultEntry]:
        out: List[ResultEntry] = []
        for origin_id in self.order:
            if origin_id in self._failures:
                out.append(self._failures[origin_id])
            elif origin_id in self._pages:
                out.append({"id": origin_id, "status": 200, "response": {"value": self._pages[origin_id]}})
        return out

    def output(self, as_json: bool = False, depth: int = 20) -> Union[List[ResultEntry], str]:
        results = self.results()
        return to_json(results, depth) if as_json else results
