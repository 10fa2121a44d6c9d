"""
Pipe graph evaluator.

Walks a Pipe DAG in dependency order (parents before children) and runs
each node exactly once per evaluation, memoizing its output so that a pipe
feeding several downstream operators, or several outputs, is not
recomputed. The walk is iterative so deep chains do not hit the recursion
limit.

The first failing step short-circuits the run. write() evaluates every
output and stages every sink before committing any, so a failed pipeline
writes nothing.
"""

from __future__ import annotations

import time
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..exceptions import TuplePipeError
from ..logging_config import configure_logger_for_debug_trace
from .catpy import PipelineResult, pipeline_err, pipeline_ok
from .core import Context, Pipe
from .io import RecordSink, StagedWrite
from .schema import Record

logger = configure_logger_for_debug_trace(__name__)


class Evaluator:
    """
    Evaluates pipes against one Context, computing each node at most once.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a evaluator.
    ::: This is stateful.
    """

    def __init__(self, ctx: Optional[Context] = None):
        self.ctx = ctx or Context()
        self._memo: Dict[Pipe, List[Record]] = {}

    @staticmethod
    def plan(roots: Iterable[Pipe]) -> List[Pipe]:
        """Every node reachable from roots, each once, parents before children."""
        order: List[Pipe] = []
        visited = set()
        stack: List[Tuple[Pipe, bool]] = [(root, False) for root in reversed(list(roots))]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                order.append(node)
                continue
            if node in visited:
                continue
            visited.add(node)
            stack.append((node, True))
            for parent in reversed(node.parents):
                if parent not in visited:
                    stack.append((parent, False))
        return order

    def evaluate(self, pipe: Pipe) -> PipelineResult[List[Record]]:
        """Records of a single pipe."""
        return self.evaluate_all({"result": pipe}).fmap(lambda results: results["result"])

    def evaluate_all(self, pipes: Mapping[str, Pipe]) -> PipelineResult[Dict[str, List[Record]]]:
        """Records of several named pipes, sharing work between them."""
        for node in self.plan(pipes.values()):
            if node in self._memo:
                continue
            inputs = [self._memo[p] for p in node.parents]
            start = time.perf_counter()
            result = node.step.execute(inputs, node.schema, self.ctx)
            if result.is_err():
                logger.error(f"[{self.ctx.name}] {node.step.describe()} failed: {result.error}")
                return result
            self._memo[node] = result.value
            logger.debug(
                f"[{self.ctx.name}] {node.step.describe()}: "
                f"{[len(i) for i in inputs]} -> {len(result.value)} records "
                f"in {time.perf_counter() - start:.3f}s"
            )
        return pipeline_ok({name: self._memo[pipe] for name, pipe in pipes.items()})

    def write(self, outputs: Mapping[str, Tuple[Pipe, RecordSink]]) -> PipelineResult[Dict[str, int]]:
        """
        Evaluate every output pipe, stage each to its sink, then commit them all.

        Returns records written per output. If any output fails to evaluate
        or stage, every staged write is discarded and nothing is committed.
        """
        evaluated = self.evaluate_all({name: pipe for name, (pipe, _) in outputs.items()})
        if evaluated.is_err():
            return evaluated

        staged: Dict[str, StagedWrite] = {}
        name = ""
        try:
            for name, (pipe, sink) in outputs.items():
                staged[name] = sink.stage(evaluated.value[name], pipe.schema)
            counts = {}
            for name, write in staged.items():
                counts[name] = write.commit()
        except TuplePipeError as e:
            logger.error(f"[{self.ctx.name}] output {name!r} failed: {e}")
            return pipeline_err(f"sink:{name}", str(e), e)
        except OSError as e:
            logger.error(f"[{self.ctx.name}] output {name!r} failed: {e}")
            return pipeline_err(f"sink:{name}", f"Cannot write output {name!r}: {e}", e)
        finally:
            for write in staged.values():
                write.discard()
        return pipeline_ok(counts)
