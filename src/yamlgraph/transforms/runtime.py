"""Execution of user-authored transform snippets.

Mapping files are shared and may be untrusted, so snippets run as restricted
Python: the AST is checked against a whitelist before compilation, builtins
are replaced by a curated table, and element and document data are passed as
read-only views. Snippets execute in a separate worker process that is
killed when it overruns its budget, so neither a caught exception nor a long
C-level operation can outlast the deadline.
"""

import ast
import logging
import multiprocessing
import re
import threading
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import CodeType, MappingProxyType
from typing import Any

from yamlgraph.models import TransformMatch, TransformRule
from yamlgraph.parser import data_at

from .helpers import HELPERS, bounded_range, freeze, thaw

logger = logging.getLogger(__name__)

SNIPPET_FUNCTION = "__snippet__"
WORKER_READY = "ready"
WORKER_START_TIMEOUT = 30.0

ALLOWED_NODES = (
    ast.Module, ast.Expr, ast.Assign, ast.AugAssign, ast.If, ast.For, ast.While,
    ast.Break, ast.Continue, ast.Pass, ast.Return, ast.Delete, ast.Try, ast.ExceptHandler,
    ast.Raise, ast.Assert, ast.FunctionDef, ast.arguments, ast.arg,
    ast.BoolOp, ast.BinOp, ast.UnaryOp, ast.Lambda, ast.IfExp, ast.Dict, ast.Set,
    ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp, ast.comprehension,
    ast.Compare, ast.Call, ast.keyword, ast.FormattedValue, ast.JoinedStr, ast.Constant,
    ast.Attribute, ast.Subscript, ast.Starred, ast.Name, ast.List, ast.Tuple, ast.Slice,
    ast.expr_context, ast.operator, ast.boolop, ast.cmpop, ast.unaryop,
)

# Reachable without a leading underscore but lead to frames or format-string attribute walks
FORBIDDEN_ATTRIBUTES = frozenset({
    "format", "format_map", "gi_frame", "gi_code", "cr_frame", "cr_code", "ag_frame",
    "f_globals", "f_locals", "f_builtins", "f_back", "tb_frame", "tb_next",
})

SAFE_BUILTINS = {
    "abs": abs, "all": all, "any": any, "bool": bool, "dict": dict, "enumerate": enumerate,
    "filter": filter, "float": float, "int": int, "isinstance": isinstance, "len": len,
    "list": list, "map": map, "max": max, "min": min, "range": bounded_range,
    "reversed": reversed, "round": round, "set": set, "sorted": sorted, "str": str,
    "sum": sum, "tuple": tuple, "zip": zip,
    "Exception": Exception, "ValueError": ValueError, "KeyError": KeyError,
    "TypeError": TypeError, "IndexError": IndexError,
}


class SnippetRejectedError(ValueError):
    """A snippet uses syntax or names outside the allowed subset."""


class SnippetTimeoutError(TimeoutError):
    """A snippet exceeded its execution budget."""


@dataclass(frozen=True)
class TransformContext:
    """What a snippet can see: the matched element and read-only document views."""
    element: Any
    scope: str = "node"
    document: Any = None
    all_nodes: Any = field(default_factory=lambda: MappingProxyType({}))
    all_edges: tuple = ()
    output: tuple = ()


class SnippetRuntime(ABC):
    """Executes one snippet against one context and returns its result."""

    @abstractmethod
    def execute(self, code: str, context: TransformContext) -> Any:
        """Run ``code``; raise on failure."""
        pass


class SandboxedSnippetRuntime(SnippetRuntime):
    """Restricted-Python snippet runtime with a per-invocation time budget.

    The snippet body runs as a function: ``return`` works, a trailing expression
    is returned, and otherwise a top-level ``result`` variable is returned.
    Names available: ``node`` or ``edge`` (the element), ``element``, ``fields``,
    ``doc``, ``nodes``, ``edges``, ``output``, ``ctx`` plus the helpers.

    Snippets are checked here and executed by a long-lived worker process.
    A snippet that overruns ``timeout_seconds`` gets its worker terminated;
    the next call starts a fresh one. Call ``close()`` to stop the worker early.
    """

    def __init__(self, timeout_seconds: float = 1.0):
        self.timeout_seconds = timeout_seconds
        self._compiled: dict[str, CodeType] = {}
        self._process = None
        self._connection = None
        self._finalizer = None
        self._lock = threading.Lock()

    def compile(self, code: str) -> CodeType:
        """Validate and compile a snippet (cached by source text)."""
        cached = self._compiled.get(code)
        if cached is not None:
            return cached

        try:
            tree = ast.parse(code, mode="exec")
        except SyntaxError as e:
            raise SnippetRejectedError(f"Syntax error in snippet: {e.msg} (line {e.lineno})") from e
        self._check(tree)

        body = tree.body or [ast.Pass()]
        last = body[-1]
        if isinstance(last, ast.Expr):
            body[-1] = ast.Return(value=last.value)
        elif not isinstance(last, ast.Return) and _assigns_result(body):
            body.append(ast.Return(value=ast.Name(id="result", ctx=ast.Load())))

        module = ast.parse(f"def {SNIPPET_FUNCTION}():\n    pass\n")
        module.body[0].body = body
        module = ast.fix_missing_locations(module)
        compiled = compile(module, "<transform>", "exec")
        self._compiled[code] = compiled
        return compiled

    def execute(self, code: str, context: TransformContext) -> Any:
        # Rejections are raised here, without a round trip to the worker
        self.compile(code)
        with self._lock:
            connection = self._ensure_worker()
            connection.send((code, _portable_context(context)))
            if not connection.poll(self.timeout_seconds):
                logger.warning(f"Transform snippet exceeded {self.timeout_seconds}s, terminating worker")
                self._stop_worker()
                raise SnippetTimeoutError(f"Snippet exceeded {self.timeout_seconds}s")
            try:
                status, value = connection.recv()
            except EOFError as e:
                self._stop_worker()
                raise RuntimeError("Transform worker exited while running a snippet") from e

        if status == "error":
            raise value
        return value

    def close(self) -> None:
        """Stop the worker process, if one is running."""
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.send(None)
                except OSError as e:
                    logger.debug(f"Transform worker already gone: {e}")
            self._stop_worker(grace=1.0)

    def _ensure_worker(self):
        if self._process is not None and self._process.is_alive():
            return self._connection
        self._stop_worker()

        mp_context = multiprocessing.get_context()
        parent_end, child_end = mp_context.Pipe()
        process = mp_context.Process(
            target=_worker_main, args=(child_end,), name="yamlgraph-transforms", daemon=True,
        )
        process.start()
        child_end.close()
        self._process, self._connection = process, parent_end
        self._finalizer = weakref.finalize(self, _terminate_worker, process, parent_end)

        # The snippet budget starts once the worker is up, not while it imports
        try:
            ready = parent_end.poll(WORKER_START_TIMEOUT) and parent_end.recv() == WORKER_READY
        except EOFError:
            ready = False
        if not ready:
            self._stop_worker()
            raise RuntimeError("Transform worker failed to start")
        logger.debug(f"Started transform worker pid={process.pid}")
        return parent_end

    def _stop_worker(self, grace: float = 0.0) -> None:
        process, finalizer = self._process, self._finalizer
        self._process = self._connection = self._finalizer = None
        if process is not None and grace:
            process.join(grace)
        if finalizer is not None:
            finalizer()

    def run_compiled(self, compiled: CodeType, context: TransformContext) -> Any:
        """Run an already checked snippet in this process, without a time limit."""
        element_name = "edge" if context.scope == "edge" else "node"
        namespace = {
            "__builtins__": SAFE_BUILTINS,
            **HELPERS,
            element_name: context.element,
            "element": context.element,
            "fields": data_at(context.element, "fields", MappingProxyType({})),
            "doc": context.document,
            "nodes": context.all_nodes,
            "edges": context.all_edges,
            "output": context.output,
            "ctx": context,
        }
        exec(compiled, namespace)
        return namespace[SNIPPET_FUNCTION]()

    def _check(self, tree: ast.AST) -> None:
        for node in ast.walk(tree):
            if not isinstance(node, ALLOWED_NODES):
                raise SnippetRejectedError(
                    f"'{type(node).__name__}' is not allowed in transforms (line {getattr(node, 'lineno', '?')})"
                )
            if isinstance(node, ast.Name) and node.id.startswith("__"):
                raise SnippetRejectedError(f"Name '{node.id}' is not allowed in transforms")
            if isinstance(node, ast.Attribute) and (
                node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES
            ):
                raise SnippetRejectedError(f"Attribute '{node.attr}' is not allowed in transforms")
            if isinstance(node, (ast.FunctionDef, ast.arg)):
                name = node.name if isinstance(node, ast.FunctionDef) else node.arg
                if name.startswith("__"):
                    raise SnippetRejectedError(f"Name '{name}' is not allowed in transforms")
                if isinstance(node, ast.FunctionDef) and node.decorator_list:
                    raise SnippetRejectedError("Decorators are not allowed in transforms")


def _assigns_result(body: list[ast.stmt]) -> bool:
    for statement in body:
        if isinstance(statement, ast.Assign):
            if any(isinstance(t, ast.Name) and t.id == "result" for t in statement.targets):
                return True
    return False


def _terminate_worker(process, connection) -> None:
    """Stop a worker process; also runs when its runtime is garbage collected."""
    connection.close()
    if process.is_alive():
        process.terminate()
        process.join(1.0)
    if process.is_alive():
        process.kill()
        process.join()


def _portable_context(context: TransformContext) -> dict[str, Any]:
    """Plain, picklable copy of a context for the worker process."""
    return {
        "element": thaw(context.element),
        "scope": context.scope,
        "document": thaw(context.document),
        "all_nodes": thaw(context.all_nodes),
        "all_edges": thaw(context.all_edges),
        "output": list(context.output),
    }


def _restore_context(payload: dict[str, Any]) -> TransformContext:
    return TransformContext(
        element=freeze(payload["element"]),
        scope=payload["scope"],
        document=freeze(payload["document"]),
        all_nodes=freeze(payload["all_nodes"]),
        all_edges=freeze(payload["all_edges"]),
        output=tuple(payload["output"]),
    )


def _worker_main(connection) -> None:
    """Worker loop: answer each (code, context) request with ("ok", value) or ("error", exception).

    ``None`` ends the loop. Results and exceptions that cannot be pickled are
    replaced by a TypeError / RuntimeError describing them.
    """
    runtime = SandboxedSnippetRuntime()
    connection.send(WORKER_READY)
    while True:
        try:
            request = connection.recv()
        except EOFError:
            break
        if request is None:
            break

        code, payload = request
        try:
            reply = ("ok", thaw(runtime.run_compiled(runtime.compile(code), _restore_context(payload))))
        except Exception as e:
            reply = ("error", e)

        try:
            connection.send(reply)
        except Exception as e:
            if reply[0] == "ok":
                fallback = TypeError(f"Snippet result of type {type(reply[1]).__name__} cannot be returned: {e}")
            else:
                fallback = RuntimeError(f"{type(reply[1]).__name__}: {reply[1]}")
            connection.send(("error", fallback))
    connection.close()


def matches(match: TransformMatch | None, fields: Any) -> bool:
    """Whether an element's fields satisfy a rule's match condition.

    No condition matches everything; a bare ``field`` means "field exists".
    """
    if match is None:
        return True
    value = data_at(fields, match.field)
    if match.exists is not None:
        return (value is not None) == match.exists
    if match.equals is not None:
        return value == match.equals
    if match.pattern is not None:
        return re.search(match.pattern, "" if value is None else str(value)) is not None
    return value is not None


class AstNodeTransformerRuntime:
    """Applies transform rules to converted elements with per-invocation fault isolation."""

    def __init__(self, snippet_runtime: SnippetRuntime | None = None, enabled: bool = True):
        self.snippet_runtime = snippet_runtime or SandboxedSnippetRuntime()
        self.enabled = enabled
        self.warnings: list[str] = []

    def apply(self, rules: list[TransformRule], element_id: str, context: TransformContext) -> list[Any]:
        """Run every matching rule in order; returns the successful (non-None) results.

        A failing snippet is logged and skipped so the element keeps its
        untransformed value and the remaining rules still run.
        """
        if not self.enabled or not rules:
            return []

        fields = data_at(context.element, "fields", context.element)
        results = []
        for index, rule in enumerate(rules):
            if rule.scope != context.scope or not matches(rule.match, fields):
                continue
            try:
                value = self.snippet_runtime.execute(rule.code, context)
            except Exception as e:
                message = f"Transform #{index} failed for {context.scope} '{element_id}': {type(e).__name__}: {e}"
                logger.warning(message)
                self.warnings.append(message)
                continue
            if value is not None:
                results.append(value)
        return results

    def consume_warnings(self) -> list[str]:
        warnings, self.warnings = self.warnings, []
        return warnings
