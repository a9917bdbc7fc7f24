"""
Graph analysis and cycle detection for service collections.
"""

from typing import Dict, List, Optional, Set
from collections import defaultdict

from .core import Provider, make_key
from .errors import CircularDependencyError, MissingDependencyError


class DependencyGraph:
    """
    Build and analyze the dependency graph of a service collection.

    Uses Tarjan's algorithm for cycle detection. Lazy registrations contribute
    nodes but no edges: their targets are built on first use, which both breaks
    cycles and defers missing dependencies.
    """

    def __init__(self):
        self.adj_list: Dict[str, List[str]] = defaultdict(list)  # key -> [dependency keys]
        self.providers: Dict[str, Provider] = {}  # key -> provider
        self._index_counter = 0
        self._stack: List[str] = []
        self._lowlinks: Dict[str, int] = {}
        self._index: Dict[str, int] = {}
        self._on_stack: Set[str] = set()
        self._sccs: List[List[str]] = []  # Strongly connected components

    def add_provider(
        self,
        provider: Provider,
        dependencies: List[str],
        tag: Optional[str] = None,
    ) -> None:
        """
        Add provider to graph.

        Args:
            provider: Provider instance
            dependencies: Registry keys of required dependencies
            tag: Tag the provider is registered under
        """
        key = make_key(provider.meta.token, tag)
        self.providers[key] = provider
        self.adj_list[key] = [] if provider.meta.lazy else list(dependencies)

    def find_missing(self) -> List[tuple]:
        """Return ``(service_key, dependency_key)`` pairs with no provider."""
        missing = []
        for key, deps in self.adj_list.items():
            for dep in deps:
                if dep not in self.providers:
                    missing.append((key, dep))
        return missing

    def detect_cycles(self) -> List[List[str]]:
        """
        Detect cycles using Tarjan's algorithm.

        Returns:
            List of strongly connected components (cycles)
        """
        self._index_counter = 0
        self._stack = []
        self._lowlinks = {}
        self._index = {}
        self._on_stack = set()
        self._sccs = []

        for key in self.providers:
            if key not in self._index:
                self._strongconnect(key)

        # Filter out trivial SCCs (single node with no self-loop)
        return [
            list(reversed(scc)) for scc in self._sccs
            if len(scc) > 1 or (len(scc) == 1 and scc[0] in self.adj_list[scc[0]])
        ]

    def _strongconnect(self, key: str) -> None:
        """Tarjan's algorithm recursive helper."""
        self._index[key] = self._index_counter
        self._lowlinks[key] = self._index_counter
        self._index_counter += 1
        self._stack.append(key)
        self._on_stack.add(key)

        for dep in self.adj_list.get(key, []):
            if dep not in self.providers:
                # Reported by find_missing
                continue

            if dep not in self._index:
                self._strongconnect(dep)
                self._lowlinks[key] = min(self._lowlinks[key], self._lowlinks[dep])
            elif dep in self._on_stack:
                self._lowlinks[key] = min(self._lowlinks[key], self._index[dep])

        # If key is a root, pop the stack and create SCC
        if self._lowlinks[key] == self._index[key]:
            scc = []
            while True:
                w = self._stack.pop()
                self._on_stack.remove(w)
                scc.append(w)
                if w == key:
                    break
            self._sccs.append(scc)

    def validate(self) -> None:
        """
        Raise on the first missing dependency, then on cycles.

        Raises:
            MissingDependencyError: Required dependency not registered
            CircularDependencyError: Eager registrations form a cycle
        """
        for key, dep in self.find_missing():
            provider = self.providers[key]
            location = (provider.meta.module, provider.meta.line) if provider.meta.line else None
            raise MissingDependencyError(key, dep, service_location=location)

        cycles = self.detect_cycles()
        if cycles:
            locations = {}
            for cycle in cycles:
                for key in cycle:
                    meta = self.providers[key].meta
                    if meta.line:
                        locations[key] = (meta.module, meta.line)
            raise CircularDependencyError(cycles, locations=locations)
