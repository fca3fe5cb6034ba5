from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from csrapprover.errors import ConfigurationError
from csrapprover.kubernetes import SigningRequest


class Inspector:
    """
    A single policy check.

    inspect() returns an empty string when it has no objection to the request,
    otherwise a human readable reason. It raises ClusterError only for failures
    unrelated to the request's content, never to express a verdict.

    Instances are immutable once built: configure() hands back a new instance
    (or self for an empty configuration) so that the registered default stays
    usable and concurrent inspections never observe a half-applied config.
    """

    name = ""

    def __init__(self):
        self.config = ""

    def configure(self, config: str) -> "Inspector":
        if not config:
            return self
        inspector = self._from_config(config)
        inspector.config = config
        return inspector

    def _from_config(self, config: str) -> "Inspector":
        raise ConfigurationError(f"{self.name}: configuration not supported")

    def inspect(self, client, request: SigningRequest) -> str:
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name}={self.config}>"


class Registry:
    """
    Inspectors by name. Filled once at startup, read-only afterwards.
    """

    def __init__(self):
        self._inspectors: Dict[str, Inspector] = {}

    def register(self, inspector: Inspector):
        if inspector.name in self._inspectors:
            raise ValueError(f"inspector {inspector.name} registered twice")
        self._inspectors[inspector.name] = inspector

    def get(self, name: str) -> Optional[Inspector]:
        return self._inspectors.get(name)

    def names(self) -> List[str]:
        return sorted(self._inspectors)

    def __contains__(self, name: str) -> bool:
        return name in self._inspectors


@dataclass(frozen=True)
class ChainEntry:
    name: str
    config: str
    inspector: Inspector

    def __str__(self):
        if self.config:
            return f"{self.name}={self.config}"
        return self.name


class InspectorChain:
    """
    An ordered list of configured inspectors, built from specs of the form
    "name" or "name=config".
    """

    def __init__(self, registry: Registry):
        self.registry = registry
        self._entries: List[ChainEntry] = []

    @classmethod
    def parse(cls, registry: Registry, specs: Iterable[str]) -> "InspectorChain":
        chain = cls(registry)
        for spec in specs:
            chain.add(spec)
        return chain

    def add(self, spec: str):
        name, _, config = spec.partition("=")
        name = name.strip()
        inspector = self.registry.get(name)
        if inspector is None:
            raise ConfigurationError(
                f"unknown inspector {name!r}, known are {', '.join(self.registry.names())}"
            )
        try:
            configured = inspector.configure(config)
        except ConfigurationError as e:
            raise ConfigurationError(f"{spec}: {e}") from e
        self._entries.append(ChainEntry(name, config, configured))

    def __iter__(self) -> Iterator[ChainEntry]:
        return iter(self._entries)

    def __len__(self):
        return len(self._entries)

    def __getitem__(self, index) -> ChainEntry:
        return self._entries[index]

    def __str__(self):
        return ",".join(str(entry) for entry in self._entries)
