import re
from dataclasses import dataclass, field
from typing import List, Optional

import yaml

from csrapprover.errors import ConfigurationError

DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value) -> float:
    """
    Seconds in a duration such as "90s", "1m" or "1h30m". Bare numbers are seconds.
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            parts = DURATION_PART.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ConfigurationError(f"invalid duration {value!r}")
            seconds = sum(float(n) * DURATION_UNITS[u] for n, u in parts)
    if seconds < 0:
        raise ConfigurationError(f"invalid duration {value!r}")
    return seconds


def retry_limit(value: Optional[int]) -> Optional[int]:
    """
    Conflict retry bound, None for unbounded. Zero or less means unbounded too.
    """
    if value is None or value <= 0:
        return None
    return value


@dataclass
class Config:
    filters: List[str] = field(default_factory=list)
    deniers: List[str] = field(default_factory=list)
    warners: List[str] = field(default_factory=list)
    delete_after: float = 60.0
    cluster_domain: str = "cluster.local"
    metrics_port: int = 8081
    max_conflict_retries: Optional[int] = 10
    kubeconfig: Optional[str] = None

    @classmethod
    def from_file(cls, path: str) -> "Config":
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"{path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: expected a mapping at the top level")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        config = cls()
        unknown = set(data) - set(config.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"unknown configuration keys {', '.join(sorted(unknown))}")

        for chain in ("filters", "deniers", "warners"):
            specs = data.get(chain) or []
            if isinstance(specs, str) or not all(isinstance(s, str) for s in specs):
                raise ConfigurationError(f"{chain} must be a list of inspector specs")
            setattr(config, chain, list(specs))

        if "delete_after" in data:
            config.delete_after = parse_duration(data["delete_after"])
        if "cluster_domain" in data:
            config.cluster_domain = str(data["cluster_domain"])
        try:
            if "metrics_port" in data:
                config.metrics_port = int(data["metrics_port"])
            if "max_conflict_retries" in data:
                retries = data["max_conflict_retries"]
                config.max_conflict_retries = retry_limit(None if retries is None else int(retries))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(str(e)) from e
        if "kubeconfig" in data:
            config.kubeconfig = data["kubeconfig"]
        return config

    def update_from_args(self, args):
        """
        Command line values win over the file. A chain given on the command
        line replaces the file's chain as a whole.
        """
        for chain in ("filters", "deniers", "warners"):
            specs = getattr(args, chain, None)
            if specs:
                setattr(self, chain, list(specs))
        if args.delete_after is not None:
            self.delete_after = parse_duration(args.delete_after)
        if args.cluster_domain is not None:
            self.cluster_domain = args.cluster_domain
        if args.metrics_port is not None:
            self.metrics_port = args.metrics_port
        if args.max_conflict_retries is not None:
            self.max_conflict_retries = retry_limit(args.max_conflict_retries)
        if args.kubeconfig:
            self.kubeconfig = args.kubeconfig
        return self
