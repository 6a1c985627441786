"""Matching configuration."""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

STRATEGIES = ("auto", "direct", "fft")


@dataclass(frozen=True)
class MatchConfig:
    """Options controlling how a match is computed.

    ``strategy`` selects the cross-term evaluation (``"auto"``, ``"direct"``
    or ``"fft"``). ``parallel`` enables thread-pool execution over
    ``workers`` threads (``None`` means one per CPU). ``min_variance`` is the
    relative tolerance below which a normalized denominator counts as zero.
    """

    strategy: str = "auto"
    parallel: bool = False
    workers: Optional[int] = None
    min_variance: float = 1e-10

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise ConfigError(
                f"unknown strategy '{self.strategy}', expected one of {', '.join(STRATEGIES)}"
            )
        if self.workers is not None and (
            isinstance(self.workers, bool) or not isinstance(self.workers, int) or self.workers < 1
        ):
            raise ConfigError(f"workers must be a positive integer, got {self.workers!r}")
        if not isinstance(self.min_variance, (int, float)) or not self.min_variance >= 0.0:
            raise ConfigError(f"min_variance must be >= 0, got {self.min_variance!r}")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "MatchConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**dict(values))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_CONFIG = MatchConfig()
