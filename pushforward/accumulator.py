from dataclasses import dataclass
from typing import Any, Iterator, List

import jax.numpy

EXPLICIT = "explicit"
JACOBIAN = "jacobian"


@dataclass(frozen=True)
class Contribution:
    source: str
    log_value: Any
    name: str = None


class LogDensityAccumulator:
    """
    Running log density for exactly one evaluation of a model.

    The value is the log of a function proportional to the target density. It starts
    at zero and only ever changes by `add`. Contributions may be negative (contracting
    transforms have negative log Jacobians). Values may be jax tracers, so the same
    accumulator works when the log density is being differentiated
    """

    contributions: List[Contribution]

    def __init__(self):
        self.reset()

    def reset(self):
        self._value = 0.0
        self.contributions = []

    def add(self, log_value, source: str = EXPLICIT, name: str = None):
        if source not in (EXPLICIT, JACOBIAN):
            raise ValueError(f"Contribution source must be '{EXPLICIT}' or '{JACOBIAN}', found '{source}'")

        log_value = jax.numpy.sum(log_value)
        self._value = self._value + log_value
        self.contributions.append(Contribution(source, log_value, name))

    def value(self):
        return self._value

    def total(self, source: str):
        return sum((contribution.log_value for contribution in self.contributions if contribution.source == source), 0.0)

    def __iter__(self) -> Iterator[Contribution]:
        for contribution in self.contributions:
            yield contribution

    def __len__(self):
        return len(self.contributions)
