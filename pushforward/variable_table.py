from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

import jax
import jax.numpy

from .constraints import Real, Support
from .exceptions import CyclicDependencyError, DuplicateDeclarationError, ModelFrozenError
from .expressions import Expression


@dataclass(frozen=True)
class VariableRecord:
    name: str

    @property
    def references(self) -> Tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class ParameterRecord(VariableRecord):
    support: Support = field(default_factory=Real)
    size: Optional[int] = None

    def __post_init__(self):
        if self.size is not None and (not isinstance(self.size, int) or self.size < 1):
            raise ValueError(f"Parameter {self.name} size must be None or a positive integer, found {self.size}")

    def __len__(self):
        return 1 if self.size is None else self.size

    def __repr__(self) -> str:
        shape = "" if self.size is None else f"[{self.size}]"
        return f"{type(self).__name__}({self.name}{shape}, {self.support})"


@dataclass(frozen=True)
class TransformRecord(VariableRecord):
    expression: Expression
    auto_correct: bool = False

    @property
    def references(self) -> Tuple[str, ...]:
        return self.expression.inputs

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name}({','.join(self.expression.inputs)}), auto_correct = {self.auto_correct})"


@dataclass(frozen=True)
class DensityRecord:
    target: str
    family: str
    arguments: Tuple[Any, ...]

    @property
    def references(self) -> Tuple[str, ...]:
        return (self.target,) + tuple(argument for argument in self.arguments if isinstance(argument, str))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.target} ~ {self.family}({', '.join(str(a) for a in self.arguments)}))"


class VariableTable:
    """
    Parameters and derived variables in declaration order.

    A record can only refer to records declared before it, so the dependency graph is
    acyclic by construction. The table is frozen before the first evaluation and is
    read-only from then on, which is what makes concurrent evaluations safe
    """

    variable_components: Dict[str, VariableRecord]
    frozen: bool

    def __init__(self):
        self.variable_components = {}
        self.frozen = False

    def __getitem__(self, variable_name: str) -> VariableRecord:
        return self.variable_components[variable_name]

    def __contains__(self, name: str) -> bool:
        return name in self.variable_components

    def __iter__(self) -> Iterator[str]:
        for name in self.variable_components:
            yield name

    def __len__(self):
        return len(self.variable_components)

    def variables(self) -> Iterator[VariableRecord]:
        for variable in self.variable_components.values():
            yield variable

    def parameters(self) -> Iterator[ParameterRecord]:
        for variable in self.variables():
            if isinstance(variable, ParameterRecord):
                yield variable

    def transforms(self) -> Iterator[TransformRecord]:
        for variable in self.variables():
            if isinstance(variable, TransformRecord):
                yield variable

    def freeze(self):
        self.frozen = True

    def check_writeable(self, name: str):
        if self.frozen:
            raise ModelFrozenError("Declarations are not allowed once the model has been evaluated", name)

    def check_references(self, name: str, references: Iterable[str]):
        for reference in references:
            if reference == name:
                raise CyclicDependencyError(f"{name} refers to itself", name)
            if reference not in self:
                raise CyclicDependencyError(
                    f"{reference} is not declared yet. Variables can only refer to variables declared before them", name
                )

    def declare(self, record: VariableRecord):
        self.check_writeable(record.name)

        if record.name in self:
            raise DuplicateDeclarationError(f"{record.name} is already declared as {self[record.name]!r}", record.name)

        self.check_references(record.name, record.references)
        self.variable_components[record.name] = record

    @property
    def unconstrained_parameter_size(self) -> int:
        return sum(len(record) for record in self.parameters())

    def get_unconstrained_parameters(self, unconstrained_parameter_vector: jax.numpy.ndarray) -> Dict[str, jax.numpy.ndarray]:
        unconstrained_parameter_size = self.unconstrained_parameter_size
        expected_shape = (unconstrained_parameter_size,)

        if unconstrained_parameter_vector.shape != expected_shape:
            raise ValueError(f"Unconstrained variable must be of shape {expected_shape}, found {unconstrained_parameter_vector.shape}")

        used = 0
        parameters = {}
        for variable in self.parameters():
            if variable.size is not None:
                parameters[variable.name] = unconstrained_parameter_vector[used : used + variable.size]
                used += variable.size
            else:
                parameters[variable.name] = unconstrained_parameter_vector[used]
                used += 1
        return parameters
