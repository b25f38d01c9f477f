import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import jax
import jax.numpy
import numpy

from .exceptions import DeclarationError, DomainError

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def is_finite(value) -> bool:
    return bool(numpy.all(numpy.isfinite(numpy.asarray(value))))


def point_string(values: Dict[str, Any], names: Iterable[str]) -> str:
    return ", ".join(f"{name} = {numpy.asarray(values[name]).tolist()}" for name in names)


def _infer_inputs(function: Callable) -> Tuple[str, ...]:
    try:
        signature = inspect.signature(function)
    except (TypeError, ValueError) as e:
        raise DeclarationError("Unable to read the expression's arguments, pass inputs explicitly") from e

    inputs = []
    for name, parameter in signature.parameters.items():
        if parameter.kind in _POSITIONAL:
            inputs.append(name)
        elif parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            raise DeclarationError("Expressions taking *args must pass inputs explicitly")
    return tuple(inputs)


@dataclass(frozen=True)
class Expression:
    """
    A deterministic function of named model variables.

    `function` is called positionally with the values of `inputs` and must be written
    with `jax.numpy` so it can be traced and differentiated. `wrt` is the input the
    expression is treated as a transform of when a change of variables correction is
    computed. Every other input is held fixed, so `lambda mu, sigma, z: mu + sigma * z`
    with `wrt = "z"` is a location-scale transform of `z`.
    """

    function: Callable
    inputs: Tuple[str, ...]
    wrt: Optional[str] = None

    @classmethod
    def from_function(cls, function: Callable, inputs: Iterable[str] = None, wrt: str = None) -> "Expression":
        """
        Build an expression from a callable. If `inputs` is not given, the names of the
        callable's positional arguments are used. `wrt` defaults to the only input
        """
        if not callable(function):
            raise DeclarationError(f"Expression must be callable, found {type(function).__name__}")

        if inputs is None:
            inputs = _infer_inputs(function)
        else:
            inputs = tuple(inputs)

        if len(set(inputs)) != len(inputs):
            raise DeclarationError(f"Expression inputs {inputs} contain duplicates")

        if wrt is None and len(inputs) == 1:
            wrt = inputs[0]

        if wrt is not None and wrt not in inputs:
            raise DeclarationError(f"Expression is declared with respect to {wrt}, which is not one of its inputs {inputs}")

        return cls(function, inputs, wrt)

    def __call__(self, values: Dict[str, Any]):
        return jax.numpy.asarray(self.function(*(values[name] for name in self.inputs)))

    def evaluate(self, values: Dict[str, Any], name: str = None):
        """
        Evaluate at concrete values, raising a DomainError if the result is not finite
        """
        try:
            value = self(values)
        except ArithmeticError as e:
            raise DomainError(f"Expression failed at {point_string(values, self.inputs)}: {e}", name) from e

        if not is_finite(value):
            raise DomainError(
                f"Expression is undefined at {point_string(values, self.inputs)} (evaluated to {numpy.asarray(value).tolist()})",
                name,
            )

        return value

    def _partial(self, values: Dict[str, Any]) -> Callable:
        def partial_function(x):
            return self({**values, self.wrt: x})

        return partial_function

    def jacobian(self, values: Dict[str, Any]):
        """
        Derivative of the output with respect to `wrt` by forward-mode autodiff. A scalar
        for scalar transforms, otherwise a matrix with output dimensions first
        """
        if self.wrt is None:
            raise DeclarationError(f"Expression with inputs {self.inputs} has no input to differentiate with respect to")

        x = jax.numpy.asarray(values[self.wrt], dtype=float)
        return jax.jacfwd(self._partial(values))(x)

    def numeric_jacobian(self, values: Dict[str, Any], step: float = 1e-6) -> numpy.ndarray:
        """
        Central finite difference approximation of `jacobian`. With the default step and
        64-bit floats this agrees with autodiff to roughly 1e-6 relative for well-scaled
        smooth expressions. Meant for checking derivatives, not for evaluation
        """
        if self.wrt is None:
            raise DeclarationError(f"Expression with inputs {self.inputs} has no input to differentiate with respect to")

        x = numpy.asarray(values[self.wrt], dtype=numpy.float64)
        function = self._partial(values)

        if x.ndim == 0:
            return (numpy.asarray(function(x + step)) - numpy.asarray(function(x - step))) / (2.0 * step)

        if x.ndim > 1:
            raise ValueError(f"Numeric jacobians are only supported for scalars and vectors, found shape {x.shape}")

        columns = []
        for i in range(x.shape[0]):
            dx = numpy.zeros_like(x)
            dx[i] = step
            columns.append((numpy.asarray(function(x + dx)) - numpy.asarray(function(x - dx))) / (2.0 * step))
        return numpy.stack(columns, axis=-1)
