from dataclasses import dataclass
from functools import partial
import jax
import jax.numpy
import logging
import numbers
import numpy
import warnings
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pushforward import corrector, math
from pushforward.accumulator import JACOBIAN, Contribution, LogDensityAccumulator
from pushforward.constraints import Real, Support
from pushforward.exceptions import DeclarationError, DomainError, EvaluationError, MissingCorrectionWarning
from pushforward.expressions import Expression
from pushforward.variable_table import DensityRecord, ParameterRecord, TransformRecord, VariableTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Evaluation:
    """
    Result of evaluating a model at one point.

    If the point is outside the model's domain (an expression is undefined there, or an
    automatically corrected transform is not invertible there), `log_density` is `-inf`,
    `gradient` is None, and `error` holds the reason
    """

    derived_values: Dict[str, numpy.ndarray]
    log_density: float
    gradient: Optional[Dict[str, numpy.ndarray]]
    contributions: Tuple[Contribution, ...]
    error: Optional[EvaluationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Model:
    """
    A log density built from parameter declarations, derived variables, and density
    statements.

    Declarations happen first. The first evaluation freezes the model and no more
    declarations are allowed after that::

        model = Model()
        model.declare_parameter("x")
        model.declare_derived("y", lambda x: jax.numpy.exp(x) + x / 10, auto_correct=True)
        model.add_density("x", "normal", 0.0, 1.0)
        model.add_density("y", "normal", 0.0, 1.0)
        model.evaluate({"x": 0.0}).log_density

    A derived variable declared with `auto_correct=True` adds `log |f'(x)|` to the log
    density as soon as it is computed, so a density statement on it describes its
    distribution. Without `auto_correct` no correction is ever added, and a density
    statement on it produces a `MissingCorrectionWarning`
    """

    variable_table: VariableTable
    statements: List[Union[TransformRecord, DensityRecord]]

    def __init__(self):
        self.variable_table = VariableTable()
        self.statements = []
        self._warned = set()

    @property
    def size(self) -> int:
        """Number of unconstrained parameters"""
        return self.variable_table.unconstrained_parameter_size

    @property
    def parameter_names(self) -> List[str]:
        return [record.name for record in self.variable_table.parameters()]

    @property
    def derived_names(self) -> List[str]:
        return [record.name for record in self.variable_table.transforms()]

    def declare_parameter(self, name: str, support: Support = None, size: int = None) -> ParameterRecord:
        """
        Declare a free parameter with a flat prior over `support` (the whole real line by
        default). `size` makes it a vector parameter with that many elements
        """
        if support is None:
            support = Real()
        record = ParameterRecord(name, support, size)
        self.variable_table.declare(record)
        logger.debug(f"Declared {record!r}")
        return record

    def declare_derived(
        self,
        name: str,
        expression: Union[Expression, Callable],
        auto_correct: bool = False,
        inputs: Iterable[str] = None,
        wrt: str = None,
    ) -> TransformRecord:
        """
        Declare a variable computed from variables declared before it.

        `expression` is an `Expression` or a callable written with `jax.numpy`. The
        callable's argument names are the variables it reads unless `inputs` is given.

        With `auto_correct` the log absolute derivative of the expression with respect to
        `wrt` (which defaults to the only input) is added to the log density on every
        evaluation
        """
        if not isinstance(expression, Expression):
            expression = Expression.from_function(expression, inputs, wrt)
        elif inputs is not None or wrt is not None:
            raise DeclarationError("inputs and wrt can only be given along with a callable, not an Expression", name)

        if auto_correct and expression.wrt is None:
            raise DeclarationError(
                f"Automatic correction needs to know which of {expression.inputs} the expression transforms, pass wrt", name
            )

        record = TransformRecord(name, expression, bool(auto_correct))
        self.variable_table.declare(record)
        self.statements.append(record)
        logger.debug(f"Declared {record!r}")
        return record

    def add_density(self, target: str, family: str, *arguments) -> DensityRecord:
        """
        Add the log density of distribution `family` at `target` to the model. Arguments are
        numbers or the names of declared variables
        """
        self.variable_table.check_writeable(target)

        if family not in math.distributions:
            raise DeclarationError(f"Unknown distribution {family}, expected one of {sorted(math.distributions)}", target)

        expected_count = math.argument_count(family)
        if len(arguments) != expected_count:
            raise DeclarationError(f"{family} takes {expected_count} argument(s), found {len(arguments)}", target)

        for argument in arguments:
            if not isinstance(argument, (str, numbers.Number, numpy.ndarray, jax.Array)):
                raise DeclarationError(
                    f"Distribution arguments must be numbers or variable names, found {type(argument).__name__}", target
                )

        record = DensityRecord(target, family, tuple(arguments))
        self.variable_table.check_references(None, record.references)

        target_record = self.variable_table[target]
        if isinstance(target_record, TransformRecord) and not target_record.auto_correct and target not in self._warned:
            self._warned.add(target)
            warnings.warn(MissingCorrectionWarning(target), stacklevel=2)

        self.statements.append(record)
        logger.debug(f"Declared {record!r}")
        return record

    def _run(self, values: Dict[str, Any], accumulator: LogDensityAccumulator, checked: bool) -> Dict[str, Any]:
        """
        Walk the statements in declaration order, filling in derived values and adding to
        the accumulator. `checked` raises on undefined expressions and non-invertible
        transforms, which only works with concrete (not traced) values
        """
        values = dict(values)

        for statement in self.statements:
            match statement:
                case TransformRecord():
                    if checked:
                        values[statement.name] = statement.expression.evaluate(values, statement.name)
                    else:
                        values[statement.name] = statement.expression(values)

                    if statement.auto_correct:
                        corrector.correct_backward(accumulator, statement, values, checked)
                case DensityRecord():
                    arguments = [values[argument] if isinstance(argument, str) else argument for argument in statement.arguments]
                    log_density = math.distributions[statement.family](values[statement.target], *arguments)

                    if checked and numpy.any(numpy.isnan(numpy.asarray(log_density))):
                        raise DomainError(f"{statement.family} log density is undefined for {statement!r}", statement.target)

                    accumulator.add(log_density, name=statement.target)
                case _:
                    raise Exception(f"Internal error: unknown statement {statement}")

        return values

    def _prepare_parameters(self, values: Dict[str, Any]) -> Dict[str, jax.numpy.ndarray]:
        for name in values:
            if name not in self.variable_table or not isinstance(self.variable_table[name], ParameterRecord):
                raise ValueError(f"{name} is not a declared parameter")

        parameters = {}
        for record in self.variable_table.parameters():
            value = jax.numpy.asarray(values[record.name], dtype=float)

            expected_shape = () if record.size is None else (record.size,)
            if value.shape != expected_shape:
                raise ValueError(f"{record.name} must have shape {expected_shape}, found {value.shape}")

            if not record.support.contains(value):
                raise DomainError(f"{numpy.asarray(value).tolist()} is outside the support {record.support}", record.name)

            parameters[record.name] = value
        return parameters

    def _traced_log_density(self, parameters: Dict[str, jax.numpy.ndarray]):
        accumulator = LogDensityAccumulator()
        self._run(parameters, accumulator, checked=False)
        return jax.numpy.asarray(accumulator.value())

    def evaluate(
        self,
        values: Dict[str, Any],
        gradient: bool = False,
        strict: bool = False,
        accumulator: LogDensityAccumulator = None,
    ) -> Evaluation:
        """
        Evaluate the log density with parameters at `values` (on their constrained scale).

        Contributions are added to `accumulator` if one is given (it is reset first),
        otherwise to a new one. With `gradient` the gradient of the log density with
        respect to each parameter is computed as well.

        A DomainError or NonInvertibleError during evaluation means the point has zero
        density: the result has `log_density = -inf` and carries the error. With `strict`
        the error is raised instead
        """
        self.variable_table.freeze()

        if accumulator is None:
            accumulator = LogDensityAccumulator()
        else:
            accumulator.reset()

        try:
            parameters = self._prepare_parameters(values)
            computed_values = self._run(parameters, accumulator, checked=True)
        except EvaluationError as e:
            if strict:
                raise
            logger.debug(f"Evaluation failed, treating as zero density: {e}")
            return Evaluation({}, -numpy.inf, None, self._concrete_contributions(accumulator), e)

        derived_values = {name: numpy.asarray(computed_values[name]) for name in self.derived_names}

        gradient_values = None
        if gradient:
            device_gradient = jax.grad(self._traced_log_density)(parameters)
            gradient_values = {name: numpy.asarray(value) for name, value in device_gradient.items()}

        return Evaluation(derived_values, float(accumulator.value()), gradient_values, self._concrete_contributions(accumulator))

    @staticmethod
    def _concrete_contributions(accumulator: LogDensityAccumulator) -> Tuple[Contribution, ...]:
        return tuple(Contribution(c.source, float(c.log_value), c.name) for c in accumulator)

    def _constrain(self, unconstrained_parameter_vector, accumulator: LogDensityAccumulator = None):
        unconstrained = self.variable_table.get_unconstrained_parameters(unconstrained_parameter_vector)

        parameters = {}
        for record in self.variable_table.parameters():
            parameters[record.name], log_jacobian = record.support.constrain(unconstrained[record.name])
            if accumulator is not None:
                accumulator.add(log_jacobian, source=JACOBIAN, name=record.name)

        return parameters

    @partial(jax.jit, static_argnums=(0, 2))
    def _log_density(self, unconstrained_parameter_vector: jax.numpy.ndarray, include_jacobian: bool = True):
        accumulator = LogDensityAccumulator()
        parameters = self._constrain(unconstrained_parameter_vector, accumulator if include_jacobian else None)
        self._run(parameters, accumulator, checked=False)
        target = jax.numpy.asarray(accumulator.value())
        return jax.numpy.where(jax.numpy.isnan(target), -jax.numpy.inf, target)

    def log_density(self, unconstrained_parameter_vector, include_jacobian: bool = True):
        """
        Log density at a point in unconstrained space, for use by samplers and optimizers.
        Traceable and differentiable with jax.

        `include_jacobian` controls the Jacobian of the map from unconstrained space onto
        parameter supports. Corrections for derived variables are always included.
        Undefined points give `-inf`
        """
        self.variable_table.freeze()
        return self._log_density(jax.numpy.asarray(unconstrained_parameter_vector, dtype=float), include_jacobian)

    def log_density_no_jac(self, unconstrained_parameter_vector):
        return self.log_density(unconstrained_parameter_vector, False)

    def constrain(self, unconstrained_parameter_vector) -> Dict[str, numpy.ndarray]:
        """
        Map a point in unconstrained space to parameter values and derived values
        """
        self.variable_table.freeze()
        parameters = self._constrain(jax.numpy.asarray(unconstrained_parameter_vector, dtype=float))
        values = self._run(parameters, LogDensityAccumulator(), checked=False)
        return {name: numpy.asarray(value) for name, value in values.items()}

    def unconstrain(self, values: Dict[str, Any]) -> numpy.ndarray:
        """
        Map parameter values to a point in unconstrained space
        """
        parameters = self._prepare_parameters(values)
        pieces = [
            numpy.atleast_1d(numpy.asarray(record.support.unconstrain(parameters[record.name])))
            for record in self.variable_table.parameters()
        ]
        if len(pieces) == 0:
            return numpy.zeros(0)
        return numpy.concatenate(pieces)
