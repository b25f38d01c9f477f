"""
Change of variables corrections.

If `y = f(x)` for an invertible, differentiable `f`, densities on the two scales are
related by

    p_x(x) = p_y(f(x)) |det J_f(x)|

There are two ways to use that, and they differ only by the sign of the log Jacobian
term, so they are two separate functions rather than one function with a flag:

* `correct_backward` adds `+log |det J_f(x)|`. A density written down for `y` is
  pulled back onto `x`, the scale being sampled. Automatic corrections use this.
* `correct_forward` adds `-log |det J_f(x)|`. A density on `x` is pushed forward onto
  `y`.

Invertibility is only checked locally (the derivative at the evaluated point must be
nonzero). A transform that is locally invertible everywhere but many-to-one globally
is not detected.
"""
import jax.numpy
import numpy
from typing import Any, Dict

from .accumulator import JACOBIAN, LogDensityAccumulator
from .exceptions import DomainError, NonInvertibleError
from .expressions import is_finite, point_string
from .variable_table import TransformRecord


def _checked_log_abs_det(jacobian, record: TransformRecord, values: Dict[str, Any]):
    jacobian = numpy.asarray(jacobian)
    expression = record.expression
    where = point_string(values, expression.inputs)

    if not is_finite(jacobian):
        raise DomainError(f"Derivative of the transform is undefined at {where}", record.name)

    if jacobian.ndim == 0:
        if jacobian == 0.0:
            raise NonInvertibleError(f"Derivative of the transform is zero at {where}", record.name)
        return jax.numpy.log(jax.numpy.abs(jacobian))

    if jacobian.ndim != 2 or jacobian.shape[0] != jacobian.shape[1]:
        raise NonInvertibleError(
            f"Transform of {expression.wrt} is not invertible; its Jacobian has shape {jacobian.shape} at {where}",
            record.name,
        )

    sign, log_abs_det = jax.numpy.linalg.slogdet(jacobian)
    if sign == 0.0:
        raise NonInvertibleError(f"Jacobian of the transform is singular at {where}", record.name)
    return log_abs_det


def _traced_log_abs_det(jacobian):
    if jacobian.ndim == 0:
        return jax.numpy.log(jax.numpy.abs(jacobian))
    # Shapes are static under tracing
    if jacobian.ndim != 2 or jacobian.shape[0] != jacobian.shape[1]:
        return -jax.numpy.inf
    return jax.numpy.linalg.slogdet(jacobian)[1]


def log_abs_det_jacobian(record: TransformRecord, values: Dict[str, Any], checked: bool = True):
    """
    `log |det J|` of `record`'s transform at `values` (`log |f'(x)|` for scalars).

    With `checked` the Jacobian is inspected and errors are raised for undefined or
    vanishing derivatives. Unchecked is for traced evaluation, where a vanishing
    derivative shows up as `-inf`
    """
    jacobian = record.expression.jacobian(values)

    if checked:
        return _checked_log_abs_det(jacobian, record, values)
    else:
        return _traced_log_abs_det(jacobian)


def correct_backward(accumulator: LogDensityAccumulator, record: TransformRecord, values: Dict[str, Any], checked: bool = True):
    """
    Pull a density on `record.name` back onto the transform's input by adding
    `+log |det J|`. Returns the amount added. Nothing is added if the correction fails
    """
    term = log_abs_det_jacobian(record, values, checked)
    accumulator.add(term, source=JACOBIAN, name=record.name)
    return term


def correct_forward(accumulator: LogDensityAccumulator, record: TransformRecord, values: Dict[str, Any], checked: bool = True):
    """
    Push a density on the transform's input forward onto `record.name` by adding
    `-log |det J|`. Returns the amount added. Nothing is added if the correction fails
    """
    term = -log_abs_det_jacobian(record, values, checked)
    accumulator.add(term, source=JACOBIAN, name=record.name)
    return term
