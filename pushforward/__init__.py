r"""

pushforward builds log densities for probabilistic models out of parameters, derived
variables, and density statements, and keeps track of the change of variables
(Jacobian) corrections those models need.

# The problem

A sampler explores a log density over free parameters. Writing a density statement
about a variable that is a *function* of the parameters does not, on its own, give that
variable the stated distribution. Take a flat parameter `x` and a derived variable
`y = f(x)`. Adding `log p(y)` to the log density gives a distribution on `x` proportional
to `p(f(x))`, and pushing that forward onto `y` gives

$$ p(y) \left| \frac{d f^{-1}}{d y} \right| $$

which is not `p(y)` unless `f` is linear. To make `y` actually have density `p`, the log
density also needs `log |f'(x)|`, the Jacobian adjustment.

Sometimes leaving the adjustment out is what the modeler wants (the result is a valid,
if non-generative, prior). Sometimes it is a mistake. pushforward never decides that on
its own: a derived variable is declared with `auto_correct=True` to get the adjustment,
and a density statement on a derived variable declared without it raises a
`pushforward.exceptions.MissingCorrectionWarning`.

# Example

```python
import jax.numpy
from pushforward import Model

model = Model()
model.declare_parameter("x")
model.declare_derived("y", lambda x: jax.numpy.exp(x) + x / 10, auto_correct=True)
model.add_density("x", "normal", 0.0, 1.0)
model.add_density("y", "normal", 0.0, 1.0)

evaluation = model.evaluate({"x": 0.0}, gradient=True)
evaluation.log_density  # log phi(0) + log phi(1) + log(1.1)
evaluation.gradient["x"]
```

Every evaluation starts from a log density of zero and adds, in declaration order, the
log density of every density statement and the correction of every automatically
corrected derived variable (right after that variable is computed).

# Corrections by hand

`pushforward.corrector` exposes the two directions of a change of variables as separate
functions. `correct_backward` adds `+log |det J|` (a density on the output pulled back to
the input, which is what automatic corrections do) and `correct_forward` adds
`-log |det J|` (a density on the input pushed forward to the output).

Derivatives come from forward-mode autodiff in [jax](https://github.com/google/jax).
`pushforward.expressions.Expression.numeric_jacobian` gives a finite difference
approximation for checking them.

# Failures

Points where an expression is undefined (`DomainError`) or where an automatically
corrected transform has a vanishing derivative (`NonInvertibleError`) have zero density.
`Model.evaluate` reports them with `log_density = -inf` and the error attached rather than
raising, unless `strict=True`. Only local invertibility is checked; a transform that is
many-to-one globally but has a nonzero derivative everywhere is not detected.

Mistakes in declaring the model (`DuplicateDeclarationError`, `CyclicDependencyError`,
`ModelFrozenError`) raise immediately.

# Samplers and optimizers

`Model.log_density` evaluates the model at a point in unconstrained space (parameters with
bounded supports are mapped onto the real line) and can be traced and differentiated by
jax. `pushforward.potential.Potential` wraps it for samplers and `pushforward.optimize`
finds a mode.

Importing pushforward turns on 64-bit floats in jax.
"""
import jax

jax.config.update("jax_enable_x64", True)

from .model import Evaluation, Model
from .optimizer import optimize

__all__ = ["model", "fit", "corrector", "constraints", "exceptions", "potential", "Model", "Evaluation", "optimize"]
