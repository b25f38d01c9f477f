from dataclasses import dataclass
import jax.nn
import jax.numpy
import jax.scipy.special
import numpy


def lower(y, lower):
    return jax.numpy.exp(y) + lower, jax.numpy.sum(y)


def upper(y, upper):
    return upper - jax.numpy.exp(y), jax.numpy.sum(y)


def finite(y, upper, lower):
    inv_logit_y = jax.scipy.special.expit(y)
    return (
        lower + (upper - lower) * inv_logit_y,
        jax.numpy.sum(jax.numpy.log(upper - lower) + jax.nn.log_sigmoid(y) + jax.nn.log_sigmoid(-y)),
    )


@dataclass(frozen=True)
class Support:
    """
    The set of values a parameter can take. A parameter has an implicit flat prior
    over its support.

    Samplers work on the unconstrained real line; `constrain` maps an unconstrained
    value onto the support and returns the log absolute Jacobian of that map so the
    flat prior on the support is preserved.
    """

    def contains(self, value) -> bool:
        raise NotImplementedError()

    def constrain(self, y):
        raise NotImplementedError()

    def unconstrain(self, x):
        raise NotImplementedError()


@dataclass(frozen=True)
class Real(Support):
    def contains(self, value) -> bool:
        return bool(numpy.all(numpy.isfinite(value)))

    def constrain(self, y):
        return y, 0.0

    def unconstrain(self, x):
        return x

    def __str__(self):
        return "real"


@dataclass(frozen=True)
class Lower(Support):
    lower: float

    def contains(self, value) -> bool:
        value = numpy.asarray(value)
        return bool(numpy.all(numpy.isfinite(value)) and numpy.all(value > self.lower))

    def constrain(self, y):
        return lower(y, self.lower)

    def unconstrain(self, x):
        return jax.numpy.log(x - self.lower)

    def __str__(self):
        return f"real<lower = {self.lower}>"


@dataclass(frozen=True)
class Upper(Support):
    upper: float

    def contains(self, value) -> bool:
        value = numpy.asarray(value)
        return bool(numpy.all(numpy.isfinite(value)) and numpy.all(value < self.upper))

    def constrain(self, y):
        return upper(y, self.upper)

    def unconstrain(self, x):
        return jax.numpy.log(self.upper - x)

    def __str__(self):
        return f"real<upper = {self.upper}>"


@dataclass(frozen=True)
class Interval(Support):
    lower: float
    upper: float

    def __post_init__(self):
        if not self.lower < self.upper:
            raise ValueError(f"Interval lower bound {self.lower} must be less than upper bound {self.upper}")

    def contains(self, value) -> bool:
        value = numpy.asarray(value)
        return bool(numpy.all(value > self.lower) and numpy.all(value < self.upper))

    def constrain(self, y):
        return finite(y, self.upper, self.lower)

    def unconstrain(self, x):
        return jax.scipy.special.logit((x - self.lower) / (self.upper - self.lower))

    def __str__(self):
        return f"real<lower = {self.lower}, upper = {self.upper}>"
