import inspect
import jax
import jax.numpy
import jax.scipy.stats
from typing import Callable, Dict


def normal(y, mu, sigma):
    return jax.scipy.stats.norm.logpdf(y, mu, sigma)


def cauchy(y, loc, scale):
    return jax.scipy.stats.cauchy.logpdf(y, loc, scale)


def log_normal(y, mu, sigma):
    logy = jax.numpy.log(y)
    return jax.scipy.stats.norm.logpdf(logy, mu, sigma) - logy


def exponential(y, scale):
    return jax.scipy.stats.expon.logpdf(y, scale=scale)


def uniform(y, lower, upper):
    return jax.scipy.stats.uniform.logpdf(y, lower, upper - lower)


def student_t(y, nu, mu, sigma):
    return jax.scipy.stats.t.logpdf(y, nu, mu, sigma)


def gamma(y, shape, rate):
    return jax.scipy.stats.gamma.logpdf(y, shape, scale=1.0 / rate)


def bernoulli_logit(y, logit_p):
    log_p = -jax.numpy.log1p(jax.numpy.exp(-logit_p))
    log1m_p = -logit_p + log_p
    return jax.numpy.where(y == 0, log1m_p, log_p)


distributions: Dict[str, Callable] = {
    "normal": normal,
    "cauchy": cauchy,
    "log_normal": log_normal,
    "exponential": exponential,
    "uniform": uniform,
    "student_t": student_t,
    "gamma": gamma,
    "bernoulli_logit": bernoulli_logit,
}


def argument_count(family: str) -> int:
    """
    Number of arguments a distribution family takes, not counting the variate
    """
    return len(inspect.signature(distributions[family]).parameters) - 1
