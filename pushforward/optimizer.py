import logging
import numpy
import scipy.optimize
from tqdm import tqdm

from . import fit
from .potential import Potential

logger = logging.getLogger(__name__)


def optimize(model, init=2, chains=4, retries=5, tolerance=1e-2, seed=None):
    """
    Maximize the log density. `chains` different optimizations are initialized.

    An error is thrown if the different solutions are not all within tolerance of the
    median solution for each parameter. If only one chain is used, the tolerance is
    ignored.

    If any optimization fails, retry up to `retries` number of times.

    Initialize parameters in unconstrained space uniformly [-init, init].

    The Jacobian of the map from unconstrained space onto parameter supports is left out
    so the optimum is the mode on the constrained scale. Corrections declared on derived
    variables are part of the model and stay in
    """
    potential = Potential(model, include_jacobian=False)
    rng = numpy.random.default_rng(seed)

    def negative_log_density(x):
        return potential.value_and_grad(x)[0]

    def grad_double(x):
        return numpy.array(potential.value_and_grad(x)[1]).astype(numpy.float64)

    unconstrained_draws = numpy.zeros((chains, model.size))
    for chain in tqdm(range(chains), desc="Optimizing"):
        for retry in range(retries):
            params = 2 * init * rng.uniform(size=model.size) - init

            if not numpy.isfinite(negative_log_density(params)):
                logger.warning(f"Chain {chain} initialized at a point with zero density, retrying ({retry + 1}/{retries})")
                continue

            solution = scipy.optimize.minimize(negative_log_density, params, jac=grad_double, method="L-BFGS-B", tol=1e-9)

            if solution.success:
                unconstrained_draws[chain] = solution.x
                break

            logger.warning(f"Optimization failed on chain {chain} ({retry + 1}/{retries}): {solution.message}")
        else:
            raise Exception(f"Optimization failed on chain {chain} after {retries} tries")

    constrained = [model.constrain(draw) for draw in unconstrained_draws]
    constrained_draws = {name: numpy.stack([values[name] for values in constrained]) for name in constrained[0]}
    log_density = float(model.log_density_no_jac(unconstrained_draws[0]))

    return fit.OptimizationFit._from_constrained_variables(constrained_draws, tolerance=tolerance if chains > 1 else None, log_density=log_density)
