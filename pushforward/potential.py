import jax
import logging
import numpy
import threading
from typing import Callable, Dict, Tuple

logger = logging.getLogger(__name__)


class Potential:
    """
    Potential is the boundary a sampler talks to: the negative log density of a model
    and its gradient in unconstrained space, safe to use from several threads.

    A point where the model is undefined has zero density. It is reported as an infinite
    potential with a zero gradient instead of an error, so a sampler can simply reject it
    """

    value_and_grad_negative_log_density: Callable[[numpy.array], Tuple[float, numpy.array]]
    """Gradient of negative log density"""

    potential_results: numpy.array
    """Pre-allocated array of potential energies"""

    gradient_results: numpy.array
    """Pre-allocated array of gradients"""

    maximum_threads: int
    """Maximum number of client threads"""

    local_identity: Dict[int, int]
    """Remap thread identities to integers"""

    def __init__(self, model, maximum_threads: int = 1, include_jacobian: bool = True):
        """
        maximum_threads is the maximum number of threads that will be using this
        potential for its lifetime (which could be greater than the number using
        it at any one point). It is used to pre-allocate memory.

        include_jacobian is passed through to `Model.log_density`
        """

        def negative_log_density(q):
            return -model.log_density(q, include_jacobian)

        self.size = model.size
        self.value_and_grad_negative_log_density = jax.jit(jax.value_and_grad(negative_log_density))

        self.potential_results = numpy.zeros(maximum_threads, dtype=numpy.float64)
        self.gradient_results = numpy.zeros((maximum_threads, self.size), dtype=numpy.float64)

        self.maximum_threads = maximum_threads
        self.local_identity = {}
        self._lock = threading.Lock()

    def _get_ident(self) -> int:
        threading_identity = threading.get_ident()

        with self._lock:
            try:
                return self.local_identity[threading_identity]
            except KeyError:
                if len(self.local_identity) == self.maximum_threads:
                    raise Exception("This potential is already at its maximum number of threads")

                new_local_identity = len(self.local_identity)
                self.local_identity[threading_identity] = new_local_identity
                return new_local_identity

    def value_and_grad(self, q0: numpy.array) -> Tuple[float, numpy.array]:
        active_thread = self._get_ident()

        device_U, device_gradients = self.value_and_grad_negative_log_density(numpy.asarray(q0, dtype=numpy.float64))

        if numpy.isfinite(device_U) and numpy.all(numpy.isfinite(device_gradients)):
            self.potential_results[active_thread] = device_U
            self.gradient_results[active_thread, :] = device_gradients
        else:
            logger.debug(f"Potential is undefined at {q0}, treating the point as zero density")
            self.potential_results[active_thread] = numpy.inf
            self.gradient_results[active_thread, :] = 0.0

        return self.potential_results[active_thread], self.gradient_results[active_thread, :]

    def __call__(self, q0: numpy.array) -> float:
        return self.value_and_grad(q0)[0]
