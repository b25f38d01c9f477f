from concurrent.futures import ThreadPoolExecutor

import jax.numpy
import numpy
import pytest

from pushforward import Model
from pushforward.constraints import Lower
from pushforward.exceptions import NonInvertibleError
from pushforward.potential import Potential


@pytest.fixture
def model():
    model = Model()
    model.declare_parameter("x")
    model.declare_parameter("sigma", Lower(0.0))
    model.declare_derived("y", lambda x: jax.numpy.log(x), auto_correct=True)
    model.add_density("y", "normal", 0.0, "sigma")
    model.add_density("sigma", "exponential", 1.0)
    return model


def test_value_and_grad(model):
    potential = Potential(model)
    q = numpy.array([1.5, 0.2])

    U, gradient = potential.value_and_grad(q)

    assert U == pytest.approx(-float(model.log_density(q)))
    assert gradient.shape == (2,)

    step = 1e-6
    for i in range(2):
        dq = numpy.zeros(2)
        dq[i] = step
        numeric = -(float(model.log_density(q + dq)) - float(model.log_density(q - dq))) / (2 * step)
        assert gradient[i] == pytest.approx(numeric, rel=1e-5)


def test_zero_density_point(model):
    potential = Potential(model)

    U, gradient = potential.value_and_grad(numpy.array([-1.0, 0.2]))
    assert U == numpy.inf
    assert numpy.all(gradient == 0.0)

    U, gradient = potential.value_and_grad(numpy.array([1.5, 0.2]))
    assert numpy.isfinite(U)


def test_threads(model):
    chains = 3
    potential = Potential(model, maximum_threads=chains)
    points = [numpy.array([0.5 + chain, 0.1 * chain]) for chain in range(chains)]

    with ThreadPoolExecutor(max_workers=chains) as e:
        results = list(e.map(lambda q: float(potential(q)), points))

    assert results == pytest.approx([-float(model.log_density(q)) for q in points])


def test_maximum_threads(model):
    potential = Potential(model, maximum_threads=1)
    potential(numpy.array([1.0, 0.0]))

    with ThreadPoolExecutor(max_workers=1) as e:
        with pytest.raises(Exception, match="maximum number of threads"):
            e.submit(potential, numpy.array([1.0, 0.0])).result()

def test_non_square_jacobian_is_zero_density():
    model = Model()
    model.declare_parameter("x", size=3)
    model.declare_derived("s", lambda x: jax.numpy.sum(x), auto_correct=True)
    model.add_density("s", "normal", 0.0, 1.0)

    q = numpy.array([0.1, 0.2, 0.3])

    assert isinstance(model.evaluate({"x": q}).error, NonInvertibleError)
    assert float(model.log_density(q)) == -numpy.inf

    U, gradient = Potential(model).value_and_grad(q)
    assert U == numpy.inf
    assert numpy.all(gradient == 0.0)

def test_potential_is_public():
    import pushforward

    assert "potential" in pushforward.__all__
    assert pushforward.potential.Potential is Potential


if __name__ == "__main__":
    pytest.main([__file__])
