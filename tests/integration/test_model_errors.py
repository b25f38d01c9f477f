import logging
import math

import jax.numpy
import numpy
import pytest
import scipy.stats

from pushforward import Model
from pushforward.constraints import Lower
from pushforward.exceptions import (
    CyclicDependencyError,
    DeclarationError,
    DomainError,
    DuplicateDeclarationError,
    EvaluationError,
    ModelFrozenError,
    NonInvertibleError,
)


def test_duplicate_declaration():
    model = Model()
    model.declare_parameter("x")

    with pytest.raises(DuplicateDeclarationError, match="x is already declared"):
        model.declare_parameter("x")

    with pytest.raises(DuplicateDeclarationError):
        model.declare_derived("x", lambda x: 2.0 * x)


def test_reference_before_declaration():
    model = Model()
    model.declare_parameter("x")

    with pytest.raises(CyclicDependencyError, match="sigma is not declared yet"):
        model.declare_derived("y", lambda x, sigma: x * sigma, inputs=["x", "sigma"], wrt="x")

    with pytest.raises(CyclicDependencyError):
        model.add_density("y", "normal", 0.0, 1.0)

    with pytest.raises(CyclicDependencyError):
        model.add_density("x", "normal", "mu", 1.0)

    assert model.statements == []


def test_bad_density_statements():
    model = Model()
    model.declare_parameter("x")

    with pytest.raises(DeclarationError, match="Unknown distribution"):
        model.add_density("x", "banana", 0.0, 1.0)

    with pytest.raises(DeclarationError, match="normal takes 2 argument"):
        model.add_density("x", "normal", 0.0)

    with pytest.raises(DeclarationError, match="numbers or variable names"):
        model.add_density("x", "normal", 0.0, [1.0])


def test_auto_correct_needs_wrt():
    model = Model()
    model.declare_parameter("mu")
    model.declare_parameter("z")

    with pytest.raises(DeclarationError, match="pass wrt"):
        model.declare_derived("theta", lambda mu, z: mu + z, auto_correct=True)

    # Without correction there is nothing to differentiate
    model.declare_derived("theta", lambda mu, z: mu + z)


def test_no_declarations_after_evaluation():
    model = Model()
    model.declare_parameter("x")
    model.add_density("x", "normal", 0.0, 1.0)
    model.evaluate({"x": 0.0})

    with pytest.raises(ModelFrozenError):
        model.declare_parameter("z")

    with pytest.raises(ModelFrozenError):
        model.declare_derived("y", lambda x: 2.0 * x)

    with pytest.raises(ModelFrozenError):
        model.add_density("x", "normal", 0.0, 1.0)


def test_domain_error_is_zero_density():
    model = Model()
    model.declare_parameter("x")
    model.declare_derived("y", lambda x: jax.numpy.log(x), auto_correct=True)
    model.add_density("x", "normal", 0.0, 1.0)
    model.add_density("y", "normal", 0.0, 1.0)

    evaluation = model.evaluate({"x": -1.0})
    assert evaluation.log_density == -numpy.inf
    assert isinstance(evaluation.error, DomainError)
    assert not evaluation.ok
    assert evaluation.gradient is None

    with pytest.raises(DomainError, match="undefined"):
        model.evaluate({"x": -1.0}, strict=True)

    # A failed evaluation leaves nothing behind for the next one
    evaluation = model.evaluate({"x": 1.0})
    expected = scipy.stats.norm.logpdf(1.0) + scipy.stats.norm.logpdf(0.0) + math.log(1.0)
    assert evaluation.log_density == pytest.approx(expected, abs=1e-9)


def test_non_invertible_is_zero_density():
    model = Model()
    model.declare_parameter("x")
    model.add_density("x", "normal", 0.0, 1.0)
    model.declare_derived("y", lambda x: x**3, auto_correct=True)
    model.add_density("y", "normal", 0.0, 1.0)

    evaluation = model.evaluate({"x": 0.0}, gradient=True)
    assert evaluation.log_density == -numpy.inf
    assert isinstance(evaluation.error, NonInvertibleError)
    assert evaluation.gradient is None

    # The density on x was added before the correction failed and is still recorded
    assert len(evaluation.contributions) == 1
    assert evaluation.contributions[0].log_value == pytest.approx(scipy.stats.norm.logpdf(0.0))

    with pytest.raises(NonInvertibleError):
        model.evaluate({"x": 0.0}, strict=True)

    assert model.evaluate({"x": 0.5}).ok


def test_outside_support():
    model = Model()
    model.declare_parameter("sigma", Lower(0.0))
    model.add_density("sigma", "exponential", 1.0)

    evaluation = model.evaluate({"sigma": -0.5})
    assert isinstance(evaluation.error, DomainError)
    assert "outside the support" in str(evaluation.error)


def test_undefined_density():
    model = Model()
    model.declare_parameter("mu")
    model.declare_parameter("sigma")
    model.add_density("mu", "normal", 0.0, "sigma")

    evaluation = model.evaluate({"mu": 0.0, "sigma": -1.0})
    assert isinstance(evaluation.error, DomainError)
    assert isinstance(evaluation.error, EvaluationError)


def test_bad_parameter_values():
    model = Model()
    model.declare_parameter("x")
    model.declare_parameter("z", size=3)
    model.declare_derived("y", lambda x: 2.0 * x)

    with pytest.raises(KeyError):
        model.evaluate({"x": 0.0})

    with pytest.raises(ValueError, match="shape"):
        model.evaluate({"x": 0.0, "z": [1.0, 2.0]})

    with pytest.raises(ValueError, match="not a declared parameter"):
        model.evaluate({"x": 0.0, "z": [1.0, 2.0, 3.0], "y": 1.0})


if __name__ == "__main__":
    logging.getLogger().setLevel(logging.DEBUG)
    pytest.main([__file__, "-s", "-o", "log_cli=true"])
