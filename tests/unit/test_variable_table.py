import jax.numpy
import pytest

from pushforward.constraints import Lower, Real
from pushforward.exceptions import CyclicDependencyError, DuplicateDeclarationError, ModelFrozenError
from pushforward.expressions import Expression
from pushforward.variable_table import DensityRecord, ParameterRecord, TransformRecord, VariableTable


@pytest.fixture
def variable_table():
    variable_table = VariableTable()
    variable_table.declare(ParameterRecord("mu"))
    variable_table.declare(ParameterRecord("sigma", Lower(0.0)))
    variable_table.declare(ParameterRecord("z", size=3))
    variable_table.declare(TransformRecord("theta", Expression.from_function(lambda mu, sigma, z: mu + sigma * z, wrt="z"), True))
    return variable_table


def test_declaration_order(variable_table):
    assert list(variable_table) == ["mu", "sigma", "z", "theta"]
    assert [record.name for record in variable_table.parameters()] == ["mu", "sigma", "z"]
    assert [record.name for record in variable_table.transforms()] == ["theta"]
    assert variable_table["theta"].references == ("mu", "sigma", "z")


def test_duplicate(variable_table):
    with pytest.raises(DuplicateDeclarationError, match="already declared"):
        variable_table.declare(ParameterRecord("mu"))

    with pytest.raises(DuplicateDeclarationError):
        variable_table.declare(TransformRecord("sigma", Expression.from_function(lambda mu: mu)))


def test_reference_to_undeclared_name(variable_table):
    with pytest.raises(CyclicDependencyError, match="not declared yet"):
        variable_table.declare(TransformRecord("eta", Expression.from_function(lambda tau: 2.0 * tau)))

    assert "eta" not in variable_table


def test_self_reference(variable_table):
    with pytest.raises(CyclicDependencyError, match="refers to itself"):
        variable_table.declare(TransformRecord("eta", Expression.from_function(lambda eta, mu: eta + mu)))


def test_density_references():
    record = DensityRecord("y", "normal", ("mu", 1.5))
    assert record.references == ("y", "mu")


def test_frozen(variable_table):
    variable_table.freeze()
    with pytest.raises(ModelFrozenError):
        variable_table.declare(ParameterRecord("tau"))


def test_records_are_immutable(variable_table):
    with pytest.raises(AttributeError):
        variable_table["theta"].auto_correct = False


def test_parameter_size():
    with pytest.raises(ValueError):
        ParameterRecord("x", Real(), 0)


def test_unconstrained_parameters(variable_table):
    assert variable_table.unconstrained_parameter_size == 5

    parameters = variable_table.get_unconstrained_parameters(jax.numpy.arange(5.0))
    assert float(parameters["mu"]) == 0.0
    assert float(parameters["sigma"]) == 1.0
    assert parameters["z"].tolist() == [2.0, 3.0, 4.0]

    with pytest.raises(ValueError):
        variable_table.get_unconstrained_parameters(jax.numpy.zeros(4))


if __name__ == "__main__":
    pytest.main([__file__])
