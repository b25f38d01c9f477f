import jax.numpy
import pytest

from pushforward import Model

def pytest_addoption(parser):
   parser.addoption(
       "--enable-vscode-break-on-exception",
       action="store_true",
       default = False,
       help="If true, re-throw exceptions so vscode can break",
   )

break_on_exception = False
def pytest_configure(config):
    global break_on_exception
    break_on_exception = config.getoption("--enable-vscode-break-on-exception")

@pytest.hookimpl(tryfirst=True)
def pytest_exception_interact(call):
    if break_on_exception:
        raise call.excinfo.value

@pytest.hookimpl(tryfirst=True)
def pytest_internalerror(excinfo):
    if break_on_exception:
        raise excinfo.value


@pytest.fixture
def exp_plus_linear():
    """y = exp(x) + x / 10, strictly increasing with f(0) = 1 and f'(0) = 1.1"""
    return lambda x: jax.numpy.exp(x) + x / 10


@pytest.fixture
def corrected_model(exp_plus_linear):
    model = Model()
    model.declare_parameter("x")
    model.declare_derived("y", exp_plus_linear, auto_correct=True)
    model.add_density("x", "normal", 0.0, 1.0)
    model.add_density("y", "normal", 0.0, 1.0)
    return model
