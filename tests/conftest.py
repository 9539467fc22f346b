import pytest

from conch.interpreter import Interpreter

# Every evaluator test gets a fresh interpreter. The prelude is loaded by
# default; tests that exercise the bare root scope ask for `bare_interp`.


@pytest.fixture
def interp():
    itp = Interpreter(strict=False)
    yield itp
    itp.close()


@pytest.fixture
def bare_interp():
    itp = Interpreter(strict=False, prelude=False)
    yield itp
    itp.close()


@pytest.fixture
def strict_interp():
    itp = Interpreter(strict=True, prelude=False)
    yield itp
    itp.close()
