from __future__ import annotations

import pytest

from manifold.adapter import ManifoldAdapter

from fluid_stubs import IdealGasEntropy


@pytest.fixture
def ideal_gas():
    return IdealGasEntropy()


@pytest.fixture
def ideal_gas_adapter(ideal_gas):
    return ManifoldAdapter(ideal_gas)
