import pytest
from prometheus_client import CollectorRegistry, Histogram

from app.core.metrics import instrument


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def histogram(registry):
    return Histogram("test_operation_seconds", "Test operation", ["kind", "outcome"], registry=registry)


def observations(registry, **labels):
    return registry.get_sample_value("test_operation_seconds_count", labels) or 0


@pytest.mark.asyncio
async def test_instrument_records_success(histogram, registry):
    async def operation(value):
        return value * 2

    wrapped = instrument(operation, histogram, kind="double")

    assert await wrapped(21) == 42
    assert observations(registry, kind="double", outcome="success") == 1
    assert wrapped.__name__ == "operation"


@pytest.mark.asyncio
async def test_instrument_records_failure_and_reraises(histogram, registry):
    async def operation():
        raise RuntimeError("boom")

    wrapped = instrument(operation, histogram, kind="broken")

    with pytest.raises(RuntimeError, match="boom"):
        await wrapped()
    assert observations(registry, kind="broken", outcome="failure") == 1
    assert observations(registry, kind="broken", outcome="success") == 0
