import pytest

from span_relay.core.context import SpanContext
from span_relay.core.sampling import ALWAYS_OFF, ALWAYS_ON, ParentBasedSampler, TraceIdRatioSampler, sampler_for_rate
from span_relay.errors import ConfigError
from span_relay.utils.ids import new_trace_id


def test_ratio_sampler_is_deterministic_on_lower_trace_id_bits() -> None:
    sampler = TraceIdRatioSampler(0.5)
    assert sampler.should_sample("ffffffffffffffff" + "0000000000000001", None) is True
    assert sampler.should_sample("0000000000000000" + "ffffffffffffffff", None) is False
    trace_id = new_trace_id()
    assert sampler.should_sample(trace_id, None) == sampler.should_sample(trace_id, None)


def test_ratio_sampler_bounds() -> None:
    assert TraceIdRatioSampler(0.0).should_sample("0" * 31 + "1", None) is False
    assert TraceIdRatioSampler(1.0).should_sample("f" * 32, None) is True
    with pytest.raises(ConfigError):
        TraceIdRatioSampler(1.5)
    with pytest.raises(ConfigError):
        sampler_for_rate(-0.1)


def test_ratio_sampler_samples_roughly_the_ratio() -> None:
    sampler = TraceIdRatioSampler(0.25)
    sampled = sum(sampler.should_sample(new_trace_id(), None) for _ in range(4000))
    assert 700 < sampled < 1300


def test_parent_based_follows_parent_flag() -> None:
    sampler = ParentBasedSampler(ALWAYS_OFF)
    sampled_parent = SpanContext(trace_id="a" * 32, span_id="b" * 16, trace_flags=1)
    unsampled_parent = SpanContext(trace_id="a" * 32, span_id="b" * 16, trace_flags=0)

    assert sampler.should_sample("a" * 32, sampled_parent) is True
    assert ParentBasedSampler(ALWAYS_ON).should_sample("a" * 32, unsampled_parent) is False
    assert sampler.should_sample("a" * 32, None) is False


def test_sampler_for_rate_descriptions() -> None:
    assert sampler_for_rate(1.0).description == "ParentBased{root=AlwaysOnSampler}"
    assert sampler_for_rate(0.0).description == "ParentBased{root=AlwaysOffSampler}"
    assert sampler_for_rate(0.1).description == "ParentBased{root=TraceIdRatioSampler{0.1}}"
