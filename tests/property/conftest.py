"""Hypothesis strategies for property-based testing."""

from hypothesis import strategies as st

from reelcast.models.provider import ProviderPhase

provider_progress = st.one_of(
    st.none(),
    st.floats(allow_nan=True, allow_infinity=True),
    st.integers(min_value=-1000, max_value=1000),
)

phases = st.sampled_from([ProviderPhase.QUEUED, ProviderPhase.RUNNING])


@st.composite
def progress_writes(draw):
    """A sequence of progress values as racing workers might publish them."""
    return draw(st.lists(st.integers(min_value=-20, max_value=120), min_size=1, max_size=30))


@st.composite
def child_outcomes(draw):
    """Item count plus a delivery order of outcomes, with duplicates.

    Every item reports at least once; some report again, possibly with the
    opposite result, as a redelivered job would.
    """
    total = draw(st.integers(min_value=1, max_value=8))
    first = [(i, draw(st.booleans())) for i in range(total)]
    extra = draw(
        st.lists(
            st.tuples(st.integers(min_value=0, max_value=total - 1), st.booleans()),
            max_size=total * 2,
        )
    )
    deliveries = draw(st.permutations(first + extra))
    return total, deliveries


@st.composite
def stage_weights(draw):
    count = draw(st.integers(min_value=1, max_value=8))
    weights = draw(
        st.lists(st.floats(min_value=0.1, max_value=10.0), min_size=count, max_size=count)
    )
    return count, weights


subtitle_texts = st.lists(st.text(min_size=0, max_size=40), max_size=10)
