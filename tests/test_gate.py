from __future__ import annotations

import pytest

from wxpub.documents import InvocationMode, PublishState, SkipReason, evaluate, normalize_published

_MISSING = object()

REPRESENTATIONS = [
    pytest.param(_MISSING, id="absent"),
    pytest.param(True, id="bool-true"),
    pytest.param(False, id="bool-false"),
    pytest.param("true", id="str-true"),
    pytest.param("draft", id="str-draft"),
]


@pytest.mark.parametrize("raw", REPRESENTATIONS)
@pytest.mark.parametrize("mode", list(InvocationMode))
def test_gate_cross_product(raw: object, mode: InvocationMode) -> None:
    state = normalize_published(None if raw is _MISSING else raw)
    decision = evaluate(state, mode)

    published = raw is True or raw == "true"
    if mode is InvocationMode.SINGLE_FILE or not published:
        assert decision.eligible
        assert decision.reason is None
    else:
        assert not decision.eligible
        assert decision.reason is SkipReason.ALREADY_PUBLISHED


def test_skip_reason_value_is_kebab_case() -> None:
    decision = evaluate(PublishState.PUBLISHED, InvocationMode.DIRECTORY)
    assert decision.reason is not None
    assert decision.reason.value == "already-published"
