import random

from safeoutputs.graph import (
    build_dependency_graph,
    detect_cycle,
    plan_execution_order,
    sort_safe_output_messages,
    topological_sort,
)

RANDOM_BATCH = 60


def _msg(type_name="create_issue", temporary_id=None, body=None, **fields):
    message = {"type": type_name, **fields}
    if temporary_id:
        message["temporary_id"] = temporary_id
    if body:
        message["body"] = body
    return message


def test_chain_sorts_providers_first():
    c = _msg("add_comment", temporary_id="aw_cccc", body="after #aw_bbbb")
    b = _msg(temporary_id="aw_bbbb", body="child of #aw_aaaa")
    a = _msg(temporary_id="aw_aaaa", title="root")
    assert sort_safe_output_messages([c, b, a]) == [a, b, c]
    assert sort_safe_output_messages([a, c, b]) == [a, b, c]


def test_graph_maps_providers_and_dependencies():
    messages = [
        _msg(temporary_id="aw_parent1"),
        _msg("add_comment", body="on #aw_parent1", issue_number="aw_parent1"),
        _msg("noop"),
    ]
    graph = build_dependency_graph(messages)
    assert graph.providers == {"aw_parent1": 0}
    assert graph.dependencies == {0: frozenset(), 1: frozenset({0}), 2: frozenset()}
    assert graph.dependent_count == 1


def test_unknown_references_are_not_edges():
    graph = build_dependency_graph([_msg("add_comment", body="#aw_elsewh1")])
    assert graph.dependencies == {0: frozenset()}


def test_self_reference_is_ignored():
    graph = build_dependency_graph([_msg(temporary_id="aw_self01", body="me: #aw_self01")])
    assert graph.dependencies == {0: frozenset()}


def test_temporary_id_with_trailing_newline_is_not_a_provider():
    messages = [
        _msg("add_comment", body="on #aw_abcd", issue_number="aw_abcd"),
        _msg(temporary_id="aw_abcd\n"),
    ]
    graph = build_dependency_graph(messages)
    assert graph.providers == {}
    assert graph.dependencies == {0: frozenset(), 1: frozenset()}


def test_duplicate_temporary_id_first_wins(capsys):
    messages = [_msg(temporary_id="aw_dupe1"), _msg(temporary_id="AW_DUPE1")]
    graph = build_dependency_graph(messages)
    assert graph.providers == {"aw_dupe1": 0}
    assert len(graph.duplicates) == 1
    assert graph.duplicates[0].duplicate_index == 1
    out = capsys.readouterr().out
    assert (
        "Duplicate temporary_id 'aw_dupe1' at message indices 0 and 1. "
        "Only the first occurrence will be used." in out
    )


def test_detect_cycle_returns_path():
    assert detect_cycle({0: {1}, 1: {2}, 2: {0}}) == [0, 1, 2]
    assert detect_cycle({0: {1}, 1: set(), 2: {2}}) == [2]
    assert detect_cycle({0: set(), 1: {0}}) == []


def test_kahn_ties_break_by_original_index():
    messages = [
        _msg("add_comment", body="#aw_xxxx"),
        _msg("noop"),
        _msg(temporary_id="aw_xxxx"),
        _msg("add_comment", body="#aw_xxxx too"),
    ]
    graph = build_dependency_graph(messages)
    assert topological_sort(messages, graph.dependencies) == [1, 2, 0, 3]


def test_incomplete_sort_warns(capsys):
    order = topological_sort([{}, {}], {0: {1}, 1: {0}})
    assert order == []
    assert "Topological sort incomplete: 0/2 messages sorted" in capsys.readouterr().out


def test_no_dependencies_keeps_original_order(capsys):
    messages = [_msg("noop"), _msg(title="a"), _msg(title="b")]
    plan = plan_execution_order(messages)
    assert plan.order == [0, 1, 2]
    assert not plan.reordered
    out = capsys.readouterr().out
    assert "Dependency analysis: 0 message(s) create temporary IDs, 0 message(s) have dependencies" in out
    assert "Messages already in optimal order (no reordering needed)" in out


def test_reorder_is_logged(capsys):
    messages = [_msg("add_comment", body="#aw_late01"), _msg(temporary_id="aw_late01")]
    plan = plan_execution_order(messages)
    assert plan.order == [1, 0]
    assert plan.reordered
    out = capsys.readouterr().out
    assert "1 message(s) create temporary IDs, 1 message(s) have dependencies" in out
    assert "New order: [1, 0]" in out


def test_cycle_falls_back_to_original_order(capsys):
    messages = [
        _msg(temporary_id="aw_aaaa1", body="#aw_bbbb1"),
        _msg(temporary_id="aw_bbbb1", body="#aw_aaaa1"),
        _msg("noop"),
    ]
    plan = plan_execution_order(messages)
    assert plan.order == [0, 1, 2]
    assert plan.cycle == [0, 1]
    out = capsys.readouterr().out
    assert "Dependency cycle detected in safe output messages" in out
    assert "Messages will be processed in original order." in out


def test_empty_batch():
    assert sort_safe_output_messages([]) == []


def test_random_dag_respects_every_edge():
    rng = random.Random(7)
    messages = []
    for i in range(RANDOM_BATCH):
        refs = {rng.randrange(i) for _ in range(rng.randrange(3))} if i else set()
        body = " ".join(f"#aw_m{j:04d}" for j in sorted(refs))
        messages.append(_msg(temporary_id=f"aw_m{i:04d}", body=body))
    rng.shuffle(messages)

    graph = build_dependency_graph(messages)
    order = topological_sort(messages, graph.dependencies)
    assert sorted(order) == list(range(RANDOM_BATCH))
    position = {index: pos for pos, index in enumerate(order)}
    for dependent, providers in graph.dependencies.items():
        for provider in providers:
            assert position[provider] < position[dependent]
