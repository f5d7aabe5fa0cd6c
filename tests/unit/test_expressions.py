import pytest

from weaveflow.errors import ExpressionError
from weaveflow.expressions import compile_expression, parse, run_expression
from weaveflow.expressions.nodes import Attribute, Binary, Call, Index, Name

VIDEOS = [
    {"title": "Intro", "views": 1200, "stats": {"likes": 10}},
    {"title": "Deep dive", "views": 5400, "stats": {"likes": 90}},
    {"title": "Outro", "views": 300, "stats": {"likes": 5}},
]


def test_parse_builds_tagged_nodes():
    node = parse("items.0.title + suffix")
    assert isinstance(node, Binary)
    assert isinstance(node.left, Attribute)
    assert isinstance(node.left.value, Index)
    assert node.right == Name("suffix")


def test_compile_expression_caches_trees():
    assert compile_expression("a + 1") is compile_expression("a + 1")


@pytest.mark.parametrize(
    "source, expected",
    [
        ("return {v: 2+2}", {"v": 4}),
        ("1 + 2 * 3", 7),
        ("(1 + 2) * 3", 9),
        ("7 % 4", 3),
        ("-2 + 5", 3),
        ("10 / 4", 2.5),
        ("'a' + 1", "a1"),
        ("[1, 2] + [3]", [1, 2, 3]),
        ("2 > 1 && 1 === 1", True),
        ("null || 'fallback'", "fallback"),
        ("not false", True),
        ("3 in [1, 2, 3]", True),
        ("1 > 2 ? 'yes' : 'no'", "no"),
        ("{'a b': 1, 2: 'two'}", {"a b": 1, "2": "two"}),
        ("return [1, 2,];", [1, 2]),
    ],
)
def test_literals_and_operators(source, expected):
    assert run_expression(source, {}) == expected


def test_variables_and_field_access():
    variables = {"videos": VIDEOS, "channel": {"name": "Tech"}}
    assert run_expression("videos[1].title", variables) == "Deep dive"
    assert run_expression("videos.0.stats.likes", variables) == 10
    assert run_expression("videos.length", variables) == 3
    assert run_expression("channel.missing", variables) is None
    assert run_expression("videos[10]", variables) is None


def test_shorthand_object_keys():
    assert run_expression("{total, name}", {"total": 3, "name": "x"}) == {
        "total": 3,
        "name": "x",
    }


def test_helpers_over_collections():
    variables = {"videos": VIDEOS}
    result = run_expression(
        """return {
            total: sum(pluck(videos, "views")),
            avg: round(average(pluck(videos, "views")), 1),
            mid: median(pluck(videos, "views")),
            top: first(sort_by(videos, "views", true)).title,
            liked: pluck(sortBy(videos, "stats.likes"), "title"),
            label: formatNumber(sum(pluck(videos, "views"))),
            count: len(videos),
        }""",
        variables,
    )
    assert result == {
        "total": 6900,
        "avg": 2300.0,
        "mid": 1200,
        "top": "Deep dive",
        "liked": ["Outro", "Intro", "Deep dive"],
        "label": "6.9k",
        "count": 3,
    }


def test_group_by_and_unique():
    items = [{"k": "a", "v": 1}, {"k": "b", "v": 2}, {"k": "a", "v": 3}]
    grouped = run_expression("group_by(items, 'k')", {"items": items})
    assert list(grouped) == ["a", "b"]
    assert len(grouped["a"]) == 2
    assert run_expression("unique(pluck(items, 'k'))", {"items": items}) == ["a", "b"]


def test_helper_misc():
    assert run_expression("max(3, 9, 4)", {}) == 9
    assert run_expression("min([3, 9, 4])", {}) == 3
    assert run_expression("percent(1, 4)", {}) == 25.0
    assert run_expression("join(['a', 'b'], '-')", {}) == "a-b"
    assert run_expression("coalesce(null, 0, 5)", {}) == 0
    assert run_expression("upper(trim('  hi '))", {}) == "HI"
    assert run_expression("number('42')", {}) == 42
    assert run_expression("flatten([[1], [2, 3], 4])", {}) == [1, 2, 3, 4]


@pytest.mark.parametrize(
    "source",
    [
        "__import__('os')",
        "open('/etc/passwd')",
        "x.a.b",
        "1 +",
        "{a: }",
        "'unterminated",
        "a = 1",
        "",
    ],
)
def test_sandbox_rejects_unsafe_or_invalid_source(source):
    with pytest.raises(ExpressionError):
        run_expression(source, {"x": {"a": 1}})


def test_helpers_cannot_be_referenced_without_calling():
    with pytest.raises(ExpressionError, match="must be called"):
        run_expression("sum", {})


def test_evaluation_errors():
    with pytest.raises(ExpressionError, match="Division by zero"):
        run_expression("1 / 0", {})
    with pytest.raises(ExpressionError, match="Unknown name"):
        run_expression("missing + 1", {})
    with pytest.raises(ExpressionError, match="sum\\(\\) failed"):
        run_expression("sum(['a'])", {})
    with pytest.raises(ExpressionError):
        run_expression("'a' < 1", {})


def test_call_node_holds_only_a_helper_name():
    node = parse("len(items)")
    assert isinstance(node, Call)
    assert node.func == "len"
