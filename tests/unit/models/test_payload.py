"""Unit tests for models.payload path resolution."""

from src.models.payload import Mapping, Scalar, Sequence, lookup, lookup_first, resolve, unwrap, wrap


class TestWrap:
    """Test cases for wrap() / unwrap()."""

    def test_wrap_builds_tagged_variant(self):
        payload = wrap({'a': [1, {'b': None}]})

        assert isinstance(payload, Mapping)
        assert isinstance(payload.items['a'], Sequence)
        assert payload.items['a'].items[0] == Scalar(1)

    def test_unwrap_restores_plain_values(self):
        raw = {'a': [1, {'b': 'x'}], 'c': None}

        assert unwrap(wrap(raw)) == raw

    def test_wrap_is_idempotent(self):
        payload = wrap({'a': 1})

        assert wrap(payload) is payload


class TestResolve:
    """Test cases for resolve() / lookup()."""

    def test_nested_mapping(self):
        assert lookup({'fields': {'status': {'name': 'Open'}}}, 'fields.status.name') == 'Open'

    def test_list_of_segments(self):
        assert lookup({'a': {'b': 2}}, ['a', 'b']) == 2

    def test_sequence_searched_for_first_mapping_with_key(self):
        raw = {'values': [{'x': 1}, {'name': 'second'}, {'name': 'third'}]}

        assert lookup(raw, 'values.name') == 'second'

    def test_numeric_segment_indexes_sequence(self):
        assert lookup({'a': ['p', 'q']}, 'a.1') == 'q'

    def test_numeric_segment_out_of_range(self):
        assert lookup({'a': ['p']}, 'a.5', default=None) is None

    def test_scalar_stands_in_for_missing_nested_key(self):
        assert lookup({'assignee': 'alice'}, 'assignee.displayName') == 'alice'

    def test_none_value_is_a_miss(self):
        assert lookup({'assignee': None}, 'assignee.displayName') == ""
        assert lookup({'assignee': None}, 'assignee', default='x') == 'x'

    def test_missing_key_returns_default(self):
        assert lookup({}, 'missing') == ""
        assert lookup({}, 'missing', default=None) is None

    def test_resolve_never_raises_on_odd_shapes(self):
        assert resolve(wrap([1, 2]), 'a.b') is None
        assert resolve(None, 'a') is None
        assert resolve(wrap({'a': 1}), 'a.b.c') == Scalar(1)


class TestLookupFirst:
    """Test cases for lookup_first() fallback chains."""

    def test_first_non_empty_value_wins(self):
        raw = {'a': '', 'b': [], 'c': 'value'}

        assert lookup_first(raw, ['a', 'b', 'c']) == 'value'

    def test_all_missing_returns_default(self):
        assert lookup_first({}, ['a', 'b'], default='none') == 'none'

    def test_falls_back_from_nested_to_flat_shape(self):
        paths = ['fields.summary', 'summary']

        assert lookup_first({'fields': {'summary': 'Nested'}}, paths) == 'Nested'
        assert lookup_first({'summary': 'Flat'}, paths) == 'Flat'
