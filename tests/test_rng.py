import pytest

from overworld.composer.rng import SeededRNG, hash_string


def test_first_draw_follows_the_lcg():
    rng = SeededRNG(0)
    assert rng.next() == pytest.approx(1013904223 / 2 ** 32)
    assert rng.state == 1013904223


def test_same_seed_same_sequence():
    a, b = SeededRNG(42), SeededRNG(42)
    assert [a.next() for _ in range(20)] == [b.next() for _ in range(20)]


def test_different_seeds_diverge():
    a, b = SeededRNG(1), SeededRNG(2)
    assert [a.next() for _ in range(5)] != [b.next() for _ in range(5)]


def test_next_int_is_inclusive():
    rng = SeededRNG(7)
    values = {rng.next_int(-2, 2) for _ in range(500)}
    assert values == {-2, -1, 0, 1, 2}


def test_shuffle_is_a_permutation_and_reproducible():
    items = list(range(10))
    shuffled = SeededRNG(3).shuffle(list(items))
    assert sorted(shuffled) == items
    assert shuffled == SeededRNG(3).shuffle(list(items))


def test_trace_records_every_draw_in_order():
    rng = SeededRNG(11, trace=True)
    rng.next()
    rng.next_int(0, 5)
    rng.chance(0.5)
    rng.shuffle([1, 2, 3])

    assert rng.ops() == ['next', 'next_int', 'chance', 'shuffle', 'shuffle']
    assert rng.draw_count == 5


def test_untraced_generator_keeps_no_history():
    rng = SeededRNG(11)
    rng.next()
    assert rng.history == []
    assert rng.draw_count == 1


def test_hash_string():
    assert hash_string('') == 0
    assert hash_string('a') == 97
    assert hash_string('ab') == 97 * 31 + 98
    assert hash_string('meadow') == hash_string('meadow')
    assert hash_string('a-very-long-region-identifier') >= 0
