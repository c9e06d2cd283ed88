import contextlib

import pytest

from gossipcount.counter import (
    U64_MAX,
    CounterError,
    CounterSaturatedError,
    IncompatibleCountersError,
    ProbabilisticCounter,
    RandomnessSource,
    StdRandomnessSource,
    geometric_to_sample_u32,
    uniform_u32_to_geometric,
)


class FixedRandomnessSequence(RandomnessSource):
    def __init__(self, seq, repeat):
        self.seq = list(seq)
        self.repeat = repeat
        self.next_idx = 0

    def next_u32(self):
        assert self.repeat or self.next_idx < len(self.seq), "too many numbers generated"
        res = self.seq[self.next_idx]
        self.next_idx += 1
        if self.repeat and self.next_idx >= len(self.seq):
            self.next_idx = 0
        return res


def check_bits(pc, bits, val):
    selected = set(bits)
    assert len(selected) == len(bits)
    for inst_idx in range(pc.num_instances):
        for bit_idx in range(pc.bits_per_instance):
            expected = val if (inst_idx, bit_idx) in selected else not val
            actual = pc.get_bit(inst_idx, bit_idx)
            assert actual == expected, f"instance {inst_idx}, bit {bit_idx}"


def set_bits(pc, bits, val):
    for inst_idx, bit_idx in bits:
        pc.set_bit(inst_idx, bit_idx, val)


def diff_position(first, second):
    assert first.num_instances == second.num_instances
    assert first.bits_per_instance == second.bits_per_instance
    for inst_idx in range(first.num_instances):
        for bit_idx in range(first.bits_per_instance):
            if first.get_bit(inst_idx, bit_idx) != second.get_bit(inst_idx, bit_idx):
                return (inst_idx, bit_idx)
    return None


def test_new_counter_has_only_zero_bits():
    pc = ProbabilisticCounter(16, 19)
    assert pc.bits_per_instance == 16
    assert pc.num_instances == 19
    check_bits(pc, [], True)


def test_simple_smoke():
    pc = ProbabilisticCounter(8, 1)
    assert pc.evaluate() == 0
    pc.set_to_infinity()
    assert pc.evaluate() == U64_MAX

    pc_zeroed = pc.empty_copy()
    assert pc_zeroed.evaluate() == 0
    pc.set_to_zero()
    assert pc.evaluate() == 0

    pc.set_bit(0, 0, True)
    assert pc.get_bit(0, 0)
    assert pc.evaluate() == 3

    pc_zeroed.set_bit(0, 3, True)
    assert pc_zeroed.evaluate() == 1


def test_eventually_saturates_with_std_rng():
    rng = StdRandomnessSource(42)
    pc = ProbabilisticCounter(8, 1)
    for _ in range(100_000):
        with contextlib.suppress(CounterSaturatedError):
            pc.count_one_more(rng)
    assert pc.evaluate() == U64_MAX


@pytest.mark.parametrize("bits", [8, 16, 24, 32])
def test_geometric_to_sample_round_trip(bits):
    for idx in range(bits):
        sample = geometric_to_sample_u32(idx)
        assert uniform_u32_to_geometric(sample, bits) == idx


def test_raw_bit_operations_and_distinguished_values():
    pc = ProbabilisticCounter(32, 12)
    selected = [
        (0, 1), (0, 7), (0, 31), (1, 19), (1, 20), (1, 24), (2, 13), (3, 19),
        (9, 7), (9, 8), (9, 9), (11, 0), (11, 1), (11, 2), (11, 3), (11, 4),
        (11, 5), (11, 6), (11, 7),
    ]
    set_bits(pc, selected, True)
    assert pc.bits_per_instance == 32
    assert pc.num_instances == 12
    check_bits(pc, selected, True)

    pc.set_to_infinity()
    check_bits(pc, [], False)

    set_bits(pc, selected, False)
    check_bits(pc, selected, False)

    pc.set_to_zero()
    check_bits(pc, [], True)


def test_incrementation_smoke():
    pc = ProbabilisticCounter(32, 8)
    rand_seq = [256, 128, 64, 32, 16, 8, 4, 2, 1, 512, 1024]
    rs = FixedRandomnessSequence(rand_seq, False)
    expected = [(0, 8), (1, 7), (2, 6), (3, 5), (4, 4), (5, 3), (6, 2), (7, 1)]

    pc.count_one_more(rs)

    assert rs.next_idx == pc.num_instances
    check_bits(pc, expected, True)


def test_merging_and_evaluation_smoke():
    pc1 = ProbabilisticCounter(32, 4)
    pc2 = ProbabilisticCounter(32, 4)
    bits1 = [(0, 0), (1, 2), (1, 5), (2, 0), (3, 2), (3, 5)]
    bits2 = [(0, 0), (1, 4), (1, 5), (2, 0), (3, 4), (3, 5)]

    assert pc1.evaluate() == 0
    assert pc2.evaluate() == 0

    pc1.set_to_infinity()
    pc2.merge_with(pc1)
    assert diff_position(pc1, pc2) is None
    assert pc1.evaluate() == U64_MAX
    assert pc2.evaluate() == U64_MAX

    set_bits(pc1, bits1, False)
    set_bits(pc2, bits2, False)
    assert pc1.evaluate() == 3
    assert pc2.evaluate() == 5

    pc2.merge_with(pc1)
    pc1.merge_with(pc2)
    assert diff_position(pc1, pc2) is None
    assert pc1 == pc2
    assert pc1.evaluate() == 7
    assert pc2.evaluate() == 7


def test_count_on_saturated_counter_raises_and_keeps_state():
    pc = ProbabilisticCounter(8, 2)
    pc.set_bit(0, 0, True)
    for bit in range(8):
        pc.set_bit(1, bit, True)
    before = pc.copy()
    rs = FixedRandomnessSequence([1], True)
    with pytest.raises(CounterSaturatedError):
        pc.count_one_more(rs)
    assert pc == before
    assert rs.next_idx == 0


def test_merge_incompatible_raises_and_keeps_state():
    pc = ProbabilisticCounter(8, 2)
    pc.set_bit(0, 2, True)
    before = pc.copy()
    with pytest.raises(IncompatibleCountersError):
        pc.merge_with(ProbabilisticCounter(16, 2))
    with pytest.raises(IncompatibleCountersError):
        pc.merge_with(ProbabilisticCounter(8, 3))
    assert pc == before


def test_errors_share_base_class():
    saturated = ProbabilisticCounter(8, 1)
    saturated.set_to_infinity()
    with pytest.raises(CounterError):
        saturated.count_one_more(FixedRandomnessSequence([1], True))
    assert saturated.evaluate() == U64_MAX

    pc = ProbabilisticCounter(8, 1)
    with pytest.raises(CounterError):
        pc.merge_with(ProbabilisticCounter(16, 1))
    assert pc.evaluate() == 0


@pytest.mark.parametrize("bits,instances", [(0, 1), (7, 1), (40, 1), (8, 0), (12, 2)])
def test_invalid_configuration_rejected(bits, instances):
    with pytest.raises(ValueError):
        ProbabilisticCounter(bits, instances)


def test_geometric_caps_at_last_bit():
    assert uniform_u32_to_geometric(0, 8) == 7
    assert uniform_u32_to_geometric(0, 32) == 31
    assert uniform_u32_to_geometric(1 << 20, 16) == 15
    assert uniform_u32_to_geometric(0b1100, 32) == 2


def test_geometric_to_sample_rejects_out_of_range():
    with pytest.raises(ValueError):
        geometric_to_sample_u32(32)
    assert geometric_to_sample_u32(31) == 1 << 31


def test_copy_is_independent():
    pc = ProbabilisticCounter(16, 3)
    pc.set_bit(2, 5, True)
    clone = pc.copy()
    clone.set_bit(0, 0, True)
    assert clone.get_bit(2, 5)
    assert not pc.get_bit(0, 0)
    empty = pc.empty_copy()
    assert (empty.bits_per_instance, empty.num_instances) == (16, 3)
    assert empty.evaluate() == 0


def test_merge_is_commutative_and_idempotent():
    a = ProbabilisticCounter(24, 3)
    b = ProbabilisticCounter(24, 3)
    set_bits(a, [(0, 0), (1, 3), (2, 1)], True)
    set_bits(b, [(0, 1), (1, 0), (2, 1)], True)
    ab = a.copy()
    ab.merge_with(b)
    ba = b.copy()
    ba.merge_with(a)
    assert ab == ba
    again = ab.copy()
    again.merge_with(b)
    assert again == ab


def test_get_bit_out_of_range():
    pc = ProbabilisticCounter(8, 1)
    with pytest.raises(IndexError):
        pc.get_bit(1, 0)
    with pytest.raises(IndexError):
        pc.set_bit(0, 8, True)


def test_std_randomness_is_deterministic_and_in_range():
    first = StdRandomnessSource(7)
    second = StdRandomnessSource(7)
    seq1 = [first.next_u32() for _ in range(50)]
    seq2 = [second.next_u32() for _ in range(50)]
    assert seq1 == seq2
    assert all(0 <= v < 2**32 for v in seq1)