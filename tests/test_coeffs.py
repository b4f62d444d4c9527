import io
import math
import struct

import pytest

from forces.coeffs import DPDSettings, PairCoeffTable


def _table(ntypes=2, temperature=1.0, cut_global=1.0, seed=42, mix_flag=0):
    return PairCoeffTable(ntypes, DPDSettings(temperature=temperature, cut_global=cut_global, seed=seed, mix_flag=mix_flag))


def test_sigma_follows_fluctuation_dissipation():
    table = _table(ntypes=1, temperature=0.7)
    table.set(1, 1, a0=25.0, gamma=2.2)
    table.init(kB=1.3)
    assert table.sigma[1, 1].item() == math.sqrt(2.0 * 1.3 * 0.7 * 2.2)


def test_missing_pair_is_fatal():
    table = _table()
    table.set(1, 1, a0=25.0, gamma=4.5)
    with pytest.raises(ValueError, match="not set"):
        table.init(kB=1.0)


def test_params_before_init_is_fatal():
    table = _table(ntypes=1)
    table.set(1, 1, a0=25.0, gamma=4.5)
    with pytest.raises(ValueError):
        table.params(1, 1)


def test_init_mirrors_upper_triangle():
    table = _table()
    table.set((1, 2), (1, 2), a0=25.0, gamma=4.5)
    table.set(1, 2, a0=30.0, gamma=3.0, cut=0.9)
    assert table.init(kB=1.0) == 1.0
    assert table.params(2, 1) == table.params(1, 2)
    assert table.params(2, 1)["a0"] == 30.0
    assert table.params(2, 1)["cut"] == 0.9


def test_range_assignment_counts_upper_triangle():
    table = _table(ntypes=3)
    assert table.set((1, 3), (1, 3), a0=1.0, gamma=1.0) == 6
    with pytest.raises(ValueError, match="no type pair matched"):
        table.set(2, 1, a0=1.0, gamma=1.0)
    with pytest.raises(ValueError):
        table.set(1, 4, a0=1.0, gamma=1.0)


def test_new_settings_reset_cutoffs_of_set_pairs():
    table = _table()
    table.set(1, 1, a0=25.0, gamma=4.5, cut=0.8)
    table.settings = table.with_settings(cut_global=1.5)
    assert table.cut[1, 1].item() == 1.5
    assert table.cut[2, 2].item() == 0.0


@pytest.mark.parametrize("kwargs", [
    {"temperature": 1.0, "cut_global": 1.0, "seed": 0},
    {"temperature": 1.0, "cut_global": 0.0, "seed": 1},
    {"temperature": -1.0, "cut_global": 1.0, "seed": 1},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        DPDSettings(**kwargs)


def test_restart_round_trip():
    table = _table(temperature=1.1, cut_global=1.2, seed=987, mix_flag=1)
    table.set(1, 1, a0=0.1 + 0.2, gamma=4.5, cut=1.0 / 3.0)

    buf = io.BytesIO()
    table.write_restart(buf)
    # settings (8 + 8 + 4 + 4) + three flags + one set pair
    assert len(buf.getvalue()) == 24 + 3 * 4 + 3 * 8

    buf.seek(0)
    restored = PairCoeffTable.from_restart(buf, ntypes=2)
    assert buf.tell() == len(buf.getvalue())

    assert restored.settings == table.settings
    assert bool(restored.setflag[1, 1])
    assert not bool(restored.setflag[1, 2])
    assert not bool(restored.setflag[2, 2])
    for name in ("a0", "gamma", "cut"):
        before = getattr(table, name)[1, 1].item()
        after = getattr(restored, name)[1, 1].item()
        assert struct.pack("=d", before) == struct.pack("=d", after)


def test_truncated_restart():
    table = _table()
    table.set(1, 2, a0=25.0, gamma=4.5)
    buf = io.BytesIO()
    table.write_restart(buf)
    with pytest.raises(EOFError):
        PairCoeffTable.from_restart(io.BytesIO(buf.getvalue()[:-4]), ntypes=2)


def test_write_data():
    table = _table()
    table.set(1, 1, a0=25.0, gamma=4.5)
    table.set(1, 2, a0=30.0, gamma=4.5, cut=0.9)

    out = io.StringIO()
    table.write_data(out)
    assert out.getvalue() == "1 25 4.5\n2 0 0\n"

    out = io.StringIO()
    table.write_data_all(out)
    assert out.getvalue() == "1 1 25 4.5 1\n1 2 30 4.5 0.9\n2 2 0 0 0\n"
