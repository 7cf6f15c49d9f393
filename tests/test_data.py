import numpy as np
import pandas as pd
import pytest

from pycircperm.data import Observation, ObservationTable, ValidationError


@pytest.fixture
def frame():
    return pd.DataFrame(
        {
            "channel": ["ch01", "ch01", "ch00", "ch00", "ch01"],
            "genotype": ["wt", "ko", "wt", "wt", "ko"],
            "angle": [10.0, -10.0, 370.0, 180.0, 720.0],
        }
    )


def test_ObservationTable(frame):
    table = ObservationTable(frame, group="genotype", strata=("channel",))

    assert len(table) == 5
    assert table.groups == ("ko", "wt")
    assert table.populations == (("ch00",), ("ch01",))
    assert table.strata == ("channel",)

    # angles are wrapped into [0, 360)
    np.testing.assert_allclose(table.angles("ch01", "ko"), [350.0, 0.0])
    np.testing.assert_allclose(table.angles(("ch00",), "wt"), [10.0, 180.0])
    np.testing.assert_allclose(table.angles("ch01", "wt"), [10.0])

    # group never observed in a population
    assert table.angles("ch00", "ko").size == 0

    radians = table.population_angles("ch00")
    assert list(radians) == ["ko", "wt"]
    np.testing.assert_allclose(radians["wt"], np.deg2rad([10.0, 180.0]))


def test_ObservationTable_does_not_modify_input(frame):
    before = frame.copy()
    table = ObservationTable(frame, group="genotype", strata="channel")

    pd.testing.assert_frame_equal(frame, before)

    # returned arrays are copies
    a = table.angles("ch01", "ko")
    a[:] = 0.0
    np.testing.assert_allclose(table.angles("ch01", "ko"), [350.0, 0.0])


def test_ObservationTable_without_strata():
    table = ObservationTable(pd.DataFrame({"group": ["a", "b", "a"], "angle": [1, 2, 3]}))

    assert table.populations == ((),)
    np.testing.assert_allclose(table.angles((), "a"), [1.0, 3.0])
    assert "groups=2" in repr(table)


def test_ObservationTable_levels():
    frame = pd.DataFrame(
        {
            "group": pd.Categorical(["het", "wt"], categories=["wt", "het", "ko"]),
            "angle": [30.0, 60.0],
        }
    )
    table = ObservationTable(frame)
    assert table.groups == ("wt", "het", "ko")
    assert table.angles((), "ko").size == 0

    frame = pd.DataFrame({"group": ["b", "a"], "angle": [30.0, 60.0]})
    table = ObservationTable(frame, group_levels=["b", "a", "c"])
    assert table.groups == ("b", "a", "c")

    with pytest.raises(ValidationError):
        ObservationTable(frame, group_levels=["a"])


def test_ObservationTable_population_levels(frame):
    table = ObservationTable(
        frame,
        group="genotype",
        strata=("channel",),
        population_levels=[("ch01",), ("ch00",), ("ch02",)],
    )
    assert table.populations == (("ch01",), ("ch00",), ("ch02",))
    assert table.angles("ch02", "wt").size == 0

    with pytest.raises(ValidationError):
        ObservationTable(frame, group="genotype", strata=("channel",), population_levels=["ch00"])


def test_ObservationTable_unknown_keys(frame):
    table = ObservationTable(frame, group="genotype", strata=("channel",))

    with pytest.raises(KeyError):
        table.angles("ch09", "wt")
    with pytest.raises(KeyError):
        table.angles("ch00", "het")


def test_ObservationTable_validation(frame):
    with pytest.raises(ValidationError):
        ObservationTable(frame.to_dict())
    with pytest.raises(ValidationError):
        ObservationTable(frame, group="missing")
    with pytest.raises(ValidationError):
        ObservationTable(frame, group="genotype", strata=("genotype",))

    bad = frame.copy()
    bad.loc[1, "genotype"] = None
    with pytest.raises(ValidationError, match="Missing group labels"):
        ObservationTable(bad, group="genotype", strata=("channel",))

    bad = frame.copy()
    bad["angle"] = bad["angle"].astype(object)
    bad.loc[2, "angle"] = "north"
    with pytest.raises(ValidationError, match="Non-numeric"):
        ObservationTable(bad, group="genotype", strata=("channel",))

    for value in [np.nan, np.inf, -np.inf]:
        bad = frame.copy()
        bad.loc[0, "angle"] = value
        with pytest.raises(ValidationError, match="non-finite"):
            ObservationTable(bad, group="genotype", strata=("channel",))

    bad = pd.DataFrame({"group": ["a", "b"], "angle": [True, False]})
    with pytest.raises(ValidationError):
        ObservationTable(bad)


def test_ValidationError_is_ValueError():
    with pytest.raises(ValueError):
        ObservationTable(pd.DataFrame({"group": ["a"]}))


def test_ObservationTable_from_records():
    records = [
        {"group": "wt", "angle": 10},
        {"group": "ko", "angle": 200},
        {"group": "wt", "angle": 20},
    ]
    table = ObservationTable.from_records(records)

    np.testing.assert_allclose(table.angles((), "wt"), [10.0, 20.0])

    with pytest.raises(ValidationError):
        ObservationTable.from_records([("wt", 10)])


def test_ObservationTable_from_observations():
    observations = [
        Observation(group_keys=("ch00", "wt"), angle_deg=5.0),
        Observation(group_keys=("ch00", "ko"), angle_deg=185.0),
        Observation(group_keys=("ch01", "wt"), angle_deg=-5.0),
    ]
    table = ObservationTable.from_observations(observations, key_names=("channel", "genotype"))

    assert table.group == "genotype"
    assert table.strata == ("channel",)
    assert table.populations == (("ch00",), ("ch01",))
    np.testing.assert_allclose(table.angles("ch01", "wt"), [355.0])

    roundtrip = list(table.observations())
    assert roundtrip[1] == Observation(group_keys=("ch00", "ko"), angle_deg=185.0)

    with pytest.raises(ValidationError):
        ObservationTable.from_observations(observations, key_names=("genotype",))
    with pytest.raises(ValidationError):
        ObservationTable.from_observations([("ch00", "wt", 5.0)], key_names=("channel", "genotype"))


def test_ObservationTable_to_frame(frame):
    table = ObservationTable(frame, group="genotype", strata=("channel",))
    out = table.to_frame()

    assert list(out.columns) == ["channel", "genotype", "angle"]
    assert out["angle"].between(0, 360, inclusive="left").all()


def test_ObservationTable_rejects_string_angles():
    frame = pd.DataFrame({"group": ["a", "b"], "angle": ["12.5", "30"]})
    with pytest.raises(ValidationError, match="Non-numeric"):
        ObservationTable(frame)

    # numbers held in an object column are fine
    frame = pd.DataFrame({"group": ["a", "b"], "angle": pd.Series([12.5, 30], dtype=object)})
    np.testing.assert_allclose(ObservationTable(frame).angles((), "a"), [12.5])
