import json

import numpy as np
import pytest
from numpy.testing import assert_equal

from hmmkit.alignment import ANode
from hmmkit.io import ObservationReader, read_observations, write_observations, observation_to_dict
from hmmkit.util.data import ObservationSequence
from hmmkit.util.exceptions import ReaderIOError, SerializationError


def _observations():
    rs = np.random.RandomState(0)
    root = ANode(0, 4, "utt")
    word = root.append_child(4, "a")
    word.append_child(1, "a-1")
    word.append_child(4, "a-2")
    return [
        ObservationSequence(rs.normal(size=(4, 2)), id="first", alignment=root),
        ObservationSequence(rs.normal(size=(3, 2)), id="second", labels=["x", "y"]),
        ObservationSequence(rs.normal(size=(2, 2)), id="third"),
    ]


def test_round_trip(tmp_path):
    path = tmp_path / "obs.jsonl"
    observations = _observations()
    write_observations(observations, path)
    restored = read_observations(path)
    assert [o.id for o in restored] == ["first", "second", "third"]
    for a, b in zip(observations, restored):
        assert_equal(a.vectors, b.vectors)
        assert a.labels == b.labels
    assert restored[0].alignment == observations[0].alignment
    assert restored[0].transcript() == ["a"]
    assert restored[1].transcript() == ["x", "y"]
    assert restored[2].alignment is None


def test_token_flag_round_trip(tmp_path):
    path = tmp_path / "obs.jsonl"
    obs = ObservationSequence(np.zeros((2, 1)), id="tokens", labels=["a", "a"], token_labels=True)
    write_observations([obs], path)
    assert json.loads(path.read_text())["token_labels"] is True
    restored = read_observations(path)[0]
    assert restored.token_labels is True
    assert restored.transcript() == ["a", "a"]
    path.write_text('{"vectors": [[1.0]], "labels": ["a"], "token_labels": "yes"}\n')
    with pytest.raises(SerializationError) as info:
        read_observations(path)
    assert info.value.field == "token_labels"


def test_line_layout(tmp_path):
    path = tmp_path / "obs.jsonl"
    write_observations(_observations(), path)
    lines = path.read_text().splitlines()
    assert len(lines) == 3
    first = json.loads(lines[0])
    assert set(first) == {"id", "vectors", "alignments"}
    assert [len(level) for level in first["alignments"]] == [2, 1, 1]
    assert "labels" in json.loads(lines[1])


def test_reader_skips_blank_lines_and_closes(tmp_path):
    path = tmp_path / "obs.jsonl"
    lines = [json.dumps(observation_to_dict(o)) for o in _observations()]
    path.write_text("\n" + lines[0] + "\n\n  \n" + lines[1] + "\n")
    reader = ObservationReader(path)
    with reader:
        ids = [o.id for o in reader]
    assert ids == ["first", "second"]
    assert reader._file is None


def test_reader_reports_line_number(tmp_path):
    path = tmp_path / "obs.jsonl"
    good = json.dumps(observation_to_dict(_observations()[2]))
    path.write_text(good + "\n" + json.dumps({"id": "broken"}) + "\n")
    reader = ObservationReader(path)
    it = iter(reader)
    assert next(it).id == "third"
    with pytest.raises(SerializationError, match="line 2") as info:
        next(it)
    assert info.value.field == "vectors"
    assert reader._file is None


@pytest.mark.parametrize("line, field", [
    ("{not json", None),
    ('{"vectors": [[1, 2], [3]]}', "vectors"),
    ('{"vectors": [[1, 2]], "alignments": [[{"e": 1}]]}', "alignments"),
    ('[1, 2]', None),
])
def test_malformed_lines(tmp_path, line, field):
    path = tmp_path / "obs.jsonl"
    path.write_text(line + "\n")
    with pytest.raises(SerializationError) as info:
        read_observations(path)
    assert info.value.field == field


def test_missing_file(tmp_path):
    with pytest.raises(ReaderIOError):
        read_observations(tmp_path / "missing.jsonl")
    with pytest.raises(ReaderIOError):
        with ObservationReader(tmp_path / "missing.jsonl"):
            pass
    with pytest.raises(ReaderIOError):
        write_observations(_observations(), tmp_path / "no" / "such" / "dir.jsonl")
