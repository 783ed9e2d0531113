import numpy as np
import pytest

from sddmmflow import InputError, OutOfRange, load_matrix, save_npz
from sddmmflow import patterns


def test_npz_roundtrip(tmp_path):
    view = patterns.skewed(30, 25, 200, seed=3)
    path = tmp_path / "pattern.npz"
    save_npz(view, path)
    loaded = load_matrix(path)
    assert loaded.shape == view.shape
    assert loaded.indptr.tolist() == view.indptr.tolist()
    assert loaded.indices.tolist() == view.indices.tolist()


def test_npz_shape_indptr_indices_layout(tmp_path):
    path = tmp_path / "m.npz"
    np.savez(
        path,
        shape=np.array([4, 4, 4], dtype=np.int32),
        indptr=np.array([0, 1, 3, 3, 4], dtype=np.int32),
        indices=np.array([1, 0, 2, 3], dtype=np.int32),
    )
    view = load_matrix(path)
    assert view.row.tolist() == [0, 1, 1, 3]


def test_npz_missing_array(tmp_path):
    path = tmp_path / "bad.npz"
    np.savez(path, shape=np.array([2, 2, 0]), indptr=np.array([0, 0, 0]))
    with pytest.raises(InputError):
        load_matrix(path)


def test_npz_nnz_disagrees(tmp_path):
    path = tmp_path / "bad.npz"
    np.savez(path, shape=np.array([1, 2, 5]), indptr=np.array([0, 1]), indices=np.array([0]))
    with pytest.raises(InputError):
        load_matrix(path)


def test_npz_column_out_of_range(tmp_path):
    path = tmp_path / "bad.npz"
    np.savez(path, shape=np.array([1, 2, 1]), indptr=np.array([0, 1]), indices=np.array([2]))
    with pytest.raises(OutOfRange):
        load_matrix(path)


def test_mtx_pattern(tmp_path):
    path = tmp_path / "m.mtx"
    path.write_text(
        "%%MatrixMarket matrix coordinate pattern general\n"
        "3 4 3\n"
        "1 2\n"
        "3 4\n"
        "3 1\n"
    )
    view = load_matrix(path)
    assert view.shape == (3, 4)
    assert view.indptr.tolist() == [0, 1, 1, 3]
    assert view.indices.tolist() == [1, 0, 3]


def test_missing_file(tmp_path):
    with pytest.raises(InputError):
        load_matrix(tmp_path / "nope.npz")


def test_unknown_extension(tmp_path):
    path = tmp_path / "m.csv"
    path.write_text("1,2\n")
    with pytest.raises(InputError):
        load_matrix(path)


def test_npz_holding_single_array(tmp_path):
    path = tmp_path / "plain.npz"
    with open(path, "wb") as f:
        np.save(f, np.arange(6))
    with pytest.raises(InputError):
        load_matrix(path)
