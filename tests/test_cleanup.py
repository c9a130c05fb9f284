from dtipipe.utils.cleanup import delete_files, prune_empty_dirs, remove_scratch


def test_delete_files_dry_run(tmp_path):
    """Verify dry runs keep files and report nothing deleted."""
    f = tmp_path / "a.nii.gz"
    f.write_text("x")
    assert delete_files([f], dry=True) == []
    assert f.exists()
    assert delete_files([f, tmp_path / "missing"]) == [f]
    assert not f.exists()


def test_prune_empty_dirs(tmp_path):
    """Verify empty folders are pruned deepest first while full ones stay."""
    (tmp_path / "a" / "b" / "c").mkdir(parents=True)
    (tmp_path / "keep").mkdir()
    (tmp_path / "keep" / "f").write_text("x")
    removed = prune_empty_dirs(tmp_path, keep_root=True)
    assert removed == 3
    assert (tmp_path / "keep" / "f").exists()
    assert tmp_path.exists()


def test_remove_scratch(tmp_path):
    """Verify the working directory is removed recursively."""
    scratch = tmp_path / "work" / "sub-001"
    (scratch / "tmp").mkdir(parents=True)
    (scratch / "tmp" / "x").write_text("x")
    assert remove_scratch(scratch, dry=True) is False and scratch.exists()
    assert remove_scratch(scratch) is True
    assert not scratch.exists()
    assert remove_scratch(scratch) is False
