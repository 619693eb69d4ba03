"""Tests for the sidebar file tree."""

from conftest import make_file

from sidediff.diff.tree import build_file_tree


def _layout(entries):
    return [(e.label, e.depth, e.file_index) for e in entries]


class TestBuildFileTree:
    def test_single_child_directories_collapse(self):
        files = [make_file("src/pkg/b.py"), make_file("README.md"), make_file("src/pkg/a.py")]
        assert _layout(build_file_tree(files)) == [
            ("README.md", 0, 1),
            ("src/pkg/", 0, None),
            ("a.py", 1, 2),
            ("b.py", 1, 0),
        ]

    def test_nested_directories(self):
        files = [make_file("src/a.py"), make_file("src/lib/b.py"), make_file("src/lib/c/d.py")]
        assert _layout(build_file_tree(files)) == [
            ("src/", 0, None),
            ("a.py", 1, 0),
            ("lib/", 1, None),
            ("b.py", 2, 1),
            ("c/", 2, None),
            ("d.py", 3, 2),
        ]

    def test_restricted_to_indices(self):
        files = [make_file("src/a.py"), make_file("docs/b.md"), make_file("docs/c.md")]
        entries = build_file_tree(files, [1])
        assert _layout(entries) == [("docs/", 0, None), ("b.md", 1, 1)]
        assert entries[0].is_dir
        assert not entries[1].is_dir

    def test_empty(self):
        assert build_file_tree([]) == []
        assert build_file_tree([make_file("a")], []) == []
